from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from backend.app.errors import TrackerError
from backend.app.models import CandidateRecord, UserRecord
from backend.app.services.directory import roster_ids

logger = logging.getLogger("recruit_tracker.orphans")


def find_orphans(
    candidates: Iterable[CandidateRecord],
    roster: Iterable[UserRecord],
) -> list[CandidateRecord]:
    known = roster_ids(roster)
    return [candidate for candidate in candidates if candidate.created_by not in known]


@dataclass
class ReassignmentResult:
    new_owner_id: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def partial(self) -> bool:
        return bool(self.succeeded) and bool(self.failed or self.skipped)


def reassign(
    candidate_ids: Iterable[str],
    new_owner_id: str,
    write: Callable[[str, str], CandidateRecord],
    *,
    should_continue: Optional[Callable[[], bool]] = None,
) -> ReassignmentResult:
    """
    Point each candidate at ``new_owner_id`` through ``write``, one at a time.

    A failing item is recorded and the batch moves on. When ``should_continue``
    returns False the remaining ids are reported as skipped; items already
    written stay written.
    """
    result = ReassignmentResult(new_owner_id=new_owner_id)
    ordered = list(dict.fromkeys(candidate_ids))
    for position, candidate_id in enumerate(ordered):
        if should_continue is not None and not should_continue():
            result.skipped.extend(ordered[position:])
            break
        try:
            write(candidate_id, new_owner_id)
        except TrackerError as exc:
            logger.warning(
                "reassign_failed candidate_id=%s new_owner_id=%s error=%s",
                candidate_id,
                new_owner_id,
                exc,
            )
            result.failed.append((candidate_id, str(exc)))
        else:
            result.succeeded.append(candidate_id)
    logger.info(
        "reassign_batch new_owner_id=%s succeeded=%d failed=%d skipped=%d",
        new_owner_id,
        len(result.succeeded),
        len(result.failed),
        len(result.skipped),
    )
    return result
