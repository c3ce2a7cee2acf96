from __future__ import annotations

from typing import Iterable, Optional

from backend.app.models import Designation, UserRecord

# Manager -> Mentor/Recruiter -> their reportees. Deeper chains are not followed.
MANAGER_REPORTEE_DEPTH = 2
DEFAULT_REPORTEE_DEPTH = 1


def build_reporting_index(roster: Iterable[UserRecord]) -> dict[str, list[str]]:
    """Map each reporter id to the ids of the users pointing at it, in roster order."""
    index: dict[str, list[str]] = {}
    for user in roster:
        if user.reporter:
            index.setdefault(user.reporter, []).append(user.id)
    return index


def reportee_depth_for(designation: Optional[Designation]) -> int:
    if designation == Designation.manager:
        return MANAGER_REPORTEE_DEPTH
    return DEFAULT_REPORTEE_DEPTH


def reportees_of(
    user_id: str,
    roster: Iterable[UserRecord],
    designation: Optional[Designation] = None,
    *,
    index: Optional[dict[str, list[str]]] = None,
) -> set[str]:
    """
    Users reporting to ``user_id``: direct reportees, plus their own direct
    reportees when ``designation`` is Manager.

    A misconfigured roster may contain reporter cycles or self-references; the
    visited set keeps the walk finite and the actor never counts as its own
    reportee.
    """
    if index is None:
        index = build_reporting_index(roster)
    depth = reportee_depth_for(designation)

    visited = {user_id}
    found: set[str] = set()
    frontier = [user_id]
    for _ in range(depth):
        next_frontier: list[str] = []
        for reporter_id in frontier:
            for reportee_id in index.get(reporter_id, []):
                if reportee_id in visited:
                    continue
                visited.add(reportee_id)
                found.add(reportee_id)
                next_frontier.append(reportee_id)
        if not next_frontier:
            break
        frontier = next_frontier
    return found


def roster_ids(roster: Iterable[UserRecord]) -> set[str]:
    return {user.id for user in roster}
