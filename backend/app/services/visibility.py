from __future__ import annotations

from typing import Iterable, Sequence

from backend.app.models import CandidateRecord, Designation, JobRecord, UserRecord
from backend.app.services.directory import reportees_of

READ_ONLY_DESIGNATIONS = {Designation.finance}


def owner_scope(actor: UserRecord, roster: Sequence[UserRecord]) -> set[str]:
    """Creator ids whose records ``actor`` may see. Unused for Admin and Finance."""
    if actor.designation == Designation.manager:
        return {actor.id} | reportees_of(actor.id, roster, Designation.manager)
    return {actor.id}


def sees_everything(actor: UserRecord) -> bool:
    return actor.is_admin_tier or actor.designation == Designation.finance


def is_read_only(actor: UserRecord) -> bool:
    return not actor.is_admin_tier and actor.designation in READ_ONLY_DESIGNATIONS


def visible_candidates(
    actor: UserRecord,
    candidates: Iterable[CandidateRecord],
    roster: Sequence[UserRecord],
) -> list[CandidateRecord]:
    if sees_everything(actor):
        return list(candidates)
    scope = owner_scope(actor, roster)
    return [candidate for candidate in candidates if candidate.created_by in scope]


def visible_jobs(
    actor: UserRecord,
    jobs: Iterable[JobRecord],
    roster: Sequence[UserRecord],
) -> list[JobRecord]:
    if sees_everything(actor):
        return list(jobs)
    scope = owner_scope(actor, roster)
    return [
        job
        for job in jobs
        if job.created_by in scope or not scope.isdisjoint(job.assigned_recruiters)
    ]


def can_view_candidate(
    actor: UserRecord,
    candidate: CandidateRecord,
    roster: Sequence[UserRecord],
) -> bool:
    if sees_everything(actor):
        return True
    return candidate.created_by in owner_scope(actor, roster)


def can_change_status(
    actor: UserRecord,
    candidate: CandidateRecord,
    roster: Sequence[UserRecord],
) -> bool:
    if is_read_only(actor):
        return False
    return can_view_candidate(actor, candidate, roster)


def can_edit_candidate(
    actor: UserRecord,
    candidate: CandidateRecord,
    roster: Sequence[UserRecord],
) -> bool:
    return can_change_status(actor, candidate, roster)


def can_delete_candidate(actor: UserRecord, candidate: CandidateRecord) -> bool:
    if actor.is_admin_tier:
        return True
    if is_read_only(actor):
        return False
    return candidate.created_by == actor.id
