from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from backend.app.errors import (
    AccessDeniedError,
    PayloadValidationError,
    ReferentialError,
    TransitionConflictError,
)
from backend.app.models import (
    Attribution,
    CandidateRecord,
    CandidateStatus,
    JobRecord,
    StatusChangeRequest,
    StatusHistoryEntry,
    UserRecord,
    utc_now,
)
from backend.app.services.interviews import pending_stage
from backend.app.services.visibility import is_read_only

S = CandidateStatus

ALLOWED_TRANSITIONS = {
    S.new: {S.shortlisted, S.interviewed, S.selected, S.rejected, S.dropped, S.hold},
    S.shortlisted: {S.new, S.interviewed, S.selected, S.rejected, S.dropped, S.hold},
    S.interviewed: {S.shortlisted, S.selected, S.rejected, S.dropped, S.hold},
    S.hold: {S.new, S.shortlisted, S.interviewed, S.selected, S.rejected, S.dropped},
    S.selected: {S.selected, S.joined, S.rejected, S.dropped, S.hold},
    S.joined: {S.joined, S.dropped},
    S.rejected: {S.dropped},
    S.dropped: set(),
}

# Same-status requests that count as an in-place edit of captured details.
REENTRANT_STATUSES = {S.selected, S.joined}

REQUIRED_FIELDS: dict[CandidateStatus, tuple[str, ...]] = {
    S.selected: ("selection_date",),
    S.joined: ("joining_date", "offered_ctc"),
    S.rejected: ("rejection_reason",),
    S.dropped: ("comment",),
}

# Who is credited with a drop/rejection when the caller does not say.
DEFAULT_ATTRIBUTION: dict[CandidateStatus, Attribution] = {
    S.shortlisted: Attribution.manager,
    S.interviewed: Attribution.client,
    S.selected: Attribution.client,
    S.joined: Attribution.client,
}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_fields(target: CandidateStatus, payload: StatusChangeRequest) -> list[str]:
    return [
        name for name in REQUIRED_FIELDS.get(target, ()) if _is_blank(getattr(payload, name))
    ]


def default_attribution(prior: CandidateStatus) -> Optional[Attribution]:
    return DEFAULT_ATTRIBUTION.get(prior)


def check_transition(current: CandidateStatus, target: CandidateStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise TransitionConflictError(f"invalid transition {current.value} -> {target.value}")


def _resolve_interview_stage(
    candidate: CandidateRecord,
    job: JobRecord,
    requested: Optional[str],
) -> Optional[str]:
    stage_names = job.stage_names()
    if requested:
        if requested not in stage_names:
            raise ReferentialError(f"stage {requested!r} is not defined for job {job.id}")
        return requested
    return pending_stage(candidate, job)


def apply_transition(
    candidate: CandidateRecord,
    job: JobRecord,
    payload: StatusChangeRequest,
    actor: UserRecord,
    *,
    now: Optional[datetime] = None,
) -> CandidateRecord:
    """
    Validate ``payload`` against the candidate's current status and return an
    updated copy with exactly one new status history entry.

    Nothing on ``candidate`` is modified; a rejected request raises before any
    copy is made. Fields captured by earlier transitions are left in place.
    """
    if is_read_only(actor):
        raise AccessDeniedError(f"{actor.designation.value} users cannot change candidate status")
    if candidate.job_id != job.id:
        raise ReferentialError(f"candidate {candidate.id} does not belong to job {job.id}")

    target = payload.status
    check_transition(candidate.status, target)
    missing = missing_fields(target, payload)
    if missing:
        raise PayloadValidationError(missing, f"{target.value} requires: {', '.join(missing)}")

    now = now or utc_now()
    comment = _clean(payload.comment)
    captured: dict[str, Any] = {}

    if target == S.selected:
        captured["selection_date"] = payload.selection_date
        if payload.expected_joining_date is not None:
            captured["expected_joining_date"] = payload.expected_joining_date
        if _clean(payload.offered_ctc):
            captured["offered_ctc"] = _clean(payload.offered_ctc)
    elif target == S.joined:
        captured["joining_date"] = payload.joining_date
        captured["offered_ctc"] = _clean(payload.offered_ctc)
        if _clean(payload.offer_letter_url):
            captured["offer_letter_url"] = _clean(payload.offer_letter_url)
    elif target == S.rejected:
        captured["rejection_reason"] = _clean(payload.rejection_reason)
        rejected_by = payload.rejected_by or default_attribution(candidate.status)
        if rejected_by is not None:
            captured["rejected_by"] = rejected_by
        comment = comment or captured["rejection_reason"]
    elif target == S.dropped:
        dropped_by = payload.dropped_by or default_attribution(candidate.status)
        if dropped_by is not None:
            captured["dropped_by"] = dropped_by
    elif target == S.interviewed:
        stage = _resolve_interview_stage(candidate, job, _clean(payload.interview_stage))
        if stage is not None:
            captured["interview_stage"] = stage

    entry = StatusHistoryEntry(
        status=target,
        from_status=candidate.status,
        comment=comment or "",
        updated_by=actor.id,
        timestamp=now,
        **captured,
    )
    updates: dict[str, Any] = dict(captured)
    updates.update(
        status=target,
        status_updated_by=actor.id,
        status_history=[*candidate.status_history, entry],
        updated_at_utc=now,
    )
    return candidate.model_copy(update=updates)
