from __future__ import annotations

from datetime import datetime
from typing import Optional

from backend.app.errors import AccessDeniedError, ReferentialError, TransitionConflictError
from backend.app.models import (
    Attribution,
    CandidateRecord,
    CandidateStatus,
    InterviewStageHistoryEntry,
    JobRecord,
    StageOutcome,
    StatusChangeRequest,
    UserRecord,
    utc_now,
)
from backend.app.services.visibility import is_read_only

STAGE_ACTIVE_STATUSES = {CandidateStatus.shortlisted, CandidateStatus.interviewed}


def next_stage(job: JobRecord, stage_name: str) -> Optional[str]:
    names = job.stage_names()
    position = names.index(stage_name)
    if position + 1 < len(names):
        return names[position + 1]
    return None


def pending_stage(candidate: CandidateRecord, job: JobRecord) -> Optional[str]:
    """Stage the candidate is waiting on; None once the last stage has been passed."""
    if candidate.interview_stage:
        return candidate.interview_stage
    if candidate.interview_stage_history:
        return None
    names = job.stage_names()
    return names[0] if names else None


def complete_stage(
    candidate: CandidateRecord,
    job: JobRecord,
    stage_name: str,
    outcome: StageOutcome,
    notes: str,
    actor: UserRecord,
    *,
    now: Optional[datetime] = None,
) -> CandidateRecord:
    """
    Record the outcome of one interview stage.

    Only the pending stage can be completed. Selected moves it forward (or
    clears it after the last stage); Rejected leaves it on the failed stage.
    The top-level status is never touched here.
    """
    if is_read_only(actor):
        raise AccessDeniedError(f"{actor.designation.value} users cannot record interview results")
    if candidate.job_id != job.id:
        raise ReferentialError(f"candidate {candidate.id} does not belong to job {job.id}")
    if stage_name not in job.stage_names():
        raise ReferentialError(f"stage {stage_name!r} is not defined for job {job.id}")
    if candidate.status not in STAGE_ACTIVE_STATUSES:
        raise TransitionConflictError(
            f"interview stages cannot be completed while status is {candidate.status.value}"
        )
    expected = pending_stage(candidate, job)
    if expected is None:
        raise TransitionConflictError(f"candidate {candidate.id} has no pending interview stage")
    if stage_name != expected:
        raise TransitionConflictError(
            f"stage {stage_name!r} cannot be completed while {expected!r} is pending"
        )

    now = now or utc_now()
    entry = InterviewStageHistoryEntry(
        stage_name=stage_name,
        outcome=outcome,
        notes=notes.strip(),
        updated_by=actor.id,
        timestamp=now,
    )
    pending = next_stage(job, stage_name) if outcome == StageOutcome.selected else stage_name
    return candidate.model_copy(
        update={
            "interview_stage": pending,
            "interview_stage_history": [*candidate.interview_stage_history, entry],
            "updated_at_utc": now,
        }
    )


def rejection_payload(
    entry: InterviewStageHistoryEntry,
    *,
    expected_version: Optional[int] = None,
) -> StatusChangeRequest:
    """Status change a caller issues after a stage ends in rejection."""
    reason = entry.notes or f"Rejected at {entry.stage_name} stage"
    return StatusChangeRequest(
        status=CandidateStatus.rejected,
        rejection_reason=reason,
        rejected_by=Attribution.client,
        expected_version=expected_version,
    )
