from __future__ import annotations

from datetime import datetime

import pytest

from backend.app.errors import ReferentialError, TransitionConflictError
from backend.app.models import (
    Attribution,
    CandidateRecord,
    CandidateStatus,
    Designation,
    JobRecord,
    StageDefinition,
    StageOutcome,
    UserRecord,
)
from backend.app.services.interviews import (
    complete_stage,
    next_stage,
    pending_stage,
    rejection_payload,
)

NOW = datetime(2024, 5, 1, 10, 0, 0)
ACTOR = UserRecord(
    id="r1",
    name="Recruiter",
    email="r1@example.com",
    designation=Designation.recruiter,
    created_at_utc=NOW,
)
JOB = JobRecord(
    id="job_1",
    title="Backend Engineer",
    stages=[StageDefinition(name="Technical"), StageDefinition(name="HR")],
    created_by="m1",
    created_at_utc=NOW,
    updated_at_utc=NOW,
)


def _interviewing(stage: str = "Technical") -> CandidateRecord:
    return CandidateRecord(
        id="cand_1",
        job_id=JOB.id,
        created_by="r1",
        status=CandidateStatus.interviewed,
        interview_stage=stage,
        created_at_utc=NOW,
        updated_at_utc=NOW,
    )


def test_next_stage_walks_job_order() -> None:
    assert next_stage(JOB, "Technical") == "HR"
    assert next_stage(JOB, "HR") is None


def test_selected_advances_pending_stage() -> None:
    updated = complete_stage(
        _interviewing(), JOB, "Technical", StageOutcome.selected, "Strong", ACTOR, now=NOW
    )
    assert updated.interview_stage == "HR"
    assert updated.status == CandidateStatus.interviewed
    assert [entry.stage_name for entry in updated.interview_stage_history] == ["Technical"]
    assert updated.status_history == []


def test_last_stage_selected_leaves_status_untouched() -> None:
    updated = complete_stage(
        _interviewing("HR"), JOB, "HR", StageOutcome.selected, "", ACTOR, now=NOW
    )
    assert updated.interview_stage is None
    assert updated.status == CandidateStatus.interviewed


def test_rejected_keeps_failed_stage() -> None:
    updated = complete_stage(
        _interviewing(), JOB, "Technical", StageOutcome.rejected, "Weak DS", ACTOR, now=NOW
    )
    assert updated.interview_stage == "Technical"
    assert updated.interview_stage_history[-1].outcome == StageOutcome.rejected


def test_unknown_stage_is_referential_error() -> None:
    with pytest.raises(ReferentialError):
        complete_stage(_interviewing(), JOB, "Onsite", StageOutcome.selected, "", ACTOR)


def test_stage_completion_requires_running_interview() -> None:
    candidate = _interviewing().model_copy(update={"status": CandidateStatus.new})
    with pytest.raises(TransitionConflictError):
        complete_stage(candidate, JOB, "Technical", StageOutcome.selected, "", ACTOR)


def test_rejection_payload_defaults() -> None:
    updated = complete_stage(
        _interviewing(), JOB, "Technical", StageOutcome.rejected, "", ACTOR, now=NOW
    )
    payload = rejection_payload(updated.interview_stage_history[-1], expected_version=3)
    assert payload.status == CandidateStatus.rejected
    assert payload.rejection_reason == "Rejected at Technical stage"
    assert payload.rejected_by == Attribution.client
    assert payload.expected_version == 3


def test_first_stage_is_pending_before_any_completion() -> None:
    shortlisted = _interviewing().model_copy(
        update={"status": CandidateStatus.shortlisted, "interview_stage": None}
    )
    assert pending_stage(shortlisted, JOB) == "Technical"
    with pytest.raises(TransitionConflictError):
        complete_stage(shortlisted, JOB, "HR", StageOutcome.selected, "", ACTOR)
    updated = complete_stage(shortlisted, JOB, "Technical", StageOutcome.selected, "", ACTOR)
    assert updated.interview_stage == "HR"


def test_cannot_skip_ahead_of_pending_stage() -> None:
    with pytest.raises(TransitionConflictError):
        complete_stage(_interviewing("Technical"), JOB, "HR", StageOutcome.selected, "", ACTOR)


def test_completed_stage_cannot_be_recorded_again() -> None:
    passed = complete_stage(
        _interviewing("Technical"), JOB, "Technical", StageOutcome.selected, "", ACTOR, now=NOW
    )
    with pytest.raises(TransitionConflictError):
        complete_stage(passed, JOB, "Technical", StageOutcome.selected, "", ACTOR)

    finished = complete_stage(passed, JOB, "HR", StageOutcome.selected, "", ACTOR, now=NOW)
    assert pending_stage(finished, JOB) is None
    with pytest.raises(TransitionConflictError):
        complete_stage(finished, JOB, "HR", StageOutcome.selected, "", ACTOR)
    assert [entry.stage_name for entry in finished.interview_stage_history] == ["Technical", "HR"]
