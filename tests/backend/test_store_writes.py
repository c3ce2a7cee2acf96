from __future__ import annotations

import pytest

from backend.app.errors import AccessDeniedError, StoreUnavailableError
from backend.app.main import lifecycle_guard
from backend.app.models import (
    CandidateCreateRequest,
    CandidateRecord,
    CandidateStatus,
    Designation,
    JobCreateRequest,
    StageCompletionRequest,
    StageDefinition,
    StageOutcome,
    StatusChangeRequest,
    UserCreateRequest,
)
from backend.app.store import InMemoryStore


class JobWriteFailure:
    """Accepts every write until ``fail_jobs`` is set, then refuses job upserts."""

    def __init__(self) -> None:
        self.fail_jobs = False
        self.candidate_writes: list[str] = []
        self.candidate_deletes: list[str] = []

    def list_users(self) -> list:
        return []

    def list_jobs(self) -> list:
        return []

    def list_candidates(self) -> list:
        return []

    def list_activity(self) -> list:
        return []

    def upsert_user(self, record) -> None:
        return None

    def delete_user(self, user_id: str) -> None:
        return None

    def upsert_job(self, record) -> None:
        if self.fail_jobs:
            raise StoreUnavailableError(f"could not write jobs {record.id}")

    def insert_activity(self, record) -> None:
        return None

    def upsert_candidate(self, record: CandidateRecord) -> None:
        self.candidate_writes.append(record.id)

    def delete_candidate(self, candidate_id: str) -> None:
        self.candidate_deletes.append(candidate_id)


def _seeded(persistence=None):
    store = InMemoryStore(persistence=persistence)
    admin = store.ensure_bootstrap_admin(user_id="usr_admin", name="Admin", email="admin@example.com")
    owner = store.create_user(
        UserCreateRequest(name="Rina", email="rina@example.com", designation=Designation.recruiter),
        actor_id=admin.id,
    )
    other = store.create_user(
        UserCreateRequest(name="Omar", email="omar@example.com", designation=Designation.recruiter),
        actor_id=admin.id,
    )
    job = store.create_job(
        JobCreateRequest(
            title="Backend Engineer",
            stages=[StageDefinition(name="Technical"), StageDefinition(name="HR")],
        ),
        actor_id=admin.id,
    )
    return store, admin, owner, other, job


def test_failed_count_write_undoes_candidate_create() -> None:
    persistence = JobWriteFailure()
    store, _, owner, _, job = _seeded(persistence)
    persistence.fail_jobs = True

    with pytest.raises(StoreUnavailableError):
        store.create_candidate(
            CandidateCreateRequest(job_id=job.id, dynamic_fields={"Email": "c@example.com"}),
            actor_id=owner.id,
        )

    assert store.list_candidates() == []
    assert persistence.candidate_deletes == persistence.candidate_writes
    assert len(persistence.candidate_deletes) == 1
    assert store.get_job(job.id).candidate_count == 0


def test_failed_count_write_undoes_candidate_delete() -> None:
    persistence = JobWriteFailure()
    store, admin, owner, _, job = _seeded(persistence)
    candidate = store.create_candidate(
        CandidateCreateRequest(job_id=job.id, dynamic_fields={"Email": "c@example.com"}),
        actor_id=owner.id,
    )
    assert store.get_job(job.id).candidate_count == 1
    persistence.fail_jobs = True

    with pytest.raises(StoreUnavailableError):
        store.delete_candidate(candidate.id, actor_id=admin.id)

    assert store.get_candidate(candidate.id) == candidate
    assert persistence.candidate_deletes == [candidate.id]
    assert persistence.candidate_writes[-1] == candidate.id
    assert store.get_job(job.id).candidate_count == 1


def test_ownership_is_checked_against_the_record_under_lock() -> None:
    store, admin, owner, other, job = _seeded()
    candidate = store.create_candidate(
        CandidateCreateRequest(job_id=job.id, dynamic_fields={"Email": "c@example.com"}),
        actor_id=owner.id,
    )
    guard = lifecycle_guard(store, owner)
    store.reassign_candidate(candidate.id, other.id, actor_id=admin.id)

    with pytest.raises(AccessDeniedError):
        store.change_status(
            candidate.id,
            StatusChangeRequest(status=CandidateStatus.shortlisted),
            actor=owner,
            authorize=guard,
        )
    with pytest.raises(AccessDeniedError):
        store.complete_interview_stage(
            candidate.id,
            StageCompletionRequest(stage_name="Technical", outcome=StageOutcome.selected),
            actor=owner,
            authorize=guard,
        )

    current = store.get_candidate(candidate.id)
    assert current.status == CandidateStatus.new
    assert current.status_history == []
    assert current.interview_stage_history == []

    moved = store.change_status(
        candidate.id,
        StatusChangeRequest(status=CandidateStatus.shortlisted),
        actor=other,
        authorize=lifecycle_guard(store, other),
    )
    assert moved.status == CandidateStatus.shortlisted
