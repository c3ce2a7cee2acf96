from __future__ import annotations

import logging
from threading import RLock
from typing import TYPE_CHECKING, Callable, Optional
from uuid import uuid4

from backend.app.errors import ReferentialError, StoreUnavailableError, TrackerError
from backend.app.models import (
    ActivityAction,
    ActivityLogRecord,
    CandidateCreateRequest,
    CandidateRecord,
    CandidateUpdateRequest,
    Designation,
    JobCreateRequest,
    JobRecord,
    JobStatus,
    StageCompletionRequest,
    StatusChangeRequest,
    UserCreateRequest,
    UserRecord,
    UserUpdateRequest,
    utc_now,
)
from backend.app.services.dedupe import find_duplicate
from backend.app.services.interviews import complete_stage
from backend.app.services.workflow import apply_transition

if TYPE_CHECKING:
    from backend.app.persistence import SqlPersistence

logger = logging.getLogger("recruit_tracker.store")

# Raises when the actor may not touch the candidate as it stands under the lock.
CandidateCheck = Callable[[CandidateRecord], None]


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:10]}"


class StoreConflictError(TrackerError):
    pass


class StoreNotFoundError(ReferentialError):
    pass


class InMemoryStore:
    """
    Authoritative in-process copy of users, jobs and candidates, written
    through to ``persistence`` one document at a time.

    Every candidate mutation is a read-modify-write under ``_lock``; the
    record's ``version`` goes up by one per accepted write, so callers can
    detect a stale read with ``expected_version``.
    """

    def __init__(self, persistence: Optional["SqlPersistence"] = None) -> None:
        self._lock = RLock()
        self.persistence = persistence
        self.users: dict[str, UserRecord] = {}
        self.jobs: dict[str, JobRecord] = {}
        self.candidates: dict[str, CandidateRecord] = {}
        self.activity: list[ActivityLogRecord] = []

        if self.persistence:
            for user in self.persistence.list_users():
                self.users[user.id] = user
            for job in self.persistence.list_jobs():
                self.jobs[job.id] = job
            for candidate in self.persistence.list_candidates():
                self.candidates[candidate.id] = candidate
            self.activity = sorted(
                self.persistence.list_activity(), key=lambda item: item.created_at_utc
            )

    # Users

    def ensure_bootstrap_admin(self, *, user_id: str, name: str, email: str) -> UserRecord:
        with self._lock:
            existing = self.users.get(user_id)
            if existing:
                return existing
            if self.users:
                admins = [user for user in self.users.values() if user.is_admin_tier]
                if admins:
                    return admins[0]
            admin = UserRecord(
                id=user_id,
                name=name,
                email=email.lower(),
                designation=Designation.admin,
                is_admin=True,
                created_at_utc=utc_now(),
            )
            self.users[admin.id] = admin
            self._persist_user(admin)
            logger.info("bootstrap_admin_created user_id=%s", admin.id)
            return admin

    def get_user(self, user_id: str) -> UserRecord:
        user = self.users.get(user_id)
        if not user:
            raise StoreNotFoundError(f"user not found: {user_id}")
        return user

    def list_users(self) -> list[UserRecord]:
        with self._lock:
            return list(self.users.values())

    def create_user(self, request: UserCreateRequest, *, actor_id: str) -> UserRecord:
        with self._lock:
            self._ensure_unique_email(request.email)
            if request.reporter:
                self.get_user(request.reporter)
            user = UserRecord(
                id=new_id("usr"),
                name=request.name.strip(),
                email=request.email,
                designation=request.designation,
                is_admin=request.is_admin,
                reporter=request.reporter or None,
                created_at_utc=utc_now(),
            )
            self.users[user.id] = user
            self._persist_user(user)
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.created,
                module="user",
                description=f"Created user {user.name} ({user.designation.value})",
                target_id=user.id,
            )
            return user

    def update_user(
        self, user_id: str, request: UserUpdateRequest, *, actor_id: str
    ) -> UserRecord:
        with self._lock:
            user = self.get_user(user_id)
            changes = request.model_dump(exclude_unset=True)
            if changes.get("email"):
                self._ensure_unique_email(changes["email"], exclude_id=user_id)
            if "reporter" in changes:
                # An explicit null detaches the user from its reporter.
                if changes["reporter"]:
                    self.get_user(changes["reporter"])
                else:
                    changes["reporter"] = None
            for key in ("name", "email", "designation", "is_admin"):
                if key in changes and changes[key] is None:
                    changes.pop(key)
            updated = user.model_copy(update=changes)
            self.users[user_id] = updated
            self._persist_user(updated, previous=user)
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.updated,
                module="user",
                description=f"Updated user {updated.name}",
                target_id=user_id,
            )
            return updated

    def delete_user(self, user_id: str, *, actor_id: str) -> None:
        """Remove a user. Candidates they created are left pointing at the missing id."""
        with self._lock:
            user = self.get_user(user_id)
            if user_id == actor_id:
                raise StoreConflictError("users cannot delete themselves")
            del self.users[user_id]
            if self.persistence:
                try:
                    self.persistence.delete_user(user_id)
                except StoreUnavailableError:
                    self.users[user_id] = user
                    raise
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.deleted,
                module="user",
                description=f"Deleted user {user.name}",
                target_id=user_id,
            )

    # Jobs

    def get_job(self, job_id: str) -> JobRecord:
        job = self.jobs.get(job_id)
        if not job:
            raise StoreNotFoundError(f"job not found: {job_id}")
        return job

    def list_jobs(self) -> list[JobRecord]:
        with self._lock:
            return list(self.jobs.values())

    def create_job(self, request: JobCreateRequest, *, actor_id: str) -> JobRecord:
        with self._lock:
            for recruiter_id in request.assigned_recruiters:
                self.get_user(recruiter_id)
            now = utc_now()
            job = JobRecord(
                id=new_id("job"),
                title=request.title.strip(),
                client_id=request.client_id,
                client_name=request.client_name,
                client_contacts=[contact.strip() for contact in request.client_contacts if contact.strip()],
                stages=[stage.model_copy(update={"name": stage.name.strip()}) for stage in request.stages],
                created_by=actor_id,
                assigned_recruiters=list(dict.fromkeys(request.assigned_recruiters)),
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.jobs[job.id] = job
            self._persist_job(job)
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.created,
                module="job",
                description=f"Created job {job.title}",
                target_id=job.id,
            )
            return job

    def set_job_status(self, job_id: str, status: JobStatus, *, actor_id: str) -> JobRecord:
        with self._lock:
            job = self.get_job(job_id)
            updated = job.model_copy(update={"status": status, "updated_at_utc": utc_now()})
            self.jobs[job_id] = updated
            self._persist_job(updated, previous=job)
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.updated,
                module="job",
                description=f"Set job {job.title} to {status.value}",
                target_id=job_id,
            )
            return updated

    # Candidates

    def get_candidate(self, candidate_id: str) -> CandidateRecord:
        candidate = self.candidates.get(candidate_id)
        if not candidate:
            raise StoreNotFoundError(f"candidate not found: {candidate_id}")
        return candidate

    def list_candidates(self) -> list[CandidateRecord]:
        with self._lock:
            return list(self.candidates.values())

    def create_candidate(
        self, request: CandidateCreateRequest, *, actor_id: str, owner_id: Optional[str] = None
    ) -> CandidateRecord:
        with self._lock:
            job = self.get_job(request.job_id)
            if job.status == JobStatus.closed:
                raise StoreConflictError(f"job is closed: {job.id}")
            owner = owner_id or actor_id
            self.get_user(owner)
            duplicate = find_duplicate(
                self.candidates.values(), job_id=job.id, fields=request.dynamic_fields
            )
            if duplicate:
                raise StoreConflictError(
                    f"candidate already exists for job {job.id}: {duplicate.id}"
                )
            now = utc_now()
            candidate = CandidateRecord(
                id=new_id("cand"),
                job_id=job.id,
                created_by=owner,
                dynamic_fields=request.dynamic_fields,
                resume_url=request.resume_url,
                linkedin_url=request.linkedin_url,
                portfolio_url=request.portfolio_url,
                notes=request.notes,
                version=1,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self._commit_candidate(candidate, previous=None)
            try:
                self._adjust_candidate_count(job, 1)
            except StoreUnavailableError:
                self._discard_candidate(candidate.id)
                raise
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.created,
                module="candidate",
                description=f"Created candidate for {job.title}",
                target_id=candidate.id,
            )
            return candidate

    def update_candidate_fields(
        self, candidate_id: str, request: CandidateUpdateRequest, *, actor_id: str
    ) -> CandidateRecord:
        """Edit intake data and links. Lifecycle fields are only changed by the state machines."""
        with self._lock:
            candidate = self.get_candidate(candidate_id)
            changes = request.model_dump(exclude_unset=True)
            if changes.get("dynamic_fields") is not None:
                duplicate = find_duplicate(
                    self.candidates.values(),
                    job_id=candidate.job_id,
                    fields=changes["dynamic_fields"],
                    exclude_id=candidate_id,
                )
                if duplicate:
                    raise StoreConflictError(
                        f"candidate already exists for job {candidate.job_id}: {duplicate.id}"
                    )
            else:
                changes.pop("dynamic_fields", None)
            changes["updated_at_utc"] = utc_now()
            updated = self._commit_candidate(candidate.model_copy(update=changes), previous=candidate)
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.updated,
                module="candidate",
                description="Updated candidate details",
                target_id=candidate_id,
            )
            return updated

    def delete_candidate(self, candidate_id: str, *, actor_id: str) -> None:
        with self._lock:
            candidate = self.get_candidate(candidate_id)
            del self.candidates[candidate_id]
            if self.persistence:
                try:
                    self.persistence.delete_candidate(candidate_id)
                except StoreUnavailableError:
                    self.candidates[candidate_id] = candidate
                    raise
            job = self.jobs.get(candidate.job_id)
            if job:
                try:
                    self._adjust_candidate_count(job, -1)
                except StoreUnavailableError:
                    self._restore_candidate(candidate)
                    raise
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.deleted,
                module="candidate",
                description="Deleted candidate",
                target_id=candidate_id,
            )

    def change_status(
        self,
        candidate_id: str,
        payload: StatusChangeRequest,
        *,
        actor: UserRecord,
        authorize: Optional[CandidateCheck] = None,
    ) -> CandidateRecord:
        with self._lock:
            candidate = self.get_candidate(candidate_id)
            if authorize is not None:
                authorize(candidate)
            self._check_version(candidate, payload.expected_version)
            job = self.get_job(candidate.job_id)
            updated = apply_transition(candidate, job, payload, actor)
            updated = self._commit_candidate(updated, previous=candidate)
            logger.info(
                "status_changed candidate_id=%s from=%s to=%s actor=%s version=%s",
                candidate_id,
                candidate.status.value,
                updated.status.value,
                actor.id,
                updated.version,
            )
            self._log_activity(
                user_id=actor.id,
                action=ActivityAction.status_changed,
                module="candidate",
                description=f'Updated candidate status to "{updated.status.value}"',
                target_id=candidate_id,
            )
            return updated

    def complete_interview_stage(
        self,
        candidate_id: str,
        request: StageCompletionRequest,
        *,
        actor: UserRecord,
        authorize: Optional[CandidateCheck] = None,
    ) -> CandidateRecord:
        with self._lock:
            candidate = self.get_candidate(candidate_id)
            if authorize is not None:
                authorize(candidate)
            self._check_version(candidate, request.expected_version)
            job = self.get_job(candidate.job_id)
            updated = complete_stage(
                candidate, job, request.stage_name, request.outcome, request.notes, actor
            )
            updated = self._commit_candidate(updated, previous=candidate)
            logger.info(
                "stage_completed candidate_id=%s stage=%s outcome=%s next_stage=%s actor=%s",
                candidate_id,
                request.stage_name,
                request.outcome.value,
                updated.interview_stage,
                actor.id,
            )
            self._log_activity(
                user_id=actor.id,
                action=ActivityAction.stage_completed,
                module="candidate",
                description=f"{request.stage_name} - {request.outcome.value}",
                target_id=candidate_id,
            )
            return updated

    def reassign_candidate(
        self, candidate_id: str, new_owner_id: str, *, actor_id: str
    ) -> CandidateRecord:
        with self._lock:
            candidate = self.get_candidate(candidate_id)
            self.get_user(new_owner_id)
            updated = candidate.model_copy(
                update={"created_by": new_owner_id, "updated_at_utc": utc_now()}
            )
            updated = self._commit_candidate(updated, previous=candidate)
            self._log_activity(
                user_id=actor_id,
                action=ActivityAction.reassigned,
                module="candidate",
                description=f"Reassigned candidate from {candidate.created_by} to {new_owner_id}",
                target_id=candidate_id,
            )
            return updated

    # Activity

    def list_activity(
        self, *, limit: int = 100, user_id: Optional[str] = None, target_id: Optional[str] = None
    ) -> list[ActivityLogRecord]:
        with self._lock:
            records = list(self.activity)
        if user_id:
            records = [item for item in records if item.user_id == user_id]
        if target_id:
            records = [item for item in records if item.target_id == target_id]
        records.reverse()
        safe_limit = max(1, min(limit, 1000))
        return records[:safe_limit]

    # Internals

    def _ensure_unique_email(self, email: str, *, exclude_id: Optional[str] = None) -> None:
        for user in self.users.values():
            if user.email == email and user.id != exclude_id:
                raise StoreConflictError(f"user already exists: {email}")

    @staticmethod
    def _check_version(candidate: CandidateRecord, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != candidate.version:
            raise StoreConflictError(
                f"candidate {candidate.id} changed: expected version {expected_version}, "
                f"found {candidate.version}"
            )

    def _commit_candidate(
        self, updated: CandidateRecord, *, previous: Optional[CandidateRecord]
    ) -> CandidateRecord:
        if previous is not None:
            updated = updated.model_copy(update={"version": previous.version + 1})
        self.candidates[updated.id] = updated
        if self.persistence:
            try:
                self.persistence.upsert_candidate(updated)
            except StoreUnavailableError:
                if previous is None:
                    self.candidates.pop(updated.id, None)
                else:
                    self.candidates[updated.id] = previous
                raise
        return updated

    def _discard_candidate(self, candidate_id: str) -> None:
        self.candidates.pop(candidate_id, None)
        if not self.persistence:
            return
        try:
            self.persistence.delete_candidate(candidate_id)
        except StoreUnavailableError:
            logger.exception("candidate_discard_failed candidate_id=%s", candidate_id)

    def _restore_candidate(self, candidate: CandidateRecord) -> None:
        self.candidates[candidate.id] = candidate
        if not self.persistence:
            return
        try:
            self.persistence.upsert_candidate(candidate)
        except StoreUnavailableError:
            logger.exception("candidate_restore_failed candidate_id=%s", candidate.id)

    def _adjust_candidate_count(self, job: JobRecord, delta: int) -> None:
        current = self.jobs.get(job.id, job)
        updated = current.model_copy(
            update={"candidate_count": max(0, current.candidate_count + delta)}
        )
        self.jobs[job.id] = updated
        self._persist_job(updated, previous=current)

    def _persist_user(self, record: UserRecord, *, previous: Optional[UserRecord] = None) -> None:
        if not self.persistence:
            return
        try:
            self.persistence.upsert_user(record)
        except StoreUnavailableError:
            if previous is None:
                self.users.pop(record.id, None)
            else:
                self.users[record.id] = previous
            raise

    def _persist_job(self, record: JobRecord, *, previous: Optional[JobRecord] = None) -> None:
        if not self.persistence:
            return
        try:
            self.persistence.upsert_job(record)
        except StoreUnavailableError:
            if previous is None:
                self.jobs.pop(record.id, None)
            else:
                self.jobs[record.id] = previous
            raise

    def _log_activity(
        self,
        *,
        user_id: str,
        action: ActivityAction,
        module: str,
        description: str,
        target_id: Optional[str] = None,
    ) -> None:
        record = ActivityLogRecord(
            id=new_id("act"),
            user_id=user_id,
            action=action,
            module=module,
            description=description,
            target_id=target_id,
            created_at_utc=utc_now(),
        )
        self.activity.append(record)
        if not self.persistence:
            return
        try:
            self.persistence.insert_activity(record)
        except StoreUnavailableError:
            # The audited write is already committed; failing here would invite a
            # retry that duplicates history.
            logger.exception("activity_log_failed action=%s target_id=%s", action.value, target_id)
