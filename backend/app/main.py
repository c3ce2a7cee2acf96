from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from backend.app.auth import get_actor, require_roles
from backend.app.errors import (
    AccessDeniedError,
    PayloadValidationError,
    ReferentialError,
    StoreUnavailableError,
    TrackerError,
    TransitionConflictError,
)
from backend.app.models import (
    ActivityLogRecord,
    CandidateCreateRequest,
    CandidateListResponse,
    CandidateRecord,
    CandidateStatus,
    CandidateUpdateRequest,
    Designation,
    JobCreateRequest,
    JobRecord,
    JobStatusUpdateRequest,
    ReassignFailure,
    ReassignRequest,
    ReassignResponse,
    ReporteesResponse,
    ShareJobGroup,
    ShareRequest,
    ShareResponse,
    StageCompletionRequest,
    StatusChangeRequest,
    UserCreateRequest,
    UserRecord,
    UserUpdateRequest,
)
from backend.app.observability import MetricsRegistry, configure_logging, observe_request
from backend.app.persistence import SqlPersistence
from backend.app.services.directory import reportees_of
from backend.app.services.listing import CandidateFilters, filter_candidates, paginate
from backend.app.services.orphans import find_orphans, reassign
from backend.app.services.visibility import (
    can_change_status,
    can_delete_candidate,
    can_edit_candidate,
    can_view_candidate,
    is_read_only,
    visible_candidates,
    visible_jobs,
)
from backend.app.settings import Settings, load_settings
from backend.app.store import InMemoryStore, StoreConflictError


def create_app() -> FastAPI:
    settings = load_settings()
    app = FastAPI(title="Recruitment Pipeline Tracker API", version="0.1.0")
    configure_logging(settings.log_level)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    persistence = SqlPersistence(settings.database_url) if settings.persistence_enabled else None
    store = InMemoryStore(persistence=persistence)
    store.ensure_bootstrap_admin(
        user_id=settings.bootstrap_admin_id,
        name=settings.bootstrap_admin_name,
        email=settings.bootstrap_admin_email,
    )
    app.state.store = store
    app.state.settings = settings
    app.state.metrics = MetricsRegistry()

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        return await observe_request(request, call_next, metrics=app.state.metrics)

    app.include_router(build_router())
    return app


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics


def http_error(exc: TrackerError) -> HTTPException:
    if isinstance(exc, PayloadValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": exc.message, "fields": exc.fields},
        )
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ReferentialError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (TransitionConflictError, StoreConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def load_visible_candidate(
    store: InMemoryStore,
    actor: UserRecord,
    candidate_id: str,
) -> CandidateRecord:
    candidate = store.get_candidate(candidate_id)
    if not can_view_candidate(actor, candidate, store.list_users()):
        raise AccessDeniedError(f"candidate {candidate_id} is not visible to {actor.id}")
    return candidate


def load_visible_job(store: InMemoryStore, actor: UserRecord, job_id: str) -> JobRecord:
    job = store.get_job(job_id)
    if not visible_jobs(actor, [job], store.list_users()):
        raise AccessDeniedError(f"job {job_id} is not visible to {actor.id}")
    return job


def lifecycle_guard(store: InMemoryStore, actor: UserRecord) -> Callable[[CandidateRecord], None]:
    """Ownership check the store runs against the candidate it holds under its lock."""

    def check(candidate: CandidateRecord) -> None:
        if not can_change_status(actor, candidate, store.list_users()):
            raise AccessDeniedError(f"{actor.id} cannot change candidate {candidate.id}")

    return check


def build_router() -> APIRouter:
    router = APIRouter()
    admin_only = require_roles(Designation.admin)
    job_managers = require_roles(Designation.admin, Designation.manager)

    @router.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/health/ready")
    def readiness(request: Request) -> dict[str, str]:
        settings = get_settings(request)
        persistence = getattr(request.app.state.store, "persistence", None)
        if settings.persistence_enabled and persistence and not persistence.ping():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="database unavailable",
            )
        return {"status": "ready"}

    @router.get("/metrics", response_class=PlainTextResponse)
    def metrics(request: Request) -> Response:
        registry = get_metrics(request)
        return PlainTextResponse(registry.to_prometheus())

    # Users

    @router.post("/users", response_model=UserRecord, status_code=status.HTTP_201_CREATED)
    def create_user(
        payload: UserCreateRequest,
        request: Request,
        actor: UserRecord = Depends(admin_only),
    ) -> UserRecord:
        try:
            return get_store(request).create_user(payload, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.get("/users", response_model=list[UserRecord])
    def list_users(
        request: Request,
        _: UserRecord = Depends(get_actor),
    ) -> list[UserRecord]:
        users = get_store(request).list_users()
        return sorted(users, key=lambda user: user.created_at_utc)

    @router.get("/users/{user_id}", response_model=UserRecord)
    def get_user(
        user_id: str,
        request: Request,
        _: UserRecord = Depends(get_actor),
    ) -> UserRecord:
        try:
            return get_store(request).get_user(user_id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.put("/users/{user_id}", response_model=UserRecord)
    def update_user(
        user_id: str,
        payload: UserUpdateRequest,
        request: Request,
        actor: UserRecord = Depends(admin_only),
    ) -> UserRecord:
        try:
            return get_store(request).update_user(user_id, payload, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(
        user_id: str,
        request: Request,
        actor: UserRecord = Depends(admin_only),
    ) -> Response:
        try:
            get_store(request).delete_user(user_id, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get("/users/{user_id}/reportees", response_model=ReporteesResponse)
    def list_reportees(
        user_id: str,
        request: Request,
        _: UserRecord = Depends(get_actor),
    ) -> ReporteesResponse:
        store = get_store(request)
        try:
            user = store.get_user(user_id)
        except TrackerError as exc:
            raise http_error(exc) from exc
        found = reportees_of(user.id, store.list_users(), user.designation)
        return ReporteesResponse(user_id=user.id, reportees=sorted(found))

    # Jobs

    @router.post("/jobs", response_model=JobRecord, status_code=status.HTTP_201_CREATED)
    def create_job(
        payload: JobCreateRequest,
        request: Request,
        actor: UserRecord = Depends(job_managers),
    ) -> JobRecord:
        try:
            return get_store(request).create_job(payload, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.get("/jobs", response_model=list[JobRecord])
    def list_jobs(
        request: Request,
        job_status: Optional[str] = Query(default=None, alias="status"),
        actor: UserRecord = Depends(get_actor),
    ) -> list[JobRecord]:
        store = get_store(request)
        jobs = visible_jobs(actor, store.list_jobs(), store.list_users())
        if job_status:
            jobs = [job for job in jobs if job.status.value.lower() == job_status.strip().lower()]
        return sorted(jobs, key=lambda job: job.created_at_utc, reverse=True)

    @router.get("/jobs/{job_id}", response_model=JobRecord)
    def get_job(
        job_id: str,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> JobRecord:
        try:
            return load_visible_job(get_store(request), actor, job_id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.patch("/jobs/{job_id}/status", response_model=JobRecord)
    def set_job_status(
        job_id: str,
        payload: JobStatusUpdateRequest,
        request: Request,
        actor: UserRecord = Depends(job_managers),
    ) -> JobRecord:
        store = get_store(request)
        try:
            load_visible_job(store, actor, job_id)
            return store.set_job_status(job_id, payload.status, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    # Candidates

    @router.post("/candidates", response_model=CandidateRecord, status_code=status.HTTP_201_CREATED)
    def create_candidate(
        payload: CandidateCreateRequest,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> CandidateRecord:
        store = get_store(request)
        try:
            if is_read_only(actor):
                raise AccessDeniedError(f"{actor.designation.value} users cannot add candidates")
            load_visible_job(store, actor, payload.job_id)
            owner_id = payload.created_by if actor.is_admin_tier and payload.created_by else None
            return store.create_candidate(payload, actor_id=actor.id, owner_id=owner_id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.get("/candidates", response_model=CandidateListResponse)
    def list_candidates(
        request: Request,
        search: Optional[str] = None,
        candidate_status: Optional[CandidateStatus] = Query(default=None, alias="status"),
        client: Optional[str] = None,
        job_title: Optional[str] = None,
        job_id: Optional[str] = None,
        stage: Optional[str] = None,
        created_from: Optional[date] = None,
        created_to: Optional[date] = None,
        selection_from: Optional[date] = None,
        selection_to: Optional[date] = None,
        joining_from: Optional[date] = None,
        joining_to: Optional[date] = None,
        page: int = Query(default=1, ge=1),
        page_size: Optional[int] = Query(default=None, ge=1),
        actor: UserRecord = Depends(get_actor),
    ) -> CandidateListResponse:
        store = get_store(request)
        settings = get_settings(request)
        filters = CandidateFilters(
            search=search,
            status=candidate_status,
            client=client,
            job_title=job_title,
            job_id=job_id,
            stage=stage,
            created_from=created_from,
            created_to=created_to,
            selection_from=selection_from,
            selection_to=selection_to,
            joining_from=joining_from,
            joining_to=joining_to,
        )
        if is_read_only(actor):
            filters = filters.forced_status(CandidateStatus.joined)
        size = min(page_size or settings.default_page_size, settings.max_page_size)

        visible = visible_candidates(actor, store.list_candidates(), store.list_users())
        jobs = {job.id: job for job in store.list_jobs()}
        matched = filter_candidates(visible, jobs, filters)
        items, total, total_pages = paginate(matched, page=page, page_size=size)
        return CandidateListResponse(
            items=items,
            total_count=total,
            page=page,
            page_size=size,
            total_pages=total_pages,
        )

    @router.post("/candidates/share", response_model=ShareResponse)
    def share_candidates(
        payload: ShareRequest,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> ShareResponse:
        """Group the requested candidates by job with the client contacts to notify."""
        store = get_store(request)
        roster = store.list_users()
        groups: dict[str, ShareJobGroup] = {}
        missing: list[str] = []
        for candidate_id in dict.fromkeys(payload.candidate_ids):
            candidate = store.candidates.get(candidate_id)
            if candidate is None or not can_view_candidate(actor, candidate, roster):
                missing.append(candidate_id)
                continue
            job = store.jobs.get(candidate.job_id)
            if job is None:
                missing.append(candidate_id)
                continue
            group = groups.get(job.id)
            if group is None:
                group = ShareJobGroup(
                    job_id=job.id,
                    job_title=job.title,
                    client_name=job.client_name,
                    client_contacts=list(job.client_contacts),
                    candidates=[],
                )
                groups[job.id] = group
            group.candidates.append(candidate)
        return ShareResponse(groups=list(groups.values()), missing=missing)

    @router.get("/candidates/{candidate_id}", response_model=CandidateRecord)
    def get_candidate(
        candidate_id: str,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> CandidateRecord:
        try:
            return load_visible_candidate(get_store(request), actor, candidate_id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.patch("/candidates/{candidate_id}", response_model=CandidateRecord)
    def update_candidate(
        candidate_id: str,
        payload: CandidateUpdateRequest,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> CandidateRecord:
        store = get_store(request)
        try:
            candidate = store.get_candidate(candidate_id)
            if not can_edit_candidate(actor, candidate, store.list_users()):
                raise AccessDeniedError(f"{actor.id} cannot edit candidate {candidate_id}")
            return store.update_candidate_fields(candidate_id, payload, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc

    @router.delete("/candidates/{candidate_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_candidate(
        candidate_id: str,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> Response:
        store = get_store(request)
        try:
            candidate = store.get_candidate(candidate_id)
            if not can_delete_candidate(actor, candidate):
                raise AccessDeniedError(f"{actor.id} cannot delete candidate {candidate_id}")
            store.delete_candidate(candidate_id, actor_id=actor.id)
        except TrackerError as exc:
            raise http_error(exc) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/candidates/{candidate_id}/status", response_model=CandidateRecord)
    def change_status(
        candidate_id: str,
        payload: StatusChangeRequest,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> CandidateRecord:
        store = get_store(request)
        try:
            updated = store.change_status(
                candidate_id, payload, actor=actor, authorize=lifecycle_guard(store, actor)
            )
        except TrackerError as exc:
            raise http_error(exc) from exc
        get_metrics(request).record_transition(updated.status.value)
        return updated

    @router.post("/candidates/{candidate_id}/interview-stages", response_model=CandidateRecord)
    def complete_interview_stage(
        candidate_id: str,
        payload: StageCompletionRequest,
        request: Request,
        actor: UserRecord = Depends(get_actor),
    ) -> CandidateRecord:
        store = get_store(request)
        try:
            updated = store.complete_interview_stage(
                candidate_id, payload, actor=actor, authorize=lifecycle_guard(store, actor)
            )
        except TrackerError as exc:
            raise http_error(exc) from exc
        get_metrics(request).record_stage_outcome(payload.outcome.value)
        return updated

    # Orphans

    @router.get("/orphans", response_model=list[CandidateRecord])
    def list_orphans(
        request: Request,
        _: UserRecord = Depends(admin_only),
    ) -> list[CandidateRecord]:
        store = get_store(request)
        orphans = find_orphans(store.list_candidates(), store.list_users())
        return sorted(orphans, key=lambda item: item.created_at_utc, reverse=True)

    @router.post("/orphans/reassign", response_model=ReassignResponse)
    def reassign_orphans(
        payload: ReassignRequest,
        request: Request,
        actor: UserRecord = Depends(admin_only),
    ) -> ReassignResponse:
        store = get_store(request)
        try:
            store.get_user(payload.new_owner_id)
        except TrackerError as exc:
            raise http_error(exc) from exc

        def write(candidate_id: str, new_owner_id: str) -> CandidateRecord:
            return store.reassign_candidate(candidate_id, new_owner_id, actor_id=actor.id)

        result = reassign(payload.candidate_ids, payload.new_owner_id, write)
        get_metrics(request).record_reassignment(
            succeeded=len(result.succeeded), failed=len(result.failed)
        )
        return ReassignResponse(
            new_owner_id=result.new_owner_id,
            succeeded=result.succeeded,
            failed=[
                ReassignFailure(candidate_id=candidate_id, reason=reason)
                for candidate_id, reason in result.failed
            ],
            skipped=result.skipped,
            total=result.total,
            succeeded_count=len(result.succeeded),
        )

    # Activity

    @router.get("/activity", response_model=list[ActivityLogRecord])
    def list_activity(
        request: Request,
        limit: int = Query(default=100, ge=1, le=1000),
        user_id: Optional[str] = None,
        target_id: Optional[str] = None,
        _: UserRecord = Depends(admin_only),
    ) -> list[ActivityLogRecord]:
        return get_store(request).list_activity(limit=limit, user_id=user_id, target_id=target_id)

    return router


app = create_app()
