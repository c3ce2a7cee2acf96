from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.utcnow()


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("email must look like name@domain.tld")
    return value


class Designation(str, Enum):
    admin = "Admin"
    manager = "Manager"
    recruiter = "Recruiter"
    mentor = "Mentor"
    finance = "Finance"


class CandidateStatus(str, Enum):
    new = "New"
    shortlisted = "Shortlisted"
    interviewed = "Interviewed"
    selected = "Selected"
    joined = "Joined"
    rejected = "Rejected"
    dropped = "Dropped"
    hold = "Hold"


class StageOutcome(str, Enum):
    selected = "Selected"
    rejected = "Rejected"


class Attribution(str, Enum):
    manager = "Manager"
    client = "Client"


class JobStatus(str, Enum):
    open = "Open"
    closed = "Closed"


class ActivityAction(str, Enum):
    created = "created"
    updated = "updated"
    deleted = "deleted"
    status_changed = "status_changed"
    stage_completed = "stage_completed"
    reassigned = "reassigned"


# Records


class UserRecord(BaseModel):
    id: str
    name: str
    email: str
    designation: Designation
    is_admin: bool = False
    reporter: Optional[str] = None
    created_at_utc: datetime

    @property
    def is_admin_tier(self) -> bool:
        return self.is_admin or self.designation == Designation.admin


class StageDefinition(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    responsible: Designation = Designation.recruiter
    mandatory: bool = True


class JobRecord(BaseModel):
    id: str
    title: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_contacts: list[str] = Field(default_factory=list)
    stages: list[StageDefinition] = Field(default_factory=list)
    status: JobStatus = JobStatus.open
    created_by: str
    assigned_recruiters: list[str] = Field(default_factory=list)
    candidate_count: int = 0
    created_at_utc: datetime
    updated_at_utc: datetime

    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]


class StatusHistoryEntry(BaseModel):
    status: CandidateStatus
    from_status: Optional[CandidateStatus] = None
    comment: str = ""
    selection_date: Optional[date] = None
    expected_joining_date: Optional[date] = None
    joining_date: Optional[date] = None
    offered_ctc: Optional[str] = None
    offer_letter_url: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_by: Optional[Attribution] = None
    dropped_by: Optional[Attribution] = None
    interview_stage: Optional[str] = None
    updated_by: str
    timestamp: datetime


class InterviewStageHistoryEntry(BaseModel):
    stage_name: str
    outcome: StageOutcome
    notes: str = ""
    updated_by: str
    timestamp: datetime


class CandidateRecord(BaseModel):
    id: str
    job_id: str
    created_by: str
    dynamic_fields: dict[str, Any] = Field(default_factory=dict)
    resume_url: Optional[str] = None
    offer_letter_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    notes: Optional[str] = None

    status: CandidateStatus = CandidateStatus.new
    interview_stage: Optional[str] = None
    selection_date: Optional[date] = None
    expected_joining_date: Optional[date] = None
    joining_date: Optional[date] = None
    offered_ctc: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_by: Optional[Attribution] = None
    dropped_by: Optional[Attribution] = None
    status_updated_by: Optional[str] = None
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    interview_stage_history: list[InterviewStageHistoryEntry] = Field(default_factory=list)

    version: int = 0
    created_at_utc: datetime
    updated_at_utc: datetime


class ActivityLogRecord(BaseModel):
    id: str
    user_id: str
    action: ActivityAction
    module: str
    description: str
    target_id: Optional[str] = None
    created_at_utc: datetime


# Requests / responses


class UserCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    email: str = Field(min_length=3, max_length=254)
    designation: Designation
    is_admin: bool = False
    reporter: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class UserUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    email: Optional[str] = Field(default=None, min_length=3, max_length=254)
    designation: Optional[Designation] = None
    is_admin: Optional[bool] = None
    reporter: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return normalize_email(value)


class ReporteesResponse(BaseModel):
    user_id: str
    reportees: list[str]


class JobCreateRequest(BaseModel):
    title: str = Field(min_length=2, max_length=160)
    client_id: Optional[str] = None
    client_name: Optional[str] = Field(default=None, max_length=160)
    client_contacts: list[str] = Field(default_factory=list)
    stages: list[StageDefinition] = Field(default_factory=list)
    assigned_recruiters: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_stages(self) -> "JobCreateRequest":
        names = [stage.name.strip().lower() for stage in self.stages]
        if len(names) != len(set(names)):
            raise ValueError("stage names must be unique within a job")
        return self


class JobStatusUpdateRequest(BaseModel):
    status: JobStatus


class CandidateCreateRequest(BaseModel):
    job_id: str
    dynamic_fields: dict[str, Any] = Field(default_factory=dict)
    resume_url: Optional[str] = Field(default=None, max_length=2048)
    linkedin_url: Optional[str] = Field(default=None, max_length=2048)
    portfolio_url: Optional[str] = Field(default=None, max_length=2048)
    notes: Optional[str] = Field(default=None, max_length=2000)
    created_by: Optional[str] = None


class CandidateUpdateRequest(BaseModel):
    dynamic_fields: Optional[dict[str, Any]] = None
    resume_url: Optional[str] = Field(default=None, max_length=2048)
    linkedin_url: Optional[str] = Field(default=None, max_length=2048)
    portfolio_url: Optional[str] = Field(default=None, max_length=2048)
    notes: Optional[str] = Field(default=None, max_length=2000)


class StatusChangeRequest(BaseModel):
    status: CandidateStatus
    comment: Optional[str] = Field(default=None, max_length=2000)
    selection_date: Optional[date] = None
    expected_joining_date: Optional[date] = None
    joining_date: Optional[date] = None
    offered_ctc: Optional[str] = Field(default=None, max_length=60)
    offer_letter_url: Optional[str] = Field(default=None, max_length=2048)
    rejection_reason: Optional[str] = Field(default=None, max_length=2000)
    rejected_by: Optional[Attribution] = None
    dropped_by: Optional[Attribution] = None
    interview_stage: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=0)


class StageCompletionRequest(BaseModel):
    stage_name: str = Field(min_length=1, max_length=80)
    outcome: StageOutcome
    notes: str = Field(default="", max_length=2000)
    expected_version: Optional[int] = Field(default=None, ge=0)


class CandidateListResponse(BaseModel):
    items: list[CandidateRecord]
    total_count: int
    page: int
    page_size: int
    total_pages: int


class ReassignRequest(BaseModel):
    candidate_ids: list[str] = Field(min_length=1, max_length=500)
    new_owner_id: str


class ReassignFailure(BaseModel):
    candidate_id: str
    reason: str


class ReassignResponse(BaseModel):
    new_owner_id: str
    succeeded: list[str]
    failed: list[ReassignFailure]
    skipped: list[str] = Field(default_factory=list)
    total: int
    succeeded_count: int


class ShareRequest(BaseModel):
    candidate_ids: list[str] = Field(min_length=1, max_length=200)


class ShareJobGroup(BaseModel):
    job_id: str
    job_title: str
    client_name: Optional[str]
    client_contacts: list[str]
    candidates: list[CandidateRecord]


class ShareResponse(BaseModel):
    groups: list[ShareJobGroup]
    missing: list[str]
