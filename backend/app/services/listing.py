from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Mapping, Optional

from backend.app.models import CandidateRecord, CandidateStatus, JobRecord


@dataclass(frozen=True)
class CandidateFilters:
    search: Optional[str] = None
    status: Optional[CandidateStatus] = None
    client: Optional[str] = None
    job_title: Optional[str] = None
    job_id: Optional[str] = None
    stage: Optional[str] = None
    created_from: Optional[date] = None
    created_to: Optional[date] = None
    selection_from: Optional[date] = None
    selection_to: Optional[date] = None
    joining_from: Optional[date] = None
    joining_to: Optional[date] = None

    def forced_status(self, status: CandidateStatus) -> "CandidateFilters":
        return replace(self, status=status)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def _in_range(value: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    if start is None and end is None:
        return True
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def _matches_search(candidate: CandidateRecord, job: Optional[JobRecord], term: str) -> bool:
    if term in candidate.id.lower():
        return True
    for value in candidate.dynamic_fields.values():
        if value is not None and term in str(value).lower():
            return True
    if _contains(candidate.notes, term):
        return True
    return job is not None and _contains(job.title, term)


def filter_candidates(
    candidates: Iterable[CandidateRecord],
    jobs: Mapping[str, JobRecord],
    filters: CandidateFilters,
) -> list[CandidateRecord]:
    records = list(candidates)
    if filters.status:
        records = [item for item in records if item.status == filters.status]
    if filters.job_id:
        records = [item for item in records if item.job_id == filters.job_id]
    if filters.job_title:
        term = filters.job_title.strip().lower()
        records = [
            item for item in records if item.job_id in jobs and _contains(jobs[item.job_id].title, term)
        ]
    if filters.client:
        term = filters.client.strip().lower()
        records = [
            item
            for item in records
            if item.job_id in jobs
            and (
                _contains(jobs[item.job_id].client_name, term)
                or (jobs[item.job_id].client_id or "").lower() == term
            )
        ]
    if filters.stage:
        term = filters.stage.strip().lower()
        records = [
            item for item in records if (item.interview_stage or "").lower() == term
        ]
    if filters.search:
        term = filters.search.strip().lower()
        if term:
            records = [
                item for item in records if _matches_search(item, jobs.get(item.job_id), term)
            ]
    records = [
        item
        for item in records
        if _in_range(item.created_at_utc.date(), filters.created_from, filters.created_to)
    ]
    # Lifecycle date ranges only mean something for the matching status.
    if filters.status == CandidateStatus.selected:
        records = [
            item
            for item in records
            if _in_range(item.selection_date, filters.selection_from, filters.selection_to)
        ]
    if filters.status == CandidateStatus.joined:
        records = [
            item
            for item in records
            if _in_range(item.joining_date, filters.joining_from, filters.joining_to)
        ]
    records.sort(key=lambda item: item.created_at_utc, reverse=True)
    return records


def paginate(
    records: list[CandidateRecord],
    *,
    page: int,
    page_size: int,
) -> tuple[list[CandidateRecord], int, int]:
    """Return ``(page_items, total_count, total_pages)``; pages are 1-based."""
    total = len(records)
    total_pages = math.ceil(total / page_size) if page_size else 0
    start = (max(page, 1) - 1) * page_size
    return records[start : start + page_size], total, total_pages
