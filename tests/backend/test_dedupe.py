from __future__ import annotations

from datetime import datetime

from backend.app.models import CandidateRecord
from backend.app.services.dedupe import contact_phone, find_duplicate

NOW = datetime(2024, 1, 1)


def _candidate(candidate_id: str, job_id: str, fields: dict) -> CandidateRecord:
    return CandidateRecord(
        id=candidate_id,
        job_id=job_id,
        created_by="r1",
        dynamic_fields=fields,
        created_at_utc=NOW,
        updated_at_utc=NOW,
    )


def test_phone_ignores_country_prefix_and_punctuation() -> None:
    assert contact_phone({"Phone Number": "+91 90000-11111"}) == "9000011111"
    assert contact_phone({"mobile": "9000011111"}) == "9000011111"


def test_duplicate_by_email_within_same_job() -> None:
    existing = [_candidate("c1", "job_1", {"Email ID": "Asha@Example.com"})]
    match = find_duplicate(existing, job_id="job_1", fields={"email": "asha@example.com "})
    assert match is not None and match.id == "c1"


def test_same_person_on_another_job_is_not_duplicate() -> None:
    existing = [_candidate("c1", "job_1", {"Email": "asha@example.com"})]
    assert find_duplicate(existing, job_id="job_2", fields={"Email": "asha@example.com"}) is None


def test_exclude_id_skips_self() -> None:
    existing = [_candidate("c1", "job_1", {"Phone": "9000011111"})]
    assert (
        find_duplicate(existing, job_id="job_1", fields={"Phone": "9000011111"}, exclude_id="c1")
        is None
    )


def test_no_contact_fields_never_match() -> None:
    existing = [_candidate("c1", "job_1", {"Name": "Asha"})]
    assert find_duplicate(existing, job_id="job_1", fields={"Name": "Asha"}) is None
