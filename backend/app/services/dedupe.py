from __future__ import annotations

from typing import Any, Iterable, Optional

from backend.app.models import CandidateRecord

EMAIL_KEYS = ("email", "emailid", "emailaddress")
PHONE_KEYS = ("phone", "phonenumber", "mobile", "contactnumber")


def normalize(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).strip().lower().split())


def _field(fields: dict[str, Any], keys: tuple[str, ...]) -> str:
    for name, value in fields.items():
        if normalize(name).replace(" ", "").replace("_", "") in keys:
            return normalize(value)
    return ""


def contact_email(fields: dict[str, Any]) -> str:
    return _field(fields, EMAIL_KEYS)


def contact_phone(fields: dict[str, Any]) -> str:
    raw = _field(fields, PHONE_KEYS)
    digits = "".join(char for char in raw if char.isdigit())
    # Compare on the trailing ten digits so country prefixes do not matter.
    return digits[-10:]


def is_probable_duplicate(existing: CandidateRecord, *, fields: dict[str, Any]) -> bool:
    incoming_email = contact_email(fields)
    if incoming_email and incoming_email == contact_email(existing.dynamic_fields):
        return True
    incoming_phone = contact_phone(fields)
    return bool(incoming_phone) and incoming_phone == contact_phone(existing.dynamic_fields)


def find_duplicate(
    candidates: Iterable[CandidateRecord],
    *,
    job_id: str,
    fields: dict[str, Any],
    exclude_id: Optional[str] = None,
) -> Optional[CandidateRecord]:
    for candidate in candidates:
        if candidate.job_id != job_id or candidate.id == exclude_id:
            continue
        if is_probable_duplicate(candidate, fields=fields):
            return candidate
    return None
