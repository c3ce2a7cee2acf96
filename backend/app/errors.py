from __future__ import annotations

from typing import Iterable


class TrackerError(Exception):
    pass


class PayloadValidationError(TrackerError):
    """A requested mutation is missing or carries invalid payload fields."""

    def __init__(self, fields: Iterable[str], message: str = "") -> None:
        self.fields = sorted(set(fields))
        self.message = message or f"missing or invalid fields: {', '.join(self.fields)}"
        super().__init__(self.message)


class AccessDeniedError(TrackerError):
    pass


class ReferentialError(TrackerError):
    pass


class TransitionConflictError(TrackerError):
    pass


class StoreUnavailableError(TrackerError):
    """The backing database could not be read or written."""
