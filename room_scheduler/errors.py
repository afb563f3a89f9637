from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .booking import ReservationRecord


class ReservationError(Exception):
    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(ReservationError, ValueError):
    kind = "validation"


class NotFoundError(ReservationError, LookupError):
    kind = "not_found"


class ConflictError(ReservationError):
    """Raised when a requested interval overlaps an active reservation.

    ``conflict`` holds the first overlapping reservation of a single request;
    ``conflicting_dates`` lists every date of a batch that could not be booked.
    """

    kind = "conflict"

    def __init__(
        self,
        message: str,
        conflict: ReservationRecord | None = None,
        conflicting_dates: list[date] | None = None,
    ) -> None:
        super().__init__(message)
        self.conflict = conflict
        self.conflicting_dates = list(conflicting_dates or [])

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["conflicting_dates"] = [value.isoformat() for value in self.conflicting_dates]
        if self.conflict is not None:
            payload["conflict"] = self.conflict.to_dict()
        return payload


class PersistenceError(ReservationError, RuntimeError):
    kind = "persistence"
