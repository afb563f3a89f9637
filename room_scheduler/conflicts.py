from __future__ import annotations

from datetime import date
from typing import Iterable, Protocol

from .booking import ReservationRecord, has_time_overlap


class ReservationSource(Protocol):
    def list_reservations(
        self,
        room_id: str | None = None,
        target_date: date | None = None,
        include_canceled: bool = False,
    ) -> list[ReservationRecord]: ...


def active_for_room_day(
    reservations: Iterable[ReservationRecord],
    room_id: str,
    target_date: date,
    exclude_reservation_id: str | None = None,
) -> list[ReservationRecord]:
    """Active reservations of one room and date, ordered by start time."""
    matches = [
        record
        for record in reservations
        if record.active
        and record.room_id == room_id
        and record.date == target_date
        and record.reservation_id != exclude_reservation_id
    ]
    return sorted(matches, key=lambda record: (record.start_time, record.end_time, record.reservation_id))


def find_conflict(
    reservations: Iterable[ReservationRecord],
    room_id: str,
    target_date: date,
    start: int,
    end: int,
    exclude_reservation_id: str | None = None,
) -> ReservationRecord | None:
    for record in active_for_room_day(reservations, room_id, target_date, exclude_reservation_id):
        if has_time_overlap(start, end, record.start_time, record.end_time):
            return record
    return None


class ConflictDetector:
    def __init__(self, source: ReservationSource) -> None:
        self.source = source

    def has_conflict(
        self,
        room_id: str,
        target_date: date,
        start: int,
        end: int,
        exclude_reservation_id: str | None = None,
    ) -> ReservationRecord | None:
        """Return the first active reservation overlapping ``[start, end)``, if any."""
        candidates = self.source.list_reservations(room_id=room_id, target_date=target_date)
        return find_conflict(candidates, room_id, target_date, start, end, exclude_reservation_id)
