from __future__ import annotations

from datetime import date, datetime

from .booking import MINUTES_PER_DAY, ReservationRecord, minute_of_day
from .conflicts import ReservationSource, active_for_room_day
from .settings import SchedulingSettings


class AvailabilityPlanner:
    """Slot suggestions and picker choices for one room and date.

    All times are minutes since midnight. Every existing active reservation is
    surrounded by a buffer zone ``[start - buffer, end + buffer)`` that new
    start times must stay out of.
    """

    def __init__(self, source: ReservationSource, settings: SchedulingSettings | None = None) -> None:
        self.source = source
        self.settings = settings or SchedulingSettings()

    def _active(self, room_id: str, target_date: date, exclude_id: str | None = None) -> list[ReservationRecord]:
        rows = self.source.list_reservations(room_id=room_id, target_date=target_date)
        return active_for_room_day(rows, room_id, target_date, exclude_id)

    def _in_buffer_zone(self, minute: int, record: ReservationRecord) -> bool:
        buffer = self.settings.buffer_minutes
        return record.start_time - buffer <= minute < record.end_time + buffer

    def _next_start_after(self, active: list[ReservationRecord], minute: int) -> int | None:
        later = [record.start_time for record in active if record.start_time > minute]
        return min(later) if later else None

    def suggest_slot(self, room_id: str, target_date: date, now: datetime) -> tuple[int, int] | None:
        buffer = self.settings.buffer_minutes
        duration = self.settings.default_duration_minutes

        if target_date == now.date():
            start = minute_of_day(now) + buffer
        else:
            start = self.settings.default_start_minute

        active = self._active(room_id, target_date)
        for record in active:
            if self._in_buffer_zone(start, record):
                start = record.end_time + buffer

        end = start + duration
        next_start = self._next_start_after(active, start)
        if next_start is not None and end > next_start - buffer:
            end = next_start - buffer

        if end > MINUTES_PER_DAY or start >= end:
            return None
        return start, end

    def recompute_end_time(
        self,
        room_id: str,
        target_date: date,
        start: int,
        exclude_id: str | None = None,
    ) -> int:
        default_end = start + self.settings.default_duration_minutes
        next_start = self._next_start_after(self._active(room_id, target_date, exclude_id), start)
        if next_start is None or next_start >= default_end:
            return default_end

        clamped = next_start - self.settings.buffer_minutes
        # No full slot fits before the next meeting; keep the unclamped default.
        if clamped <= start:
            return default_end
        return clamped

    def list_available_start_slots(self, room_id: str, target_date: date, now: datetime) -> list[int]:
        step = self.settings.slot_step_minutes
        earliest_exclusive = minute_of_day(now) + self.settings.buffer_minutes if target_date == now.date() else None
        active = self._active(room_id, target_date)

        slots: list[int] = []
        for minute in range(self.settings.first_start_minute, self.settings.last_start_minute, step):
            if earliest_exclusive is not None and minute <= earliest_exclusive:
                continue
            if any(self._in_buffer_zone(minute, record) for record in active):
                continue
            slots.append(minute)
        return slots

    def list_available_end_slots(
        self,
        room_id: str,
        target_date: date,
        start: int,
        exclude_id: str | None = None,
    ) -> list[int]:
        step = self.settings.slot_step_minutes
        next_start = self._next_start_after(self._active(room_id, target_date, exclude_id), start)
        if next_start is None:
            max_end = self.settings.latest_end_minute
        else:
            max_end = next_start - self.settings.buffer_minutes

        lower_exclusive = start + step
        return list(range(lower_exclusive + step, max_end + 1, step))
