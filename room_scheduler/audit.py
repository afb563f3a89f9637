from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

from .booking import ChangeEntry, ReservationRecord, format_minutes

AUDITED_FIELDS = (
    "room_id",
    "date",
    "start_time",
    "end_time",
    "meeting_type_id",
    "participant_count",
    "notes",
)
_TIME_FIELDS = {"start_time", "end_time"}


def render_value(field_name: str, value: Any) -> Any:
    if value is None:
        return None
    if field_name in _TIME_FIELDS:
        return format_minutes(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def diff(old: ReservationRecord, new: ReservationRecord, actor: str, timestamp: datetime) -> list[ChangeEntry]:
    entries: list[ChangeEntry] = []
    for field_name in AUDITED_FIELDS:
        old_value = getattr(old, field_name)
        new_value = getattr(new, field_name)
        if old_value == new_value:
            continue
        entries.append(
            ChangeEntry(
                timestamp=timestamp,
                field_name=field_name,
                old_value=render_value(field_name, old_value),
                new_value=render_value(field_name, new_value),
                actor=actor,
            )
        )
    return entries


def extend_history(history: Iterable[ChangeEntry], entries: Iterable[ChangeEntry]) -> tuple[ChangeEntry, ...]:
    return tuple(history) + tuple(entries)
