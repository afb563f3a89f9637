from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import Any, Iterable

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: str | time | int) -> int:
    """Canonicalize a time-of-day to minutes since midnight.

    Accepts ``"HH:MM"``, ``"HH:MM:SS"`` (seconds are dropped), ``datetime.time``
    or an integer that is already a minute count.
    """
    if isinstance(value, bool):
        raise ValueError("time value must not be a boolean")
    if isinstance(value, int):
        minutes = value
    elif isinstance(value, time):
        minutes = value.hour * 60 + value.minute
    elif isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
            raise ValueError(f"Invalid time value: {value!r}. Expected format: HH:MM")
        hour, minute = int(parts[0]), int(parts[1])
        if minute > 59 or hour > 23:
            raise ValueError(f"Invalid time value: {value!r}")
        minutes = hour * 60 + minute
    else:
        raise ValueError(f"Unsupported time value: {value!r}")

    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Time value out of range: {value!r}")
    return minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes does not fit in a single day")
    return time(minutes // 60, minutes % 60)


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


@dataclass(frozen=True)
class TimeSlot:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Reservation start time must be earlier than end time.")

    def overlaps(self, other: TimeSlot) -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end

    def __str__(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


def has_time_overlap(new_start: int, new_end: int, exist_start: int, exist_end: int) -> bool:
    """Return True when two time intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    The single inequality covers a candidate starting inside, ending inside
    or fully containing the existing interval.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


def can_reserve(new_start: int, new_end: int, existing_slots: Iterable[TimeSlot]) -> bool:
    """Return True if the requested interval does not overlap any existing slot."""
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")

    for slot in existing_slots:
        if has_time_overlap(new_start, new_end, slot.start, slot.end):
            return False
    return True


@dataclass(frozen=True)
class Room:
    room_id: str
    name: str
    capacity: int
    active: bool = True
    sort_order: int = 0

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError("Room capacity must be greater than zero.")

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "name": self.name,
            "capacity": self.capacity,
            "active": self.active,
            "sort_order": self.sort_order,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Room:
        return Room(
            room_id=str(data["room_id"]),
            name=str(data["name"]),
            capacity=int(data["capacity"]),
            active=bool(data.get("active", True)),
            sort_order=int(data.get("sort_order", 0)),
        )


@dataclass(frozen=True)
class MeetingType:
    type_id: str
    name: str
    active: bool = True
    sort_order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type_id": self.type_id,
            "name": self.name,
            "active": self.active,
            "sort_order": self.sort_order,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> MeetingType:
        return MeetingType(
            type_id=str(data["type_id"]),
            name=str(data["name"]),
            active=bool(data.get("active", True)),
            sort_order=int(data.get("sort_order", 0)),
        )


@dataclass(frozen=True)
class Actor:
    actor_id: str
    name: str


@dataclass(frozen=True)
class ChangeEntry:
    timestamp: datetime
    field_name: str
    old_value: Any
    new_value: Any
    actor: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "actor": self.actor,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ChangeEntry:
        return ChangeEntry(
            timestamp=datetime.fromisoformat(str(data["timestamp"])),
            field_name=str(data["field_name"]),
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            actor=str(data["actor"]),
        )


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: str
    room_id: str
    requester_id: str
    requester_name: str
    date: date
    start_time: int
    end_time: int
    participant_count: int
    created_at: datetime
    updated_at: datetime
    meeting_type_id: str | None = None
    notes: str | None = None
    canceled: bool = False
    canceled_at: datetime | None = None
    cancel_reason: str | None = None
    change_history: tuple[ChangeEntry, ...] = field(default_factory=tuple)
    series_id: str | None = None

    @property
    def active(self) -> bool:
        return not self.canceled

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)

    @property
    def start_label(self) -> str:
        return format_minutes(self.start_time)

    @property
    def end_label(self) -> str:
        return format_minutes(self.end_time)

    def starts_at(self) -> datetime:
        return datetime.combine(self.date, minutes_to_time(self.start_time))

    def overlaps(self, start: int, end: int) -> bool:
        return has_time_overlap(start, end, self.start_time, self.end_time)

    def with_changes(self, **changes: Any) -> ReservationRecord:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reservation_id": self.reservation_id,
            "room_id": self.room_id,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "date": self.date.isoformat(),
            "start_time": self.start_label,
            "end_time": self.end_label,
            "meeting_type_id": self.meeting_type_id,
            "participant_count": self.participant_count,
            "notes": self.notes,
            "canceled": self.canceled,
            "canceled_at": self.canceled_at.isoformat(timespec="seconds") if self.canceled_at else None,
            "cancel_reason": self.cancel_reason,
            "change_history": [entry.to_dict() for entry in self.change_history],
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }
        if self.series_id is not None:
            payload["series_id"] = self.series_id
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ReservationRecord:
        canceled_at = data.get("canceled_at")
        return ReservationRecord(
            reservation_id=str(data["reservation_id"]),
            room_id=str(data["room_id"]),
            requester_id=str(data["requester_id"]),
            requester_name=str(data["requester_name"]),
            date=date.fromisoformat(str(data["date"])),
            start_time=to_minutes(str(data["start_time"])),
            end_time=to_minutes(str(data["end_time"])),
            meeting_type_id=(str(data["meeting_type_id"]) if data.get("meeting_type_id") is not None else None),
            participant_count=int(data.get("participant_count") or 1),
            notes=(str(data["notes"]) if data.get("notes") is not None else None),
            canceled=bool(data.get("canceled", False)),
            canceled_at=(datetime.fromisoformat(str(canceled_at)) if canceled_at is not None else None),
            cancel_reason=(str(data["cancel_reason"]) if data.get("cancel_reason") is not None else None),
            change_history=tuple(ChangeEntry.from_dict(row) for row in data.get("change_history") or []),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
            series_id=(str(data["series_id"]) if data.get("series_id") is not None else None),
        )


def listing_order(record: ReservationRecord) -> tuple[bool, date, int, str]:
    return (record.canceled, record.date, record.start_time, record.room_id)
