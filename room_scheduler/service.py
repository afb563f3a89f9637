from __future__ import annotations

from collections import Counter
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Iterator, Protocol
from uuid import uuid4
import re
import threading

from . import audit
from .booking import (
    Actor,
    MeetingType,
    ReservationRecord,
    Room,
    format_minutes,
    listing_order,
    minutes_to_time,
    to_minutes,
)
from .conflicts import ConflictDetector
from .errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from .planner import AvailabilityPlanner
from .recurrence import RecurrenceKind, expand_dates
from .settings import SchedulingSettings

TimeInput = str | time | int

MAX_PARTICIPANTS = 1000
MAX_NAME_LENGTH = 200
MAX_NOTES_LENGTH = 1000
_CLOCK_PATTERN = re.compile(r"([01]\d|2[0-3]):[0-5]\d")


class ReservationStore(Protocol):
    def list_reservations(
        self,
        room_id: str | None = None,
        target_date: date | None = None,
        include_canceled: bool = False,
    ) -> list[ReservationRecord]: ...

    def get_reservation(self, reservation_id: str) -> ReservationRecord | None: ...

    def insert_batch(self, records: Iterable[ReservationRecord]) -> list[ReservationRecord]: ...

    def update_fields(self, reservation_id: str, fields: dict[str, Any]) -> ReservationRecord: ...

    def list_active_rooms(self) -> list[Room]: ...

    def get_room(self, room_id: str) -> Room | None: ...

    def list_active_types(self) -> list[MeetingType]: ...

    def get_meeting_type(self, type_id: str) -> MeetingType | None: ...

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None: ...


@dataclass(frozen=True)
class ReservationRequest:
    room_id: str
    date: date
    start_time: TimeInput
    end_time: TimeInput
    participant_count: int = 1
    meeting_type_id: str | None = None
    notes: str | None = None
    recurrence: str | RecurrenceKind = RecurrenceKind.NONE
    occurrences: int = 1


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class RoomDayLocks:
    """One lock per ``(room_id, date)``; several keys are always taken in sorted order.

    A key's lock lives only while some caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, date], threading.Lock] = {}
        self._users: Counter[tuple[str, date]] = Counter()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, keys: list[tuple[str, date]]) -> list[threading.Lock]:
        with self._guard:
            self._users.update(keys)
            return [self._locks.setdefault(key, threading.Lock()) for key in keys]

    def _checkin(self, keys: list[tuple[str, date]]) -> None:
        with self._guard:
            self._users.subtract(keys)
            for key in keys:
                if self._users[key] <= 0:
                    del self._users[key]
                    del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[tuple[str, date]]) -> Iterator[None]:
        ordered = sorted(set(keys))
        locks = self._checkout(ordered)
        try:
            with ExitStack() as stack:
                for lock in locks:
                    stack.enter_context(lock)
                yield
        finally:
            self._checkin(ordered)


class ReservationService:
    def __init__(
        self,
        store: ReservationStore,
        settings: SchedulingSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or SchedulingSettings()
        self.clock: Callable[[], datetime] = clock or datetime.now
        self.detector = ConflictDetector(store)
        self.planner = AvailabilityPlanner(store, self.settings)
        self.locks = RoomDayLocks()

    def create(self, request: ReservationRequest, actor: Actor, now: datetime | None = None) -> list[ReservationRecord]:
        effective_now = now or self.clock()
        room = self._require_room(request.room_id, bookable=True)
        start, end = _validate_interval(request.start_time, request.end_time)
        participant_count = _validate_participants(request.participant_count, room)
        meeting_type_id = self._validate_meeting_type(request.meeting_type_id)
        requester_id, requester_name = _validate_actor(actor)
        notes = _clean_notes(request.notes)
        _validate_date(request.date)
        _validate_not_past(request.date, start, effective_now)

        dates = expand_dates(request.date, request.recurrence, request.occurrences, self.settings.max_occurrences)
        self._validate_open_days(dates)
        series_id = str(uuid4()) if len(dates) > 1 else None

        with self.locks.hold((room.room_id, target_date) for target_date in dates):
            conflicting: list[date] = []
            first_conflict: ReservationRecord | None = None
            for target_date in dates:
                conflict = self.detector.has_conflict(room.room_id, target_date, start, end)
                if conflict is not None:
                    conflicting.append(target_date)
                    first_conflict = first_conflict or conflict

            if conflicting:
                self._record_event(
                    "RESERVATION_CONFLICT",
                    {
                        "room_id": room.room_id,
                        "start_time": format_minutes(start),
                        "end_time": format_minutes(end),
                        "conflicting_dates": [value.isoformat() for value in conflicting],
                    },
                    effective_now,
                )
                raise ConflictError(
                    "Reservation overlaps with an existing active reservation on "
                    + ", ".join(value.isoformat() for value in conflicting),
                    conflict=first_conflict,
                    conflicting_dates=conflicting,
                )

            records = [
                ReservationRecord(
                    reservation_id=str(uuid4()),
                    room_id=room.room_id,
                    requester_id=requester_id,
                    requester_name=requester_name,
                    date=target_date,
                    start_time=start,
                    end_time=end,
                    meeting_type_id=meeting_type_id,
                    participant_count=participant_count,
                    notes=notes,
                    created_at=effective_now,
                    updated_at=effective_now,
                    series_id=series_id,
                )
                for target_date in dates
            ]
            self.store.insert_batch(records)

        self._record_event(
            "RESERVATION_CREATED",
            {
                "reservation_ids": [record.reservation_id for record in records],
                "room_id": room.room_id,
                "dates": [value.isoformat() for value in dates],
                "start_time": format_minutes(start),
                "end_time": format_minutes(end),
                "requester_id": requester_id,
                "series_id": series_id,
            },
            effective_now,
        )
        return records

    def update(
        self,
        reservation_id: str,
        actor: Actor,
        *,
        room_id: str = UNSET,
        target_date: date = UNSET,
        start_time: TimeInput = UNSET,
        end_time: TimeInput = UNSET,
        meeting_type_id: str | None = UNSET,
        participant_count: int = UNSET,
        notes: str | None = UNSET,
        now: datetime | None = None,
    ) -> ReservationRecord:
        effective_now = now or self.clock()
        actor_id, _ = _validate_actor(actor)
        patch: dict[str, Any] = {
            name: value
            for name, value in (
                ("room_id", room_id),
                ("date", target_date),
                ("start_time", start_time),
                ("end_time", end_time),
                ("meeting_type_id", meeting_type_id),
                ("participant_count", participant_count),
                ("notes", notes),
            )
            if value is not UNSET
        }
        if "date" in patch:
            _validate_date(patch["date"])

        current = self._require_active_reservation(reservation_id)
        while True:
            keys = [
                (current.room_id, current.date),
                (str(patch.get("room_id", current.room_id)).strip(), patch.get("date", current.date)),
            ]
            with self.locks.hold(keys):
                fresh = self._require_active_reservation(reservation_id)
                if (fresh.room_id, fresh.date) != (current.room_id, current.date):
                    # Moved by another edit since the keys were chosen; lock the new day instead.
                    current = fresh
                    continue

                candidate = self._apply_patch(fresh, patch, effective_now)
                entries = audit.diff(fresh, candidate, actor_id, effective_now)
                if not entries:
                    return fresh

                conflict = self.detector.has_conflict(
                    candidate.room_id,
                    candidate.date,
                    candidate.start_time,
                    candidate.end_time,
                    exclude_reservation_id=reservation_id,
                )
                if conflict is not None:
                    raise ConflictError(
                        "Updated reservation overlaps with an existing active reservation.",
                        conflict=conflict,
                        conflicting_dates=[candidate.date],
                    )

                changes: dict[str, Any] = {entry.field_name: getattr(candidate, entry.field_name) for entry in entries}
                changes["change_history"] = audit.extend_history(fresh.change_history, entries)
                changes["updated_at"] = effective_now
                updated = self.store.update_fields(reservation_id, changes)
                break

        self._record_event(
            "RESERVATION_UPDATED",
            {
                "reservation_id": reservation_id,
                "fields": [entry.field_name for entry in entries],
                "actor": actor_id,
            },
            effective_now,
        )
        return updated

    def _apply_patch(self, fresh: ReservationRecord, patch: dict[str, Any], now: datetime) -> ReservationRecord:
        """Merge only the patched fields onto ``fresh`` and validate the result."""
        new_room_id = patch.get("room_id", fresh.room_id)
        room = self._require_room(new_room_id, bookable=new_room_id != fresh.room_id)
        start, end = _validate_interval(
            patch.get("start_time", fresh.start_time),
            patch.get("end_time", fresh.end_time),
        )
        candidate = fresh.with_changes(
            room_id=room.room_id,
            date=patch.get("date", fresh.date),
            start_time=start,
            end_time=end,
            meeting_type_id=(
                self._validate_meeting_type(patch["meeting_type_id"]) if "meeting_type_id" in patch else fresh.meeting_type_id
            ),
            participant_count=_validate_participants(patch.get("participant_count", fresh.participant_count), room),
            notes=_clean_notes(patch["notes"]) if "notes" in patch else fresh.notes,
        )
        if (candidate.date, candidate.start_time) != (fresh.date, fresh.start_time):
            _validate_not_past(candidate.date, candidate.start_time, now)
        if candidate.date != fresh.date:
            self._validate_open_days([candidate.date])
        return candidate

    def cancel(
        self,
        reservation_id: str,
        actor: Actor,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> ReservationRecord:
        effective_now = now or self.clock()
        actor_id, _ = _validate_actor(actor)
        cancel_reason = _clean_notes(reason, "cancel reason")
        current = self._require_active_reservation(reservation_id)

        with self.locks.hold([(current.room_id, current.date)]):
            self._require_active_reservation(reservation_id)
            canceled = self.store.update_fields(
                reservation_id,
                {
                    "canceled": True,
                    "canceled_at": effective_now,
                    "cancel_reason": cancel_reason,
                    "updated_at": effective_now,
                },
            )

        self._record_event(
            "RESERVATION_CANCELED",
            {
                "reservation_id": reservation_id,
                "room_id": canceled.room_id,
                "date": canceled.date.isoformat(),
                "reason": canceled.cancel_reason,
                "actor": actor_id,
            },
            effective_now,
        )
        return canceled

    def has_conflict(
        self,
        room_id: str,
        target_date: date,
        start_time: TimeInput,
        end_time: TimeInput,
        exclude_reservation_id: str | None = None,
    ) -> ReservationRecord | None:
        start, end = _validate_interval(start_time, end_time)
        return self.detector.has_conflict(room_id, target_date, start, end, exclude_reservation_id)

    def suggest_slot(self, room_id: str, target_date: date, now: datetime | None = None) -> tuple[time, time] | None:
        self._require_room(room_id)
        slot = self.planner.suggest_slot(room_id, target_date, now or self.clock())
        if slot is None:
            return None
        start, end = slot
        if end >= 24 * 60:
            return None
        return minutes_to_time(start), minutes_to_time(end)

    def recompute_end_time(
        self,
        room_id: str,
        target_date: date,
        start_time: TimeInput,
        exclude_id: str | None = None,
    ) -> time:
        self._require_room(room_id)
        start = _coerce_time(start_time, "start_time")
        end = self.planner.recompute_end_time(room_id, target_date, start, exclude_id)
        if end >= 24 * 60:
            raise ValidationError("No end time fits before midnight for this start time.")
        return minutes_to_time(end)

    def list_available_start_slots(self, room_id: str, target_date: date, now: datetime | None = None) -> list[time]:
        self._require_room(room_id)
        slots = self.planner.list_available_start_slots(room_id, target_date, now or self.clock())
        return [minutes_to_time(minute) for minute in slots]

    def list_available_end_slots(
        self,
        room_id: str,
        target_date: date,
        start_time: TimeInput,
        exclude_id: str | None = None,
    ) -> list[time]:
        self._require_room(room_id)
        start = _coerce_time(start_time, "start_time")
        slots = self.planner.list_available_end_slots(room_id, target_date, start, exclude_id)
        return [minutes_to_time(minute) for minute in slots if minute < 24 * 60]

    def get_reservation(self, reservation_id: str) -> ReservationRecord:
        record = self.store.get_reservation(reservation_id)
        if record is None:
            raise NotFoundError(f"Reservation not found: {reservation_id}")
        return record

    def list_reservations(
        self,
        room_id: str | None = None,
        target_date: date | None = None,
        include_canceled: bool = True,
    ) -> list[ReservationRecord]:
        records = self.store.list_reservations(room_id=room_id, target_date=target_date, include_canceled=include_canceled)
        return sorted(records, key=listing_order)

    def list_user_reservations(self, requester_id: str, today: date | None = None) -> list[ReservationRecord]:
        first_day = today or self.clock().date()
        owned = [
            record
            for record in self.store.list_reservations()
            if record.requester_id == requester_id and record.date >= first_day
        ]
        return sorted(owned, key=listing_order)

    def upcoming_meetings(self, requester_id: str, now: datetime | None = None, hours: int = 24) -> list[ReservationRecord]:
        effective_now = now or self.clock()
        horizon = effective_now + timedelta(hours=hours)
        return [
            record
            for record in self.list_user_reservations(requester_id, effective_now.date())
            if effective_now <= record.starts_at() <= horizon
        ]

    def list_rooms(self) -> list[Room]:
        return self.store.list_active_rooms()

    def list_meeting_types(self) -> list[MeetingType]:
        return self.store.list_active_types()

    def _require_room(self, room_id: str, bookable: bool = False) -> Room:
        if not room_id or not str(room_id).strip():
            raise ValidationError("room_id must not be empty")
        room = self.store.get_room(str(room_id).strip())
        if room is None:
            raise NotFoundError(f"Room not found: {room_id}")
        if bookable and not room.active:
            raise ValidationError(f"Room is not available for booking: {room.name}")
        return room

    def _require_active_reservation(self, reservation_id: str) -> ReservationRecord:
        record = self.get_reservation(reservation_id)
        if record.canceled:
            raise ValidationError("Canceled reservations cannot be changed.")
        return record

    def _validate_meeting_type(self, meeting_type_id: str | None) -> str | None:
        if meeting_type_id is None or not str(meeting_type_id).strip():
            return None
        meeting_type = self.store.get_meeting_type(str(meeting_type_id).strip())
        if meeting_type is None or not meeting_type.active:
            raise ValidationError(f"Unknown meeting type: {meeting_type_id}")
        return meeting_type.type_id

    def _record_event(self, event_type: str, payload: dict[str, Any], event_time: datetime) -> None:
        try:
            self.store.log_event(event_type, payload, event_time)
        except PersistenceError:
            # Event log is best-effort; the reservation write it describes has already landed or been refused.
            pass

    def _validate_open_days(self, dates: list[date]) -> None:
        blocked = [value for value in dates if self.settings.is_blocked_day(value)]
        if blocked:
            raise ValidationError(
                "Reservations are not allowed on weekends or holidays: " + ", ".join(value.isoformat() for value in blocked)
            )


def _coerce_time(value: TimeInput, label: str) -> int:
    if value is None:
        raise ValidationError(f"{label} is required")
    if isinstance(value, str) and not _CLOCK_PATTERN.fullmatch(value.strip()):
        raise ValidationError(f"{label} must be HH:MM between 00:00 and 23:59, got {value!r}")
    try:
        return to_minutes(value)
    except ValueError as error:
        raise ValidationError(f"{label}: {error}") from error


def _validate_interval(start_time: TimeInput, end_time: TimeInput) -> tuple[int, int]:
    start = _coerce_time(start_time, "start_time")
    end = _coerce_time(end_time, "end_time")
    if start >= end:
        raise ValidationError("Reservation start time must be earlier than end time.")
    return start, end


def _validate_date(value: Any) -> date:
    if isinstance(value, datetime) or not isinstance(value, date):
        raise ValidationError(f"date must be a calendar date, got {value!r}")
    return value


def _validate_participants(participant_count: int, room: Room) -> int:
    if isinstance(participant_count, bool) or not isinstance(participant_count, int):
        raise ValidationError("participant_count must be an integer")
    if not 1 <= participant_count <= MAX_PARTICIPANTS:
        raise ValidationError(f"participant_count must be between 1 and {MAX_PARTICIPANTS}")
    if participant_count > room.capacity:
        raise ValidationError(f"participant_count exceeds the capacity of {room.name} ({room.capacity}).")
    return participant_count


def _validate_actor(actor: Actor) -> tuple[str, str]:
    actor_id = str(actor.actor_id or "").strip()
    name = str(actor.name or "").strip()
    if not actor_id:
        raise ValidationError("actor id must not be empty")
    if not name:
        raise ValidationError("requester name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"requester name must be at most {MAX_NAME_LENGTH} characters")
    return actor_id, name


def _validate_not_past(target_date: date, start: int, now: datetime) -> None:
    starts_at = datetime.combine(target_date, time()) + timedelta(minutes=start)
    if starts_at < now.replace(tzinfo=None):
        raise ValidationError("Reservation start time cannot be in the past.")


def _clean_notes(value: str | None, label: str = "notes") -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    if len(cleaned) > MAX_NOTES_LENGTH:
        raise ValidationError(f"{label} must be at most {MAX_NOTES_LENGTH} characters")
    return cleaned or None
