from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable
import shutil
import threading

import yaml

from .booking import MeetingType, ReservationRecord, Room
from .errors import NotFoundError, PersistenceError, ValidationError

UPDATABLE_FIELDS = {
    "room_id",
    "date",
    "start_time",
    "end_time",
    "meeting_type_id",
    "participant_count",
    "notes",
    "canceled",
    "canceled_at",
    "cancel_reason",
    "change_history",
    "updated_at",
}

DEFAULT_ROOMS = [
    Room("room-1", "Meeting Room 1", capacity=8, sort_order=1),
    Room("room-2", "Meeting Room 2", capacity=6, sort_order=2),
    Room("room-3", "Board Room", capacity=16, sort_order=3),
    Room("room-4", "Focus Room", capacity=2, sort_order=4),
]
DEFAULT_MEETING_TYPES = [
    MeetingType("internal", "Internal meeting", sort_order=1),
    MeetingType("client", "Client meeting", sort_order=2),
    MeetingType("training", "Training", sort_order=3),
    MeetingType("interview", "Interview", sort_order=4),
]


class ReservationYamlRepository:
    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.rooms_file = self.base_dir / "rooms.yaml"
        self.meeting_types_file = self.base_dir / "meeting_types.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.rooms_file, self.meeting_types_file, self.reservations_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise PersistenceError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            pass

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self.log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)

    def get_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        events = self._read_yaml_list(self.log_file)
        return [event for event in events if event_type is None or event.get("event_type") == event_type]

    def list_reservations(
        self,
        room_id: str | None = None,
        target_date: date | None = None,
        include_canceled: bool = False,
    ) -> list[ReservationRecord]:
        records = [ReservationRecord.from_dict(row) for row in self._read_yaml_list(self.reservations_file)]
        return [
            record
            for record in records
            if (room_id is None or record.room_id == room_id)
            and (target_date is None or record.date == target_date)
            and (include_canceled or record.active)
        ]

    def get_reservation(self, reservation_id: str) -> ReservationRecord | None:
        for row in self._read_yaml_list(self.reservations_file):
            if str(row.get("reservation_id")) == reservation_id:
                return ReservationRecord.from_dict(row)
        return None

    def insert_batch(self, records: Iterable[ReservationRecord]) -> list[ReservationRecord]:
        batch = list(records)
        if not batch:
            return []

        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            existing_ids = {str(row.get("reservation_id")) for row in rows}
            batch_ids = [record.reservation_id for record in batch]
            if len(set(batch_ids)) != len(batch_ids) or existing_ids.intersection(batch_ids):
                raise ValidationError("reservation_id must be unique")

            rows.extend(record.to_dict() for record in batch)
            self._write_yaml_list(self.reservations_file, rows)
        return batch

    def update_fields(self, reservation_id: str, fields: dict[str, Any]) -> ReservationRecord:
        unknown = sorted(set(fields) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            for index, row in enumerate(rows):
                if str(row.get("reservation_id")) != reservation_id:
                    continue
                updated = ReservationRecord.from_dict(row).with_changes(**fields)
                rows[index] = updated.to_dict()
                self._write_yaml_list(self.reservations_file, rows)
                return updated

        raise NotFoundError(f"Reservation not found: {reservation_id}")

    def list_active_rooms(self) -> list[Room]:
        rooms = [Room.from_dict(row) for row in self._read_yaml_list(self.rooms_file)]
        return sorted((room for room in rooms if room.active), key=lambda room: (room.sort_order, room.name))

    def get_room(self, room_id: str) -> Room | None:
        for row in self._read_yaml_list(self.rooms_file):
            if str(row.get("room_id")) == room_id:
                return Room.from_dict(row)
        return None

    def save_rooms(self, rooms: Iterable[Room]) -> None:
        with self._lock:
            self._write_yaml_list(self.rooms_file, [room.to_dict() for room in rooms])

    def list_active_types(self) -> list[MeetingType]:
        types = [MeetingType.from_dict(row) for row in self._read_yaml_list(self.meeting_types_file)]
        return sorted((item for item in types if item.active), key=lambda item: (item.sort_order, item.name))

    def get_meeting_type(self, type_id: str) -> MeetingType | None:
        for row in self._read_yaml_list(self.meeting_types_file):
            if str(row.get("type_id")) == type_id:
                return MeetingType.from_dict(row)
        return None

    def save_meeting_types(self, meeting_types: Iterable[MeetingType]) -> None:
        with self._lock:
            self._write_yaml_list(self.meeting_types_file, [item.to_dict() for item in meeting_types])

    def seed_default_catalog(self, overwrite: bool = False) -> None:
        with self._lock:
            if overwrite or not self._read_yaml_list(self.rooms_file):
                self.save_rooms(DEFAULT_ROOMS)
            if overwrite or not self._read_yaml_list(self.meeting_types_file):
                self.save_meeting_types(DEFAULT_MEETING_TYPES)

        self.log_event(
            "CATALOG_SEEDED",
            {
                "rooms": len(DEFAULT_ROOMS),
                "meeting_types": len(DEFAULT_MEETING_TYPES),
                "overwrite": overwrite,
            },
        )
