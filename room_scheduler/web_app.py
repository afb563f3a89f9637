from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .booking import Actor, ReservationRecord
from .errors import ReservationError, ValidationError
from .service import ReservationRequest, ReservationService
from .settings import SchedulingSettings, load_settings
from .yaml_store import ReservationYamlRepository

ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "persistence": 500,
}


def create_app(
    data_dir: str | Path = "data",
    now_provider: Callable[[], datetime] | None = None,
    settings: SchedulingSettings | None = None,
) -> Flask:
    app = Flask(__name__)
    repository = ReservationYamlRepository(data_dir)
    clock: Callable[[], datetime] = now_provider or datetime.now
    service = ReservationService(
        repository,
        settings=settings or load_settings(Path(data_dir) / "settings.yaml"),
        clock=clock,
    )
    app.config["RESERVATION_SERVICE"] = service

    @app.errorhandler(ReservationError)
    def handle_reservation_error(error: ReservationError) -> Any:
        return jsonify({"ok": False, **error.to_dict()}), ERROR_STATUS.get(error.kind, 400)

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,X-User-Id,X-User-Name"
        return response

    @app.get("/api/rooms")
    def get_rooms() -> Any:
        return jsonify({"ok": True, "rooms": [room.to_dict() for room in service.list_rooms()]})

    @app.get("/api/meeting-types")
    def get_meeting_types() -> Any:
        return jsonify({"ok": True, "meeting_types": [item.to_dict() for item in service.list_meeting_types()]})

    @app.get("/api/reservations")
    def get_reservations() -> Any:
        room_id = request.args.get("room_id") or None
        date_text = request.args.get("date")
        target_date = _parse_date(date_text) if date_text else None
        include_canceled = str(request.args.get("include_canceled", "true")).lower() != "false"

        records = service.list_reservations(room_id=room_id, target_date=target_date, include_canceled=include_canceled)
        return jsonify({"ok": True, "reservations": [_serialize_reservation(record) for record in records]})

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        payload = _json_payload()
        reservation_request = ReservationRequest(
            room_id=str(payload.get("room_id", "")).strip(),
            date=_parse_date(payload.get("date")),
            start_time=_require_text(payload, "start_time"),
            end_time=_require_text(payload, "end_time"),
            participant_count=_parse_int(payload.get("participant_count", 1), "participant_count"),
            meeting_type_id=_optional_text(payload, "meeting_type_id"),
            notes=_optional_text(payload, "notes"),
            recurrence=str(payload.get("recurrence") or "none"),
            occurrences=_parse_int(payload.get("occurrences", 1), "occurrences"),
        )
        created = service.create(reservation_request, _current_actor())
        return jsonify({"ok": True, "reservations": [_serialize_reservation(record) for record in created]}), 201

    @app.post("/api/reservations/<reservation_id>/update")
    def update_reservation(reservation_id: str) -> Any:
        payload = _json_payload()
        changes: dict[str, Any] = {}
        if "room_id" in payload:
            changes["room_id"] = _require_text(payload, "room_id")
        if "date" in payload:
            changes["target_date"] = _parse_date(payload["date"])
        for name in ("start_time", "end_time"):
            if name in payload:
                changes[name] = _require_text(payload, name)
        for name in ("meeting_type_id", "notes"):
            if name in payload:
                changes[name] = _optional_text(payload, name)
        if "participant_count" in payload:
            changes["participant_count"] = _parse_int(payload["participant_count"], "participant_count")

        updated = service.update(reservation_id, _current_actor(), **changes)
        return jsonify({"ok": True, "reservation": _serialize_reservation(updated)})

    @app.post("/api/reservations/<reservation_id>/cancel")
    def cancel_reservation(reservation_id: str) -> Any:
        payload = _json_payload()
        canceled = service.cancel(reservation_id, _current_actor(), reason=payload.get("reason"))
        return jsonify({"ok": True, "reservation": _serialize_reservation(canceled)})

    @app.get("/api/availability/suggest")
    def suggest_slot() -> Any:
        room_id, target_date = _room_and_date()
        slot = service.suggest_slot(room_id, target_date)
        if slot is None:
            return jsonify({"ok": True, "slot": None})
        return jsonify({"ok": True, "slot": {"start_time": _time_label(slot[0]), "end_time": _time_label(slot[1])}})

    @app.get("/api/availability/start-slots")
    def start_slots() -> Any:
        room_id, target_date = _room_and_date()
        slots = service.list_available_start_slots(room_id, target_date)
        return jsonify({"ok": True, "slots": [_time_label(value) for value in slots]})

    @app.get("/api/availability/end-slots")
    def end_slots() -> Any:
        room_id, target_date = _room_and_date()
        slots = service.list_available_end_slots(
            room_id,
            target_date,
            _require_text(request.args, "start_time"),
            exclude_id=request.args.get("exclude_id") or None,
        )
        return jsonify({"ok": True, "slots": [_time_label(value) for value in slots]})

    @app.get("/api/availability/end-time")
    def end_time() -> Any:
        room_id, target_date = _room_and_date()
        computed = service.recompute_end_time(
            room_id,
            target_date,
            _require_text(request.args, "start_time"),
            exclude_id=request.args.get("exclude_id") or None,
        )
        return jsonify({"ok": True, "end_time": _time_label(computed)})

    @app.post("/api/conflicts/check")
    def check_conflict() -> Any:
        payload = _json_payload()
        conflict = service.has_conflict(
            str(payload.get("room_id", "")).strip(),
            _parse_date(payload.get("date")),
            _require_text(payload, "start_time"),
            _require_text(payload, "end_time"),
            exclude_reservation_id=payload.get("exclude_id") or None,
        )
        return jsonify(
            {
                "ok": True,
                "has_conflict": conflict is not None,
                "conflict": _serialize_reservation(conflict) if conflict is not None else None,
            }
        )

    @app.get("/api/my-reservations")
    def my_reservations() -> Any:
        actor = _current_actor()
        owned = service.list_user_reservations(actor.actor_id)
        upcoming = service.upcoming_meetings(actor.actor_id)
        return jsonify(
            {
                "ok": True,
                "reservations": [_serialize_reservation(record) for record in owned if record.active],
                "upcoming": [_serialize_reservation(record) for record in upcoming if record.active],
            }
        )

    return app


def _json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _current_actor() -> Actor:
    actor_id = request.headers.get("X-User-Id", "").strip()
    name = request.headers.get("X-User-Name", "").strip()
    if not actor_id:
        raise ValidationError("X-User-Id header is required")
    return Actor(actor_id=actor_id, name=name or actor_id)


def _room_and_date() -> tuple[str, date]:
    room_id = str(request.args.get("room_id", "")).strip()
    if not room_id:
        raise ValidationError("room_id is required")
    return room_id, _parse_date(request.args.get("date"))


def _parse_date(value: Any) -> date:
    if not value:
        raise ValidationError("date is required (YYYY-MM-DD)")
    try:
        return date.fromisoformat(str(value))
    except ValueError as error:
        raise ValidationError(f"Invalid date: {value!r}. Expected format: YYYY-MM-DD") from error


def _parse_int(value: Any, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise ValidationError(f"{label} must be an integer") from error


def _require_text(source: Any, key: str) -> str:
    value = str(source.get(key) or "").strip()
    if not value:
        raise ValidationError(f"{key} is required")
    return value


def _optional_text(source: Any, key: str) -> str | None:
    value = source.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def _time_label(value: time) -> str:
    return value.strftime("%H:%M")


def _serialize_reservation(record: ReservationRecord) -> dict[str, Any]:
    payload = record.to_dict()
    payload["status"] = "canceled" if record.canceled else "active"
    return payload


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
