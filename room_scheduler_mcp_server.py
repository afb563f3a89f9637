from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP

from room_scheduler import Actor, ReservationRequest, ReservationService, ReservationYamlRepository, load_settings

mcp = FastMCP(
    "Room Scheduler MCP Server",
    instructions="Expose meeting-room reservations and slot planning from the room_scheduler project.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
REPOSITORY = ReservationYamlRepository(DATA_DIR)
SERVICE = ReservationService(REPOSITORY, settings=load_settings(DATA_DIR / "settings.yaml"))


@mcp.resource("reservation://rooms")
async def list_rooms() -> list[dict[str, Any]]:
    """List bookable meeting rooms with their capacity."""
    return [room.to_dict() for room in SERVICE.list_rooms()]


@mcp.resource("reservation://meeting-types")
async def list_meeting_types() -> list[dict[str, Any]]:
    """List active meeting types."""
    return [item.to_dict() for item in SERVICE.list_meeting_types()]


@mcp.tool()
def list_reservations(
    room_id: str | None = None,
    date_iso: Annotated[str | None, "Day to list, YYYY-MM-DD"] = None,
    include_canceled: bool = True,
) -> list[dict[str, Any]]:
    """Return reservations, active first, optionally filtered by room and day."""
    target_date = date.fromisoformat(date_iso) if date_iso else None
    records = SERVICE.list_reservations(room_id=room_id, target_date=target_date, include_canceled=include_canceled)
    return [record.to_dict() for record in records]


@mcp.tool()
def suggest_slot(room_id: str, date_iso: Annotated[str, "Day to plan, YYYY-MM-DD"]) -> dict[str, str] | None:
    """Suggest the next free start/end pair for a room."""
    slot = SERVICE.suggest_slot(room_id, date.fromisoformat(date_iso))
    if slot is None:
        return None
    return {"start_time": slot[0].strftime("%H:%M"), "end_time": slot[1].strftime("%H:%M")}


@mcp.tool()
def create_reservation(
    room_id: str,
    date_iso: Annotated[str, "Day of the meeting, YYYY-MM-DD"],
    start_time: Annotated[str, "HH:MM"],
    end_time: Annotated[str, "HH:MM"],
    requester_id: str,
    requester_name: str,
    participant_count: int = 1,
    recurrence: Annotated[str, "none, weekly, biweekly or monthly"] = "none",
    occurrences: int = 1,
    notes: str | None = None,
) -> list[dict[str, Any]]:
    """Book a room, optionally as a recurring series committed all at once."""
    created = SERVICE.create(
        ReservationRequest(
            room_id=room_id,
            date=date.fromisoformat(date_iso),
            start_time=start_time,
            end_time=end_time,
            participant_count=participant_count,
            notes=notes,
            recurrence=recurrence,
            occurrences=occurrences,
        ),
        Actor(actor_id=requester_id, name=requester_name),
    )
    return [record.to_dict() for record in created]


@mcp.tool()
def cancel_reservation(reservation_id: str, actor_id: str, actor_name: str, reason: str | None = None) -> dict[str, Any]:
    """Cancel a reservation; it stays listed with its cancel metadata."""
    canceled = SERVICE.cancel(reservation_id, Actor(actor_id=actor_id, name=actor_name), reason=reason)
    return canceled.to_dict()


def main() -> None:
    REPOSITORY.seed_default_catalog()
    mcp.run()


if __name__ == "__main__":
    main()
