from .booking import (
	Actor,
	ChangeEntry,
	MeetingType,
	ReservationRecord,
	Room,
	TimeSlot,
	can_reserve,
	format_minutes,
	has_time_overlap,
	to_minutes,
)
from .audit import diff, extend_history
from .conflicts import ConflictDetector, find_conflict
from .errors import ConflictError, NotFoundError, PersistenceError, ReservationError, ValidationError
from .planner import AvailabilityPlanner
from .recurrence import RecurrenceKind, add_months, expand_dates
from .service import ReservationRequest, ReservationService, RoomDayLocks
from .settings import SchedulingSettings, load_settings
from .yaml_store import ReservationYamlRepository

__all__ = [
	"Actor",
	"ChangeEntry",
	"MeetingType",
	"ReservationRecord",
	"Room",
	"TimeSlot",
	"can_reserve",
	"format_minutes",
	"has_time_overlap",
	"to_minutes",
	"diff",
	"extend_history",
	"ConflictDetector",
	"find_conflict",
	"ConflictError",
	"NotFoundError",
	"PersistenceError",
	"ReservationError",
	"ValidationError",
	"AvailabilityPlanner",
	"RecurrenceKind",
	"add_months",
	"expand_dates",
	"ReservationRequest",
	"ReservationService",
	"RoomDayLocks",
	"SchedulingSettings",
	"load_settings",
	"ReservationYamlRepository",
]
