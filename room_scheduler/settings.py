from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date
from pathlib import Path
from typing import Any

import holidays as pyholidays
import yaml

from .errors import ValidationError

BUFFER_MINUTES = 5
DEFAULT_DURATION_MINUTES = 60
SLOT_STEP_MINUTES = 5
DEFAULT_START_MINUTE = 8 * 60
FIRST_START_MINUTE = 7 * 60
LAST_START_MINUTE = 20 * 60
LATEST_END_MINUTE = 21 * 60
MAX_OCCURRENCES = 52

_HOLIDAY_CACHE: dict[tuple[str, int], set[date]] = {}


@dataclass(frozen=True)
class SchedulingSettings:
    buffer_minutes: int = BUFFER_MINUTES
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES
    slot_step_minutes: int = SLOT_STEP_MINUTES
    default_start_minute: int = DEFAULT_START_MINUTE
    first_start_minute: int = FIRST_START_MINUTE
    last_start_minute: int = LAST_START_MINUTE
    latest_end_minute: int = LATEST_END_MINUTE
    max_occurrences: int = MAX_OCCURRENCES
    holiday_country: str | None = None

    def __post_init__(self) -> None:
        if self.buffer_minutes < 0:
            raise ValidationError("buffer_minutes must not be negative")
        if self.default_duration_minutes <= 0:
            raise ValidationError("default_duration_minutes must be greater than zero")
        if self.slot_step_minutes <= 0:
            raise ValidationError("slot_step_minutes must be greater than zero")
        if not 0 <= self.first_start_minute < self.last_start_minute <= 24 * 60:
            raise ValidationError("start slot window must lie within one day")
        if self.max_occurrences < 1:
            raise ValidationError("max_occurrences must be at least 1")

    def is_blocked_day(self, target_date: date) -> bool:
        if self.holiday_country is None:
            return False
        return target_date.weekday() >= 5 or target_date in _holidays_for(self.holiday_country, target_date.year)


def load_settings(path: str | Path | None = None, **overrides: Any) -> SchedulingSettings:
    values: dict[str, Any] = {}
    if path is not None and Path(path).exists():
        try:
            payload = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            raise ValidationError(f"Could not read settings file: {path}") from error
        if payload is not None and not isinstance(payload, dict):
            raise ValidationError("settings file must contain a mapping")
        values.update(payload or {})
    values.update(overrides)

    known = {field.name for field in fields(SchedulingSettings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(unknown)}")
    return replace(SchedulingSettings(), **values)


def _holidays_for(country: str, year: int) -> set[date]:
    key = (country, year)
    if key not in _HOLIDAY_CACHE:
        _HOLIDAY_CACHE[key] = set(pyholidays.country_holidays(country, years=[year]).keys())
    return _HOLIDAY_CACHE[key]
