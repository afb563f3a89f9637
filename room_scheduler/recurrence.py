from __future__ import annotations

import calendar
from datetime import date, timedelta
from enum import Enum

from .errors import ValidationError
from .settings import MAX_OCCURRENCES


class RecurrenceKind(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: str | RecurrenceKind | None) -> RecurrenceKind:
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as error:
            choices = ", ".join(kind.value for kind in cls)
            raise ValidationError(f"Unknown recurrence kind: {value!r}. Expected one of: {choices}") from error


_DAY_STEPS = {
    RecurrenceKind.WEEKLY: 7,
    RecurrenceKind.BIWEEKLY: 14,
}


def add_months(anchor: date, months: int) -> date:
    """Shift ``anchor`` by calendar months, clamping to the last day of the target month."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor.day, last_day))


def expand_dates(
    anchor: date,
    kind: str | RecurrenceKind | None = RecurrenceKind.NONE,
    count: int = 1,
    max_occurrences: int = MAX_OCCURRENCES,
) -> list[date]:
    recurrence = RecurrenceKind.parse(kind)
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValidationError("Recurrence count must be an integer.")
    if count < 1:
        raise ValidationError("Recurrence count must be at least 1.")
    if count > max_occurrences:
        raise ValidationError(f"Recurrence count must not exceed {max_occurrences}.")

    if recurrence is RecurrenceKind.NONE:
        return [anchor]

    if recurrence is RecurrenceKind.MONTHLY:
        # Offsets count from the anchor: Jan 31 -> Feb 29 -> Mar 31.
        return [add_months(anchor, index) for index in range(count)]

    step = _DAY_STEPS[recurrence]
    return [anchor + timedelta(days=step * index) for index in range(count)]
