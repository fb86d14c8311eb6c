"""Unix timestamp to calendar conversion used to stamp fetched snapshots.

Proleptic Gregorian arithmetic after Howard Hinnant's ``civil_from_days``.
Leap seconds are not taken into account.
"""

from __future__ import annotations

from dataclasses import dataclass

from flakecompat.errors import InvariantViolationError

SECONDS_PER_DAY = 86400
DAYS_PER_ERA = 146097
# Days between 0000-03-01 and 1970-01-01.
EPOCH_SHIFT = 719468


@dataclass(frozen=True, slots=True)
class CalendarTime:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int


def to_calendar(timestamp: int) -> CalendarTime:
    """Convert seconds since the Unix epoch into calendar fields."""
    day_of_epoch, seconds_of_day = divmod(timestamp, SECONDS_PER_DAY)
    hour, rest = divmod(seconds_of_day, 3600)
    minute, second = divmod(rest, 60)

    # Shifted so that years start on March 1st and leap days fall at year end.
    days = day_of_epoch + EPOCH_SHIFT
    era = days // DAYS_PER_ERA
    day_of_era = days - era * DAYS_PER_ERA
    year_of_era = (
        day_of_era - day_of_era // 1460 + day_of_era // 36524 - day_of_era // (DAYS_PER_ERA - 1)
    ) // 365
    day_of_year = day_of_era - (365 * year_of_era + year_of_era // 4 - year_of_era // 100)
    shifted_month = (5 * day_of_year + 2) // 153
    day = day_of_year - (153 * shifted_month + 2) // 5 + 1
    month = shifted_month + 3 if shifted_month < 10 else shifted_month - 9
    year = year_of_era + era * 400 + (1 if month <= 2 else 0)

    return CalendarTime(
        year=year,
        month=month,
        day=day,
        hour=hour,
        minute=minute,
        second=second,
    )


def pad(value: object, width: int, fill: str = "0") -> str:
    """Left-pad ``value`` with ``fill`` up to exactly ``width`` characters."""
    text = str(value)
    if len(fill) != 1:
        raise InvariantViolationError(
            "Padding fill must be a single character.",
            context={"operation": "pad", "fill": fill},
        )
    if len(text) > width:
        raise InvariantViolationError(
            "Value is wider than its field.",
            context={"operation": "pad", "value": text, "width": str(width)},
        )
    return fill * (width - len(text)) + text


def format_timestamp(timestamp: int) -> str:
    """Format seconds since the Unix epoch as ``%Y%m%d%H%M%S``."""
    moment = to_calendar(timestamp)
    return "".join(
        [
            pad(moment.year, 4),
            pad(moment.month, 2),
            pad(moment.day, 2),
            pad(moment.hour, 2),
            pad(moment.minute, 2),
            pad(moment.second, 2),
        ]
    )


__all__ = ["CalendarTime", "format_timestamp", "pad", "to_calendar"]
