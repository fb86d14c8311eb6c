from datetime import UTC, datetime, timedelta

import pytest

from flakecompat.datestamp import CalendarTime, format_timestamp, pad, to_calendar
from flakecompat.errors import InvariantViolationError


@pytest.mark.parametrize(
    ("timestamp", "expected"),
    [
        (0, CalendarTime(1970, 1, 1, 0, 0, 0)),
        (86399, CalendarTime(1970, 1, 1, 23, 59, 59)),
        (-1, CalendarTime(1969, 12, 31, 23, 59, 59)),
        (951782400, CalendarTime(2000, 2, 29, 0, 0, 0)),
        (1709251199, CalendarTime(2024, 2, 29, 23, 59, 59)),
    ],
)
def test_to_calendar_known_values(timestamp: int, expected: CalendarTime) -> None:
    assert to_calendar(timestamp) == expected


@pytest.mark.parametrize(
    "timestamp",
    [-62135596800, -2208988800, -86401, -59, 59, 68256000, 4102444800, 253402300799],
)
def test_to_calendar_matches_reference_calendar(timestamp: int) -> None:
    reference = datetime(1970, 1, 1, tzinfo=UTC) + timedelta(seconds=timestamp)

    assert to_calendar(timestamp) == CalendarTime(
        reference.year,
        reference.month,
        reference.day,
        reference.hour,
        reference.minute,
        reference.second,
    )


def test_format_timestamp_is_fixed_width() -> None:
    assert format_timestamp(0) == "19700101000000"
    assert format_timestamp(1700000000) == "20231114221320"
    assert len(format_timestamp(-62135596800)) == 14


def test_pad_rejects_values_wider_than_field() -> None:
    assert pad(7, 2) == "07"

    with pytest.raises(InvariantViolationError):
        pad(12345, 4)
    with pytest.raises(InvariantViolationError):
        pad(1, 2, fill="ab")
