from datetime import time

import pytest

from techplan.core.timefmt import clock_after, format_clock, format_hours_and_minutes, parse_hhmm, span_hours


def test_parse_accepts_seconds():
    assert parse_hhmm("08:30:00") == time(8, 30)
    assert parse_hhmm(" 7:05 ") == time(7, 5)


@pytest.mark.parametrize("value", ["", "8", "24:00", "08:60", "eight"])
def test_parse_rejects_garbage(value):
    with pytest.raises(ValueError, match="invalid time"):
        parse_hhmm(value)


def test_span_hours():
    assert span_hours("08:00", "17:30") == pytest.approx(9.5)
    assert span_hours("17:00", "08:00") < 0


def test_twelve_hour_clock():
    assert format_clock(time(0, 15)) == "12:15 AM"
    assert format_clock(time(12, 0)) == "12:00 PM"
    assert format_clock(time(15, 0)) == "03:00 PM"


def test_clock_after_rounds_to_minute():
    assert clock_after("08:00", 2) == "10:00 AM"
    assert clock_after("08:00", 2.2501) == "10:15 AM"


@pytest.mark.parametrize(
    "hours, expected",
    [
        (0, "0h 0m"),
        (0.75, "45m"),
        (8, "8h"),
        (8.5, "8h 30m"),
        (24, "1d"),
        (27, "1d 3h"),
        (48.5, "2d 30m"),
        (50.25, "2d 2h 15m"),
    ],
)
def test_format_hours_and_minutes(hours, expected):
    assert format_hours_and_minutes(hours) == expected
