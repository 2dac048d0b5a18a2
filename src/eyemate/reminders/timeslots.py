"""Time-of-day helpers: slot classification and sleep/quiet-hours windows.

All comparisons are on the wall clock only (date-independent), using
minutes since midnight as the comparable unit.
"""

from __future__ import annotations

from datetime import datetime, time

from eyemate.reminders.models import TimeSlot

_SECONDS_PER_DAY = 24 * 60 * 60

_MORNING_START = 6 * 60
_AFTERNOON_START = 12 * 60
_EVENING_START = 18 * 60


def parse_time_of_day(value: time | datetime | str) -> time:
    """Coerce ``time``, ``datetime`` or an ``HH:MM[:SS]`` string into a ``time``."""
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time of day: {value!r}") from exc


def minutes_since_midnight(value: time | datetime | str) -> int:
    t = parse_time_of_day(value)
    return t.hour * 60 + t.minute


def shift_time_of_day(value: time | str, minutes: int) -> time:
    """Shift a time of day by *minutes*, wrapping within a 24h clock."""
    t = parse_time_of_day(value)
    seconds = (t.hour * 3600 + t.minute * 60 + t.second + minutes * 60) % _SECONDS_PER_DAY
    return time(seconds // 3600, seconds % 3600 // 60, seconds % 60, t.microsecond)


def classify_slot(value: time | datetime | str) -> TimeSlot:
    """Map a clock time to its dose-window bucket.

    morning = [06:00, 12:00), afternoon = [12:00, 18:00), evening = the rest
    (including the hours after midnight).
    """
    minutes = minutes_since_midnight(value)
    if _MORNING_START <= minutes < _AFTERNOON_START:
        return TimeSlot.MORNING
    if _AFTERNOON_START <= minutes < _EVENING_START:
        return TimeSlot.AFTERNOON
    return TimeSlot.EVENING


def is_within_sleep_window(
    value: time | datetime | str,
    enabled: bool,
    start: time | str | None,
    end: time | str | None,
) -> bool:
    """Return True when *value* falls inside the ``[start, end)`` window.

    A window whose start is after its end crosses midnight (e.g. 22:00-06:00)
    and matches ``t >= start or t < end``.  Disabled or unset windows never
    match.
    """
    if not enabled or start is None or end is None:
        return False

    t = minutes_since_midnight(value)
    window_start = minutes_since_midnight(start)
    window_end = minutes_since_midnight(end)

    if window_start > window_end:
        return t >= window_start or t < window_end
    return window_start <= t < window_end
