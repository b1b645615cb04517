"""Time-range parsing and "is this class happening now" evaluation.

Schedule time ranges are free-form strings typed by people, e.g.
"8:00 AM - 9:30 AM", "08:00-09:30", "800AM–930AM" or "22:00-02:00".
Everything here is pure and safe to call from any thread; malformed
input never raises.
"""

import re
from datetime import datetime, time, timedelta
from enum import Enum
from typing import NamedTuple, Optional, Tuple, Union

MINUTES_PER_DAY = 24 * 60
DEFAULT_GRACE_MINUTES = 3

DAY_NAMES = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)

# en dash, em dash, minus sign
_DASHES = re.compile("[–—−]")
_WHITESPACE = re.compile(r"\s+")

# Tried in order; the first match wins. "930" and "0930" only make sense
# after the colon forms have been ruled out.
TIME_PATTERNS = (
    ("h:mm am/pm", re.compile(r"^(\d{1,2}):(\d{2})(AM|PM)$")),
    ("h:mm 24h", re.compile(r"^(\d{1,2}):(\d{2})$")),
    ("hmm am/pm", re.compile(r"^(\d{1,2})(\d{2})(AM|PM)$")),
    ("hmm 24h", re.compile(r"^(\d{1,2})(\d{2})$")),
)


class ParsedTime(NamedTuple):
    """A time of day as written: hour, minute and optional AM/PM."""
    hour: int
    minute: int
    meridiem: Optional[str] = None


class RangeFallback(Enum):
    """What an unparseable range evaluates to at a given call site."""
    ALWAYS = True
    NEVER = False


def parse_time(text: str) -> Optional[ParsedTime]:
    """
    Parse one side of a range using the fixed pattern precedence.

    Returns None if no pattern matches or the values are out of range.
    """
    normalized = _WHITESPACE.sub("", str(text or "")).upper()
    if not normalized:
        return None

    for _name, pattern in TIME_PATTERNS:
        match = pattern.match(normalized)
        if not match:
            continue
        hour, minute = int(match.group(1)), int(match.group(2))
        meridiem = match.group(3) if pattern.groups == 3 else None
        if minute > 59:
            return None
        if meridiem and not 0 <= hour <= 12:
            return None
        if not meridiem and hour > 23:
            return None
        return ParsedTime(hour, minute, meridiem)
    return None


def split_range(time_range: str) -> Optional[Tuple[str, str]]:
    """Normalize dashes and split into exactly two non-empty parts."""
    raw = str(time_range or "").strip()
    if not raw:
        return None
    parts = [p.strip() for p in _DASHES.sub("-", raw).split("-")]
    parts = [p for p in parts if p]
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def parse_range(time_range: str) -> Optional[Tuple[ParsedTime, ParsedTime]]:
    """Parse "start - end"; None when either side is unparseable."""
    parts = split_range(time_range)
    if parts is None:
        return None
    start, end = parse_time(parts[0]), parse_time(parts[1])
    if start is None or end is None:
        return None
    return start, end


def to_minutes(parsed: ParsedTime) -> int:
    """Minutes since midnight. 12 AM is 0 and 12 PM is noon."""
    hour = parsed.hour
    if parsed.meridiem == "PM" and hour != 12:
        hour += 12
    elif parsed.meridiem == "AM" and hour == 12:
        hour = 0
    return hour * 60 + parsed.minute


def _now_minutes(now: Union[int, datetime, time]) -> int:
    if isinstance(now, (datetime, time)):
        return now.hour * 60 + now.minute
    return int(now)


def is_within(
    now: Union[int, datetime, time],
    start: int,
    end: int,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> bool:
    """
    Check whether `now` falls in [start, end] widened by the grace window.

    When end < start the range wraps past midnight and is treated as
    [start - grace, end of day] plus [start of day, end + grace].
    """
    now_min = _now_minutes(now)
    low = max(0, start - grace_minutes)
    high = min(MINUTES_PER_DAY, end + grace_minutes)
    if end < start:
        return now_min >= low or now_min <= high
    return low <= now_min <= high


def range_contains_now(
    time_range: str,
    now: Union[int, datetime, time],
    fallback: RangeFallback = RangeFallback.NEVER,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> bool:
    """is_within() for a raw range string, with a call-site fallback."""
    parsed = parse_range(time_range)
    if parsed is None:
        return fallback.value
    start, end = parsed
    return is_within(now, to_minutes(start), to_minutes(end), grace_minutes)


def weekday_index(day: Union[str, int, None]) -> Optional[int]:
    """Monday=0 .. Sunday=6, matching datetime.weekday()."""
    if isinstance(day, int):
        return day if 0 <= day <= 6 else None
    name = str(day or "").strip().lower()
    for index, candidate in enumerate(DAY_NAMES):
        if candidate.lower() == name:
            return index
    return None


def day_name(moment: datetime) -> str:
    return DAY_NAMES[moment.weekday()]


def next_occurrence(
    weekday: Union[str, int],
    start: Union[int, ParsedTime],
    reference_now: datetime,
) -> Optional[datetime]:
    """
    The next moment the given weekday + start time comes around.

    Today counts only if the start time is strictly later than now;
    otherwise the same weekday next week is returned.
    """
    target = weekday_index(weekday)
    if target is None:
        return None
    start_min = to_minutes(start) if isinstance(start, ParsedTime) else int(start)
    if not 0 <= start_min < MINUTES_PER_DAY:
        return None

    delta = (target - reference_now.weekday()) % 7
    if delta == 0 and start_min <= _now_minutes(reference_now):
        delta = 7

    day = reference_now + timedelta(days=delta)
    return day.replace(
        hour=start_min // 60, minute=start_min % 60, second=0, microsecond=0
    )


def next_occurrence_for(
    day: Union[str, int],
    time_range: str,
    reference_now: datetime,
) -> Optional[datetime]:
    """next_occurrence() for a raw range string; None if unparseable."""
    parsed = parse_range(time_range)
    if parsed is None:
        return None
    return next_occurrence(day, parsed[0], reference_now)
