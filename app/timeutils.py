from __future__ import annotations

import datetime
import re
from typing import Dict, Iterable, List, Optional, Tuple, Union


DAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
# Display and payload order runs Monday to Sunday.
WEEK_ORDER = {day: index for index, day in enumerate(DAY_NAMES[1:] + DAY_NAMES[:1])}
SHORT_DAY_NAMES = {
    "monday": "Mon",
    "tuesday": "Tue",
    "wednesday": "Wed",
    "thursday": "Thu",
    "friday": "Fri",
    "saturday": "Sat",
    "sunday": "Sun",
}
MINUTES_PER_DAY = 24 * 60

# Order matters: full names first so prefix matching prefers them.
DAY_ALIASES: Dict[str, str] = {
    "monday": "monday",
    "tuesday": "tuesday",
    "wednesday": "wednesday",
    "thursday": "thursday",
    "friday": "friday",
    "saturday": "saturday",
    "sunday": "sunday",
    "mon": "monday",
    "m": "monday",
    "tues": "tuesday",
    "tue": "tuesday",
    "t": "tuesday",
    "wed": "wednesday",
    "w": "wednesday",
    "thurs": "thursday",
    "thu": "thursday",
    "th": "thursday",
    "fri": "friday",
    "f": "friday",
    "sat": "saturday",
    "s": "saturday",
    "sun": "sunday",
    "su": "sunday",
    # Spreadsheet exports sometimes number the weekdays.
    "1": "monday",
    "2": "tuesday",
    "3": "wednesday",
    "4": "thursday",
    "5": "friday",
    "6": "saturday",
    "0": "sunday",
    "7": "sunday",
}

_MERIDIEM_TOKENS = ("a.m.", "p.m.", "a.m", "p.m", "am", "pm")
_CLOCK_PATTERN = re.compile(r"^(?P<hours>\d{1,2})(?::(?P<minutes>\d{1,2}))?$")
_RANGE_SPLIT = re.compile(r"\s*[-–]\s*")

TimeValue = Union[str, int, None]


def try_parse_time(value: TimeValue) -> Optional[int]:
    """Return minutes since midnight, or None when the value is not a time.

    Accepts "HH:MM", "H", 12-hour strings with an am/pm suffix (dotted
    variants too) and plain integers meaning whole hours.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value * 60 if 0 <= value <= 23 else None
    label = str(value).strip().lower()
    if not label:
        return None
    meridiem: Optional[str] = None
    if "pm" in label or "p.m" in label:
        meridiem = "pm"
    elif "am" in label or "a.m" in label:
        meridiem = "am"
    if meridiem:
        for token in _MERIDIEM_TOKENS:
            label = label.replace(token, "")
        label = label.strip()
    match = _CLOCK_PATTERN.match(label)
    if not match:
        return None
    hours = int(match.group("hours"))
    minutes = int(match.group("minutes") or 0)
    if minutes > 59:
        return None
    if meridiem:
        if hours < 1 or hours > 12:
            return None
        if meridiem == "pm" and hours < 12:
            hours += 12
        if meridiem == "am" and hours == 12:
            hours = 0
    elif hours > 23:
        return None
    return hours * 60 + minutes


def parse_time_to_minutes(value: TimeValue) -> int:
    """Best-effort parse; malformed input falls back to 0 (midnight).

    Callers that need to tell midnight from garbage should use try_parse_time.
    """
    parsed = try_parse_time(value)
    if parsed is None:
        return 0
    return max(0, min(MINUTES_PER_DAY - 1, parsed))


def parse_time_range(label: Optional[str]) -> Optional[Tuple[int, int]]:
    """Split a "<start> - <end>" label into minutes; None if either side is malformed."""
    if not label or not isinstance(label, str):
        return None
    parts = _RANGE_SPLIT.split(label.strip(), maxsplit=1)
    if len(parts) != 2:
        return None
    start = try_parse_time(parts[0])
    end = try_parse_time(parts[1])
    if start is None or end is None:
        return None
    return start, end


def format_time_range(start: TimeValue, end: TimeValue) -> str:
    return f"{start} - {end}"


def _as_minutes(value: Union[int, str]) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return parse_time_to_minutes(value)


def intervals_overlap(
    a_start: Union[int, str],
    a_end: Union[int, str],
    b_start: Union[int, str],
    b_end: Union[int, str],
) -> bool:
    """Strict interval intersection: ranges that only share an endpoint do not overlap."""
    return _as_minutes(a_start) < _as_minutes(b_end) and _as_minutes(b_start) < _as_minutes(a_end)


def normalize_day_name(value: Union[str, int, None]) -> Optional[str]:
    """Map free-form day labels from uploads to a canonical lowercase day name."""
    if value is None or isinstance(value, bool):
        return None
    label = str(value).strip().lower()
    if not label:
        return None
    if label in DAY_ALIASES:
        return DAY_ALIASES[label]
    for alias, day in DAY_ALIASES.items():
        # Single letters would match almost anything.
        if len(alias) > 1 and label.startswith(alias):
            return day
    for day in DAY_NAMES:
        if day in label:
            return day
    return None


def format_hour_12(value: TimeValue) -> str:
    """Display label such as "9AM" or "1:30PM" for an hour number or clock string."""
    minutes = try_parse_time(value)
    if minutes is None:
        return ""
    hour, minute = divmod(minutes, 60)
    period = "PM" if hour >= 12 else "AM"
    hour12 = hour % 12 or 12
    if minute:
        return f"{hour12}:{minute:02d}{period}"
    return f"{hour12}{period}"


def today_day_name(now: Optional[datetime.datetime] = None) -> str:
    current = now or datetime.datetime.now()
    # Python weekday() is Monday=0; the day table starts on Sunday.
    return DAY_NAMES[(current.weekday() + 1) % 7]


def minutes_of_day(now: Optional[datetime.datetime] = None) -> int:
    current = now or datetime.datetime.now()
    return current.hour * 60 + current.minute


def sort_days(days: Iterable[str]) -> List[str]:
    return sorted(days, key=lambda day: WEEK_ORDER.get((day or "").lower(), len(WEEK_ORDER)))


def format_day_name(day: str) -> str:
    return day[:1].upper() + day[1:] if day else ""


def format_short_day_name(day: str) -> str:
    return SHORT_DAY_NAMES.get(day, (day or "")[:3])


def _coerce_date(value: Union[str, datetime.date, datetime.datetime, None]) -> Optional[datetime.date]:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.date.fromisoformat(text[:10])
    except ValueError:
        return None


def week_dates(start_date, end_date) -> Optional[Dict[str, datetime.date]]:
    """Return {day name: date} when the range looks like one week (5-7 days apart)."""
    start = _coerce_date(start_date)
    end = _coerce_date(end_date)
    if start is None or end is None:
        return None
    span = (end - start).days
    if span < 5 or span > 7:
        return None
    dates: Dict[str, datetime.date] = {}
    for offset in range(span + 1):
        current = start + datetime.timedelta(days=offset)
        dates.setdefault(today_day_name(datetime.datetime.combine(current, datetime.time.min)), current)
    return dates


def date_for_day(day: str, start_date, end_date=None) -> Optional[datetime.date]:
    """Date of the named day within the setup week, counting forward from start_date."""
    canonical = normalize_day_name(day)
    if canonical is None:
        return None
    dates = week_dates(start_date, end_date) if end_date is not None else None
    if dates and canonical in dates:
        return dates[canonical]
    start = _coerce_date(start_date)
    if start is None:
        return None
    offset = (WEEK_ORDER[canonical] - start.weekday()) % 7
    return start + datetime.timedelta(days=offset)
