# reportdraft/dates.py

"""
Natural-language date tokens used inside dictionary tags.

Supported tokens (case and whitespace insensitive):
    today, yesterday, tomorrow
    monday ... sunday          next occurrence on/after today
    next monday, last friday   +/- one week per qualifier
    weekstart                  Sunday of the current week
    month, monthstart, year
    today+7, weekstart-1, monthstart+1, lastweek, nextweek ...
"""

import calendar
import re
from datetime import date, datetime, timedelta
from typing import Union


WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

DEFAULT_DATE_FORMAT = "%d-%b-%Y"

_ARITHMETIC_RE = re.compile(r"[-+]\d+")
_NEXT_RE = re.compile(r"next")
_LAST_RE = re.compile(r"last|previous")


# -------------------------
# Calendar helpers
# -------------------------

def _as_date(now: Union[date, datetime]) -> date:
    if isinstance(now, datetime):
        return now.date()
    return now


def sunday_index(d: date) -> int:
    """Day of week with Sunday = 0, matching WEEKDAYS."""
    return (d.weekday() + 1) % 7


def add_months(d: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return d.replace(year=year, month=month, day=min(d.day, last_day))


def add_years(d: date, years: int) -> date:
    return add_months(d, years * 12)


def normalize_token(token: str) -> str:
    return re.sub(r"\s+", "", (token or "").lower())


# -------------------------
# Token resolution
# -------------------------

def _count_shift(text: str) -> int:
    shift = len(_NEXT_RE.findall(text)) - len(_LAST_RE.findall(text))
    m = _ARITHMETIC_RE.search(text)
    if m:
        shift += int(m.group(0))
    return shift


def resolve_date_token(token: str, now: Union[date, datetime]) -> date:
    """
    Resolve a date token against a fixed "now".

    Unrecognized tokens resolve to today (plus any arithmetic suffix).
    """
    today = _as_date(now)
    text = normalize_token(token)
    shift = _count_shift(text)

    for index, name in enumerate(WEEKDAYS):
        if name in text:
            plain = today + timedelta(days=(index - sunday_index(today)) % 7)
            return plain + timedelta(weeks=shift)

    if "weekstart" in text:
        start = today - timedelta(days=sunday_index(today))
        return start + timedelta(weeks=shift)

    if "monthstart" in text:
        return add_months(today.replace(day=1), shift)
    if "yesterday" in text:
        base = today - timedelta(days=1)
    elif "tomorrow" in text:
        base = today + timedelta(days=1)
    elif "month" in text:
        return add_months(today, shift)
    elif "year" in text:
        return add_years(today, shift)
    else:
        base = today

    unit = 7 if "week" in text else 1
    return base + timedelta(days=shift * unit)


def format_date(d: Union[date, datetime], pattern: str = DEFAULT_DATE_FORMAT) -> str:
    return d.strftime(pattern)
