"""
Calendar helpers. Dates are plain `datetime.date` values on a UTC-only
proleptic Gregorian calendar; there is no time-of-day anywhere.
"""

from __future__ import annotations

import re
from datetime import date, timedelta

from habit_errors import InvalidInput


_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_REL_DAY_RE = re.compile(r"^(?P<sign>[+-])(?P<num>\d+)d$")


def parse_date(raw: str, label: str = "date") -> date:
    """Parse a strict YYYY-MM-DD string, rejecting impossible calendar dates."""
    s = str(raw if raw is not None else "")
    if not _DATE_RE.match(s):
        raise InvalidInput(f"Invalid {label}: {raw}")
    try:
        return date(int(s[0:4]), int(s[5:7]), int(s[8:10]))
    except ValueError as e:
        raise InvalidInput(f"Invalid {label}: {raw}") from e


def resolve_date(raw: str, today: date, label: str = "date") -> date:
    """
    Like parse_date, but also accepts today/yesterday/tomorrow and +/-Nd
    relative to the given reference day.
    """
    s = str(raw).strip().lower()
    if s == "today":
        return today
    if s == "yesterday":
        return add_days(today, -1)
    if s == "tomorrow":
        return add_days(today, 1)
    m = _REL_DAY_RE.match(s)
    if m:
        n = int(m.group("num"))
        if m.group("sign") == "-":
            n = -n
        return add_days(today, n)
    return parse_date(str(raw).strip(), label)


def iso(d: date) -> str:
    return d.isoformat()


def add_days(d: date, n: int) -> date:
    try:
        return d + timedelta(days=n)
    except OverflowError as e:
        raise InvalidInput(f"Date out of range: {iso(d)} {n:+d}d") from e


def iso_weekday(d: date) -> int:
    return d.isoweekday()


def iso_week_start(d: date) -> date:
    return add_days(d, 1 - d.isoweekday())


def iso_week_end(d: date) -> date:
    return add_days(iso_week_start(d), 6)


def iso_week_id(d: date) -> str:
    # Week-numbering year, not d.year.
    week_year, week, _ = d.isocalendar()
    return f"{week_year}-W{week:02d}"


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of days from start to end."""
    if start > end:
        raise InvalidInput("Invalid range: from > to")
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def week_starts(first_week_start: date, last_week_start: date) -> list[date]:
    if first_week_start > last_week_start:
        return []
    count = (last_week_start - first_week_start).days // 7 + 1
    return [first_week_start + timedelta(days=7 * i) for i in range(count)]
