from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from habit_errors import InvalidInput


DAY_NAME_TO_ISO = {
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
    "sun": 7,
}
ISO_TO_DAY_NAME = {v: k for k, v in DAY_NAME_TO_ISO.items()}

EVERYDAY = (1, 2, 3, 4, 5, 6, 7)
WEEKDAYS = (1, 2, 3, 4, 5)
WEEKENDS = (6, 7)

_KEYWORDS = {
    "everyday": EVERYDAY,
    "weekdays": WEEKDAYS,
    "weekends": WEEKENDS,
}


@dataclass(frozen=True)
class Schedule:
    """Weekdays (1=Mon..7=Sun) on which a habit is due; sorted, no duplicates."""

    days: tuple[int, ...]

    def __post_init__(self) -> None:
        validate_days(self.days)
        if list(self.days) != sorted(set(self.days)):
            raise InvalidInput("Invalid schedule")

    def __str__(self) -> str:
        return schedule_to_string(self)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "days_of_week", "days": list(self.days)}

    @classmethod
    def from_dict(cls, data: Any) -> "Schedule":
        if not isinstance(data, dict) or data.get("type") != "days_of_week":
            raise InvalidInput("Invalid schedule")
        days = data.get("days")
        if not isinstance(days, list):
            raise InvalidInput("Invalid schedule")
        validate_days(days)
        return cls(days=tuple(sorted(set(days))))


def validate_days(days: Any) -> None:
    if not days:
        raise InvalidInput("Invalid schedule")
    for d in days:
        if isinstance(d, bool) or not isinstance(d, int) or d < 1 or d > 7:
            raise InvalidInput("Invalid schedule")


def parse_pattern(raw: str | None) -> Schedule:
    """
    Accepts everyday / weekdays / weekends (any case) or a comma-separated
    list of three-letter day names, e.g. "mon,wed,fri".
    """
    pattern = str(raw or "").strip().lower()
    if not pattern:
        raise InvalidInput("Invalid schedule pattern")
    if pattern in _KEYWORDS:
        return Schedule(days=_KEYWORDS[pattern])

    parts = [p.strip() for p in pattern.split(",") if p.strip()]
    if not parts:
        raise InvalidInput(f"Invalid schedule pattern: {raw}")
    days: set[int] = set()
    for p in parts:
        if p not in DAY_NAME_TO_ISO:
            raise InvalidInput(f"Invalid schedule pattern: {raw}")
        days.add(DAY_NAME_TO_ISO[p])
    return Schedule(days=tuple(sorted(days)))


def schedule_to_string(schedule: Schedule) -> str:
    days = tuple(sorted(schedule.days))
    for keyword, canonical in _KEYWORDS.items():
        if days == canonical:
            return keyword
    return ",".join(ISO_TO_DAY_NAME[d] for d in days)


def is_due(habit: Any, d: date) -> bool:
    """A habit is never due before its creation date."""
    if d < habit.created_date:
        return False
    return d.isoweekday() in habit.schedule.days
