"""
In-memory habit store: habits, the per-(habit, date) quantity ledger and the
id counter. Loading and saving belong to habit_db; nothing here touches disk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from habit_dates import date_range, iso, iso_week_end, parse_date
from habit_errors import Ambiguous, HabitError, InvalidInput, NotFound, StorageCorrupt
from habit_schedule import Schedule, parse_pattern


SCHEMA_VERSION = 1
PERIODS = ("day", "week")

_HABIT_ID_RE = re.compile(r"^h\d{4}$")


def parse_count(raw: Any, *, minimum: int, message: str) -> int:
    """Accept an int or a string of digits; bools and floats are rejected."""
    if isinstance(raw, bool):
        raise InvalidInput(message)
    if isinstance(raw, int):
        value = raw
    else:
        s = str(raw if raw is not None else "").strip()
        if not re.match(r"^[+-]?\d+$", s):
            raise InvalidInput(message)
        value = int(s)
    if value < minimum:
        raise InvalidInput(message)
    return value


@dataclass
class Habit:
    id: str
    name: str
    schedule: Schedule
    period: str
    target: int
    created_date: date
    notes: str | None = None
    archived: bool = False
    archived_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "schedule": self.schedule.to_dict(),
            "target": {"period": self.period, "quantity": self.target},
            "notes": self.notes,
            "archived": self.archived,
            "created_date": iso(self.created_date),
            "archived_date": iso(self.archived_date) if self.archived_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Habit":
        target = data["target"]
        period = target["period"]
        if period not in PERIODS:
            raise InvalidInput(f"Invalid period: {period}")
        notes = data.get("notes")
        archived = data.get("archived", False)
        if not isinstance(archived, bool):
            raise InvalidInput("Invalid archived flag")
        archived_date = data.get("archived_date")
        raw_name = data["name"]
        if not isinstance(raw_name, str):
            raise InvalidInput("Invalid habit name")
        name = raw_name.strip()
        if not name:
            raise InvalidInput("Habit name is required")
        return cls(
            id=str(data["id"]),
            name=name,
            schedule=Schedule.from_dict(data["schedule"]),
            period=period,
            target=parse_count(target["quantity"], minimum=1, message="Invalid target"),
            created_date=parse_date(data["created_date"], "created_date"),
            notes=None if notes is None else str(notes),
            archived=archived,
            archived_date=parse_date(archived_date, "archived_date") if archived_date else None,
        )


@dataclass(frozen=True)
class Checkin:
    habit_id: str
    date: date
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {"habit_id": self.habit_id, "date": iso(self.date), "quantity": self.quantity}


def habit_sort_key(habit: Habit) -> tuple[str, str]:
    return (habit.name.lower(), habit.id)


def sort_habits(habits: Iterable[Habit]) -> list[Habit]:
    return sorted(habits, key=habit_sort_key)


@dataclass
class Store:
    next_habit_number: int = 1
    habits: list[Habit] = field(default_factory=list)
    checkins: dict[tuple[str, date], int] = field(default_factory=dict)

    # --- habits ---------------------------------------------------------

    def allocate_id(self) -> str:
        n = self.next_habit_number
        self.next_habit_number = n + 1
        return f"h{n:04d}"

    def add_habit(
        self,
        name: str,
        *,
        today: date,
        schedule_pattern: str | None = "everyday",
        period: str | None = "day",
        target: Any = 1,
        notes: str | None = None,
    ) -> Habit:
        habit_name = str(name or "").strip()
        if not habit_name:
            raise InvalidInput("Habit name is required")
        schedule = parse_pattern(schedule_pattern or "everyday")
        p = period or "day"
        if p not in PERIODS:
            raise InvalidInput(f"Invalid period: {period}")
        t = parse_count(1 if target is None else target, minimum=1, message="Invalid target")

        habit = Habit(
            id=self.allocate_id(),
            name=habit_name,
            schedule=schedule,
            period=p,
            target=t,
            created_date=today,
            notes=None if notes is None else str(notes),
        )
        self.habits.append(habit)
        return habit

    def get_habit(self, habit_id: str) -> Habit | None:
        for h in self.habits:
            if h.id == habit_id:
                return h
        return None

    def list_habits(self, *, include_archived: bool = False) -> list[Habit]:
        return sort_habits(h for h in self.habits if include_archived or not h.archived)

    def select_habit(self, selector: str, *, include_archived: bool = True) -> Habit:
        """
        Resolve a selector: an exact id like "h0001" wins outright, anything
        else is a case-insensitive name prefix that must match exactly one habit.
        """
        s = str(selector or "").strip()
        if not s:
            raise InvalidInput("Habit selector is required")

        if _HABIT_ID_RE.match(s):
            habit = self.get_habit(s)
            if habit is None or (habit.archived and not include_archived):
                raise NotFound(f"Habit not found: {selector}")
            return habit

        prefix = s.lower()
        matches = [
            h
            for h in self.list_habits(include_archived=include_archived)
            if h.name.lower().startswith(prefix)
        ]
        if not matches:
            raise NotFound(f"Habit not found: {selector}")
        if len(matches) > 1:
            candidates = [(h.id, h.name) for h in matches]
            listed = ", ".join(f"{hid} {name}" for hid, name in candidates)
            raise Ambiguous(f"Ambiguous habit selector '{selector}': {listed}", candidates)
        return matches[0]

    @staticmethod
    def archive(habit: Habit, today: date) -> Habit:
        habit.archived = True
        habit.archived_date = habit.archived_date or today
        return habit

    @staticmethod
    def unarchive(habit: Habit) -> Habit:
        habit.archived = False
        habit.archived_date = None
        return habit

    # --- checkin ledger -------------------------------------------------

    def get_quantity(self, habit_id: str, d: date) -> int:
        return self.checkins.get((habit_id, d), 0)

    def set_quantity(self, habit_id: str, d: date, quantity: Any) -> int:
        q = parse_count(quantity, minimum=0, message="Invalid quantity")
        if q == 0:
            self.checkins.pop((habit_id, d), None)
        else:
            self.checkins[(habit_id, d)] = q
        return q

    def add_quantity(self, habit_id: str, d: date, delta: Any) -> int:
        n = parse_count(delta, minimum=1, message="Invalid quantity")
        return self.set_quantity(habit_id, d, self.get_quantity(habit_id, d) + n)

    def delete_checkin(self, habit_id: str, d: date) -> int:
        return self.checkins.pop((habit_id, d), 0)

    def week_total(self, habit: Habit, week_start: date) -> int:
        """Sum over the ISO week starting at week_start, skipping days before the habit existed."""
        return sum(
            self.get_quantity(habit.id, d)
            for d in date_range(week_start, iso_week_end(week_start))
            if d >= habit.created_date
        )

    def checkins_for_habit(self, habit_id: str) -> list[Checkin]:
        return self.checkins_in_range(habit_ids={habit_id})

    def checkins_in_range(
        self,
        start: date | None = None,
        end: date | None = None,
        habit_ids: set[str] | None = None,
    ) -> list[Checkin]:
        out = [
            Checkin(habit_id=hid, date=d, quantity=q)
            for (hid, d), q in self.checkins.items()
            if (habit_ids is None or hid in habit_ids)
            and (start is None or d >= start)
            and (end is None or d <= end)
        ]
        out.sort(key=lambda c: (c.date, c.habit_id))
        return out

    # --- serialization --------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SCHEMA_VERSION,
            "meta": {"next_habit_number": self.next_habit_number},
            "habits": [h.to_dict() for h in self.habits],
            "checkins": [c.to_dict() for c in self.checkins_in_range()],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Store":
        """Build a Store from an already shape-checked payload."""
        try:
            habits = [Habit.from_dict(h) for h in payload["habits"]]
            seen: set[str] = set()
            for h in habits:
                if h.id in seen:
                    raise InvalidInput(f"Duplicate habit id: {h.id}")
                seen.add(h.id)

            checkins: dict[tuple[str, date], int] = {}
            for c in payload["checkins"]:
                key = (str(c["habit_id"]), parse_date(c["date"]))
                if key in checkins:
                    raise InvalidInput(f"Duplicate checkin: {key[0]} {iso(key[1])}")
                q = parse_count(c["quantity"], minimum=0, message="Invalid quantity")
                if q:
                    checkins[key] = q
        except (HabitError, KeyError, TypeError, AttributeError) as e:
            raise StorageCorrupt("DB corrupted") from e

        return cls(
            next_habit_number=int(payload["meta"]["next_habit_number"]),
            habits=habits,
            checkins=checkins,
        )
