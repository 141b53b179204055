"""
Streak and success-rate statistics over an inclusive date window.

Daily habits are judged on their due days inside the window. Weekly habits
are judged per ISO week (Monday start): every week from the week of `start`
through the week of `end` that ends on or after the habit's creation date.
Streaks run over that sequence of eligible units, so a day the habit is not
scheduled never breaks a streak.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Sequence

from habit_dates import add_days, date_range, iso, iso_week_end, iso_week_start, week_starts
from habit_errors import InvalidInput
from habit_schedule import is_due
from habit_store import Habit, Store, sort_habits


RECAP_RANGES = ("ytd", "month", "week")


def _streaks(outcomes: Sequence[bool]) -> tuple[int, int]:
    current = 0
    for ok in reversed(outcomes):
        if not ok:
            break
        current += 1

    longest = 0
    run = 0
    for ok in outcomes:
        run = run + 1 if ok else 0
        longest = max(longest, run)
    return current, longest


def _rate(successes: int, eligible: int) -> float | None:
    return None if eligible == 0 else successes / eligible


def as_percent(rate: float | None) -> int | None:
    # Half rounds up, not to even.
    return None if rate is None else int(rate * 100 + 0.5)


def daily_outcomes(store: Store, habit: Habit, start: date, end: date) -> list[bool]:
    return [
        store.get_quantity(habit.id, d) >= habit.target
        for d in date_range(start, end)
        if is_due(habit, d)
    ]


def eligible_weeks(habit: Habit, start: date, end: date) -> list[date]:
    if start > end:
        raise InvalidInput("Invalid range: from > to")
    return [
        ws
        for ws in week_starts(iso_week_start(start), iso_week_start(end))
        if iso_week_end(ws) >= habit.created_date
    ]


def weekly_outcomes(store: Store, habit: Habit, start: date, end: date) -> list[bool]:
    return [store.week_total(habit, ws) >= habit.target for ws in eligible_weeks(habit, start, end)]


def outcomes_for(store: Store, habit: Habit, start: date, end: date) -> list[bool]:
    if habit.period == "day":
        return daily_outcomes(store, habit, start, end)
    return weekly_outcomes(store, habit, start, end)


def compute_stats(store: Store, habit: Habit, start: date, end: date) -> dict[str, Any]:
    outcomes = outcomes_for(store, habit, start, end)
    successes = sum(1 for ok in outcomes if ok)
    eligible = len(outcomes)
    current, longest = _streaks(outcomes)
    return {
        "habit_id": habit.id,
        "name": habit.name,
        "period": habit.period,
        "target": habit.target,
        "window": {"from": iso(start), "to": iso(end)},
        "current_streak": current,
        "longest_streak": longest,
        "success_rate": {
            "successes": successes,
            "eligible": eligible,
            "rate": _rate(successes, eligible),
        },
    }


def build_stats(store: Store, habits: Iterable[Habit], start: date, end: date) -> list[dict[str, Any]]:
    if start > end:
        raise InvalidInput("Invalid range: from > to")
    return [compute_stats(store, h, start, end) for h in sort_habits(habits)]


def default_stats_window(habits: Sequence[Habit], end: date) -> tuple[date, date]:
    """
    Window used when no start date is given: the 12 ISO weeks ending with the
    week of `end` when every habit is weekly, otherwise the 30 days up to `end`.
    """
    if habits and all(h.period == "week" for h in habits):
        last_week = iso_week_start(end)
        return add_days(last_week, -7 * 11), iso_week_end(last_week)
    return add_days(end, -29), end


def recap_window(kind: str, today: date) -> tuple[date, date]:
    if kind == "ytd":
        return date(today.year, 1, 1), today
    if kind == "month":
        return add_days(today, -29), today
    if kind == "week":
        return add_days(today, -6), today
    raise InvalidInput(f"Invalid range: {kind}")


def build_recap(store: Store, habits: Iterable[Habit], kind: str, today: date) -> dict[str, Any]:
    start, end = recap_window(kind, today)
    rows: list[dict[str, Any]] = []
    for h in sort_habits(habits):
        outcomes = outcomes_for(store, h, start, end)
        successes = sum(1 for ok in outcomes if ok)
        eligible = len(outcomes)
        rate = _rate(successes, eligible)
        rows.append(
            {
                "habit_id": h.id,
                "name": h.name,
                "period": h.period,
                "target": h.target,
                "target_label": f"{h.target}/{h.period}",
                "successes": successes,
                "eligible": eligible,
                "rate": rate,
                "percent": as_percent(rate),
                "range": {"kind": kind, "from": iso(start), "to": iso(end)},
            }
        )
    return {"range": {"kind": kind, "from": iso(start), "to": iso(end)}, "habits": rows}
