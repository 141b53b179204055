"""
Progress snapshots against targets: the "today" + "this week" status view and
the due list. Results are plain dicts ready for JSON output.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from habit_dates import date_range, iso, iso_week_end, iso_week_id, iso_week_start
from habit_schedule import is_due
from habit_store import Habit, Store


def _progress(store: Store, habit: Habit, on: date, week_start: date) -> int:
    if habit.period == "day":
        return store.get_quantity(habit.id, on)
    return store.week_total(habit, week_start)


def build_status(
    store: Store,
    on: date,
    *,
    week_of: date | None = None,
    include_archived: bool = False,
) -> dict[str, Any]:
    """
    Snapshot of progress on `on` plus the ISO week containing `week_of`
    (defaults to `on`). Habits not due on `on` are left out of the "today"
    section; weekly habits included there report their week-to-date sum.
    """
    week_start = iso_week_start(week_of or on)
    week_end = iso_week_end(week_start)
    week_days = date_range(week_start, week_end)
    habits = store.list_habits(include_archived=include_archived)

    today_rows: list[dict[str, Any]] = []
    for h in habits:
        if not is_due(h, on):
            continue
        qty = _progress(store, h, on, week_start)
        today_rows.append(
            {
                "id": h.id,
                "name": h.name,
                "period": h.period,
                "target": h.target,
                "quantity": qty,
                "done": qty >= h.target,
            }
        )

    week_rows: list[dict[str, Any]] = []
    for h in habits:
        if h.period == "day":
            scheduled = [d for d in week_days if is_due(h, d)]
            done_days = sum(1 for d in scheduled if store.get_quantity(h.id, d) >= h.target)
            week_rows.append(
                {
                    "id": h.id,
                    "name": h.name,
                    "period": "day",
                    "scheduled_days": len(scheduled),
                    "done_scheduled_days": done_days,
                }
            )
        else:
            week_rows.append(
                {
                    "id": h.id,
                    "name": h.name,
                    "period": "week",
                    "target": h.target,
                    "quantity": store.week_total(h, week_start),
                }
            )

    return {
        "today": {"date": iso(on), "habits": today_rows},
        "week": {
            "id": iso_week_id(week_start),
            "start_date": iso(week_start),
            "end_date": iso(week_end),
            "habits": week_rows,
        },
    }


def build_due(store: Store, on: date, *, include_archived: bool = False) -> dict[str, Any]:
    week_start = iso_week_start(on)
    rows: list[dict[str, Any]] = []
    for h in store.list_habits(include_archived=include_archived):
        if not is_due(h, on):
            continue
        qty = _progress(store, h, on, week_start)
        rows.append(
            {
                "id": h.id,
                "name": h.name,
                "period": h.period,
                "target": h.target,
                "quantity": qty,
                "remaining": max(h.target - qty, 0),
                "done": qty >= h.target,
            }
        )
    return {
        "date": iso(on),
        "due": rows,
        "counts": {"due": sum(1 for r in rows if not r["done"])},
    }
