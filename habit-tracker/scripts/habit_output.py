"""
Presentation helpers: JSON printing, plain-text tables, ANSI colour and the
JSON/CSV export files.
"""

from __future__ import annotations

import csv
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Iterable, Sequence, TextIO

from habit_errors import StorageUnavailable
from habit_schedule import schedule_to_string
from habit_store import SCHEMA_VERSION, Checkin, Habit


HABITS_CSV_HEADER = [
    "id",
    "name",
    "schedule",
    "period",
    "target",
    "notes",
    "archived",
    "created_date",
    "archived_date",
]
CHECKINS_CSV_HEADER = ["habit_id", "date", "quantity"]

_ANSI = {"reset": "\u001b[0m", "green": "\u001b[32m", "gray": "\u001b[90m"}

logger = logging.getLogger(__name__)


def print_json(obj: Any, out: TextIO | None = None) -> None:
    out = out or sys.stdout
    json.dump(obj, out, ensure_ascii=False, indent=2, sort_keys=True)
    out.write("\n")


class Styler:
    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled

    def _wrap(self, code: str, s: str) -> str:
        if not self.enabled:
            return s
        return _ANSI[code] + s + _ANSI["reset"]

    def green(self, s: str) -> str:
        return self._wrap("green", s)

    def gray(self, s: str) -> str:
        return self._wrap("gray", s)


def color_enabled(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return os.environ.get("NO_COLOR") is None


def render_table(rows: Sequence[dict[str, Any]], cols: Sequence[str]) -> str:
    if not rows:
        return "(no rows)"
    widths: dict[str, int] = {c: len(c) for c in cols}
    for r in rows:
        for c in cols:
            widths[c] = max(widths[c], len(str(r.get(c, ""))))
    sep = "  "
    lines = [
        sep.join(c.ljust(widths[c]) for c in cols),
        sep.join("-" * widths[c] for c in cols),
    ]
    for r in rows:
        lines.append(sep.join(str(r.get(c, "")).ljust(widths[c]) for c in cols))
    return "\n".join(lines)


def print_table(rows: Sequence[dict[str, Any]], cols: Sequence[str]) -> None:
    print(render_table(rows, cols))


def habit_row(habit: Habit) -> dict[str, Any]:
    return {
        "id": habit.id,
        "name": habit.name,
        "schedule": schedule_to_string(habit.schedule),
        "target": f"{habit.target}/{habit.period}",
        "archived": "yes" if habit.archived else "no",
    }


def export_payload(habits: Iterable[Habit], checkins: Iterable[Checkin]) -> dict[str, Any]:
    return {
        "version": SCHEMA_VERSION,
        "habits": [h.to_dict() for h in habits],
        "checkins": [c.to_dict() for c in checkins],
    }


def _write_csv(path: Path, header: list[str], rows: Iterable[list[str]]) -> None:
    with path.open("w", encoding="utf-8", newline="") as f:
        w = csv.writer(f, lineterminator="\n")
        w.writerow(header)
        w.writerows(rows)
    os.chmod(path, 0o600)


def export_csv_dir(out_dir: Path, habits: Sequence[Habit], checkins: Sequence[Checkin]) -> list[Path]:
    """Write habits.csv and checkins.csv into out_dir (created if needed)."""
    habits_path = out_dir / "habits.csv"
    checkins_path = out_dir / "checkins.csv"
    try:
        out_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        _write_csv(
            habits_path,
            HABITS_CSV_HEADER,
            (
                [
                    h.id,
                    h.name,
                    schedule_to_string(h.schedule),
                    h.period,
                    str(h.target),
                    h.notes or "",
                    "true" if h.archived else "false",
                    h.created_date.isoformat(),
                    h.archived_date.isoformat() if h.archived_date else "",
                ]
                for h in habits
            ),
        )
        _write_csv(
            checkins_path,
            CHECKINS_CSV_HEADER,
            ([c.habit_id, c.date.isoformat(), str(c.quantity)] for c in checkins),
        )
    except OSError as e:
        raise StorageUnavailable(f"Export failed: {e}") from e
    logger.info("exported %d habits, %d checkins to %s", len(habits), len(checkins), out_dir)
    return [habits_path, checkins_path]


def write_json_file(path: Path, obj: Any) -> None:
    try:
        path.write_text(
            json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        os.chmod(path, 0o600)
    except OSError as e:
        raise StorageUnavailable(f"Export failed: {e}") from e
    logger.info("exported JSON to %s", path)
