#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from habit_dates import iso, parse_date, resolve_date
from habit_db import (
    Paths,
    init_data_dir,
    read_env_file,
    read_store,
    resolve_paths,
    setting,
    setup_logging,
    update_store,
)
from habit_errors import Ambiguous, HabitError, InvalidInput
from habit_output import (
    Styler,
    color_enabled,
    export_csv_dir,
    export_payload,
    habit_row,
    print_json,
    print_table,
    write_json_file,
)
from habit_schedule import schedule_to_string
from habit_stats import RECAP_RANGES, as_percent, build_recap, build_stats, default_stats_window
from habit_status import build_due, build_status


DATE_HELP = "YYYY-MM-DD or today/yesterday/tomorrow or +/-Nd"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Context:
    paths: Paths
    today: date
    fmt: str
    styler: Styler

    @property
    def as_json(self) -> bool:
        return self.fmt == "json"


def _die(message: str, *, code: int = 1, as_json: bool = False, extra: dict[str, Any] | None = None) -> None:
    if as_json:
        print_json({"ok": False, "error": message, **(extra or {})})
    else:
        sys.stderr.write(message.splitlines()[0] if message else "error")
        sys.stderr.write("\n")
    raise SystemExit(code)


def _resolve_today(raw: str | None, paths: Paths) -> date:
    value = (raw or "").strip() or setting("HABITCLI_TODAY", read_env_file(paths.env_path))
    if not value:
        return date.today()
    return parse_date(value, "today")


def _context(args: argparse.Namespace) -> _Context:
    paths = resolve_paths(getattr(args, "db", None))
    setup_logging(paths.log_dir)
    return _Context(
        paths=paths,
        today=_resolve_today(getattr(args, "today", None), paths),
        fmt=getattr(args, "format", None) or "table",
        styler=Styler(color_enabled(bool(getattr(args, "no_color", False)))),
    )


def _opt_date(raw: str | None, ctx: _Context, label: str) -> date | None:
    if raw is None:
        return None
    return resolve_date(raw, ctx.today, label)


def _cmd_init(args: argparse.Namespace) -> None:
    ctx = _context(args)
    created = init_data_dir(ctx.paths)
    if ctx.as_json:
        print_json(
            {
                "ok": True,
                "created": created,
                "data_dir": str(ctx.paths.data_dir),
                "db_path": str(ctx.paths.db_path),
            }
        )
    else:
        print(f"DB ready: {ctx.paths.db_path}")


def _cmd_add(args: argparse.Namespace) -> None:
    ctx = _context(args)
    habit = update_store(
        ctx.paths.db_path,
        lambda store: store.add_habit(
            args.name,
            today=ctx.today,
            schedule_pattern=args.schedule,
            period=args.period,
            target=args.target,
            notes=args.notes,
        ),
    )
    logger.info("added habit %s (%s)", habit.id, habit.name)

    if ctx.as_json:
        print_json({"ok": True, "habit": habit.to_dict()})
    else:
        print_table([habit_row(habit)], ["id", "name", "schedule", "target"])


def _cmd_list(args: argparse.Namespace) -> None:
    ctx = _context(args)
    store = read_store(ctx.paths.db_path)
    habits = store.list_habits(include_archived=args.all)
    if ctx.as_json:
        print_json({"ok": True, "habits": [h.to_dict() for h in habits]})
    else:
        print_table([habit_row(h) for h in habits], ["id", "name", "schedule", "target", "archived"])


def _cmd_show(args: argparse.Namespace) -> None:
    ctx = _context(args)
    store = read_store(ctx.paths.db_path)
    habit = store.select_habit(args.habit, include_archived=True)
    checkins = store.checkins_for_habit(habit.id)

    if ctx.as_json:
        print_json(
            {
                "ok": True,
                "habit": habit.to_dict(),
                "checkins": [c.to_dict() for c in checkins],
            }
        )
        return

    print(f"{habit.name} ({habit.id})")
    print(f"schedule: {schedule_to_string(habit.schedule)}")
    print(f"target: {habit.target}/{habit.period}")
    print(f"archived: {'yes' if habit.archived else 'no'}")
    print(f"created_date: {iso(habit.created_date)}")
    if habit.archived_date:
        print(f"archived_date: {iso(habit.archived_date)}")
    if habit.notes:
        print(f"notes: {habit.notes}")
    if checkins:
        print("checkins:")
        for c in checkins:
            print(f"- {iso(c.date)} {c.quantity}")


def _cmd_archive(args: argparse.Namespace) -> None:
    ctx = _context(args)
    archive = args.cmd == "archive"

    def mutate(store):
        habit = store.select_habit(args.habit, include_archived=True)
        if archive:
            return store.archive(habit, ctx.today)
        return store.unarchive(habit)

    habit = update_store(ctx.paths.db_path, mutate)
    logger.info("%s habit %s", args.cmd, habit.id)

    if ctx.as_json:
        print_json({"ok": True, "habit": habit.to_dict()})
    else:
        action = "Archived" if archive else "Unarchived"
        print(f"{action}: {habit.name} ({habit.id})")


def _cmd_checkin(args: argparse.Namespace) -> None:
    ctx = _context(args)
    d = _opt_date(args.date, ctx, "date") or ctx.today

    def mutate(store) -> dict[str, Any]:
        habit = store.select_habit(args.habit, include_archived=True)
        prev = store.get_quantity(habit.id, d)
        out: dict[str, Any] = {"habit": habit, "previous_quantity": prev, "delta": None}
        if args.delete:
            store.delete_checkin(habit.id, d)
            out.update(action="delete", quantity=0)
        elif args.set is not None:
            out.update(action="set", quantity=store.set_quantity(habit.id, d, args.set))
        else:
            delta = 1 if args.qty is None else args.qty
            total = store.add_quantity(habit.id, d, delta)
            out.update(action="add", quantity=total, delta=total - prev)
        return out

    result = update_store(ctx.paths.db_path, mutate)
    habit = result["habit"]
    logger.info("checkin %s %s %s -> %s", result["action"], habit.id, iso(d), result["quantity"])

    if ctx.as_json:
        print_json(
            {
                "ok": True,
                "habit": {"id": habit.id, "name": habit.name},
                "date": iso(d),
                "action": result["action"],
                "previous_quantity": result["previous_quantity"],
                "quantity": result["quantity"],
                "delta": result["delta"],
            }
        )
        return

    label = f"{habit.name} ({habit.id}) on {iso(d)}"
    if result["action"] == "delete":
        print(f"Deleted check-in: {label}")
    elif result["action"] == "set":
        print(f"Set check-in: {label} ={result['quantity']}")
    else:
        print(f"Checked in: {label} +{result['delta']} (total {result['quantity']})")


def _cmd_status(args: argparse.Namespace) -> None:
    ctx = _context(args)
    on = _opt_date(args.date, ctx, "date") or ctx.today
    week_of = _opt_date(args.week_of, ctx, "week-of")
    store = read_store(ctx.paths.db_path)
    data = build_status(store, on, week_of=week_of, include_archived=args.include_archived)

    if ctx.as_json:
        print_json({"ok": True, **data})
        return

    s = ctx.styler
    print(f"Today ({data['today']['date']})")
    if not data["today"]["habits"]:
        print(s.gray("(no scheduled habits)"))
    for h in data["today"]["habits"]:
        mark = s.green("[x]") if h["done"] else "[ ]"
        progress = f"{h['quantity']}/{h['target']}"
        if h["period"] == "week":
            progress += " (weekly)"
        print(f"- {mark} {h['name']} {progress}")

    print("")
    print(f"This week ({data['week']['id']})")
    for h in data["week"]["habits"]:
        if h["period"] == "day":
            print(f"- {h['name']} {h['done_scheduled_days']}/{h['scheduled_days']} scheduled days done")
        else:
            print(f"- {h['name']} {h['quantity']}/{h['target']} (weekly)")


def _cmd_due(args: argparse.Namespace) -> None:
    ctx = _context(args)
    on = _opt_date(args.date, ctx, "date") or ctx.today
    store = read_store(ctx.paths.db_path)
    data = build_due(store, on, include_archived=args.include_archived)

    if ctx.as_json:
        print_json({"ok": True, **data})
        return

    print(f"Due ({data['date']}): {data['counts']['due']} remaining")
    rows = [
        {
            "id": r["id"],
            "name": r["name"],
            "progress": f"{r['quantity']}/{r['target']}/{r['period']}",
            "remaining": r["remaining"],
            "done": "yes" if r["done"] else "no",
        }
        for r in data["due"]
    ]
    print_table(rows, ["id", "name", "progress", "remaining", "done"])


def _success_cell(successes: int, eligible: int, rate: float | None) -> str:
    pct = as_percent(rate)
    label = "n/a" if pct is None else f"{pct}%"
    return f"{label} ({successes}/{eligible})"


def _cmd_stats(args: argparse.Namespace) -> None:
    ctx = _context(args)
    start = _opt_date(args.from_date, ctx, "from")
    end = _opt_date(args.to_date, ctx, "to")
    store = read_store(ctx.paths.db_path)

    if args.habit:
        habits = [store.select_habit(args.habit, include_archived=True)]
    else:
        habits = store.list_habits(include_archived=False)

    if start is None:
        start, end = default_stats_window(habits, end or ctx.today)
    elif end is None:
        end = ctx.today
    if start > end:
        raise InvalidInput("Invalid range: from > to")

    rows = build_stats(store, habits, start, end)
    if ctx.as_json:
        print_json({"ok": True, "stats": rows})
        return

    print_table(
        [
            {
                "id": r["habit_id"],
                "name": r["name"],
                "period": r["period"],
                "current": r["current_streak"],
                "longest": r["longest_streak"],
                "success": _success_cell(
                    r["success_rate"]["successes"],
                    r["success_rate"]["eligible"],
                    r["success_rate"]["rate"],
                ),
            }
            for r in rows
        ],
        ["id", "name", "period", "current", "longest", "success"],
    )


def _cmd_recap(args: argparse.Namespace) -> None:
    ctx = _context(args)
    store = read_store(ctx.paths.db_path)
    habits = store.list_habits(include_archived=args.all)
    data = build_recap(store, habits, args.range, ctx.today)

    if ctx.as_json:
        print_json({"ok": True, **data})
        return

    rng = data["range"]
    print(f"Recap {rng['kind']} ({rng['from']}..{rng['to']})")
    print_table(
        [
            {
                "id": r["habit_id"],
                "name": r["name"],
                "target": r["target_label"],
                "done": _success_cell(r["successes"], r["eligible"], r["rate"]),
            }
            for r in data["habits"]
        ],
        ["id", "name", "target", "done"],
    )


def _cmd_export(args: argparse.Namespace) -> None:
    ctx = _context(args)
    start = _opt_date(args.from_date, ctx, "from")
    end = _opt_date(args.to_date, ctx, "to")
    if start is not None and end is not None and start > end:
        raise InvalidInput("Invalid range: from > to")

    store = read_store(ctx.paths.db_path)
    habits = store.list_habits(include_archived=args.include_archived)
    checkins = store.checkins_in_range(start, end, {h.id for h in habits})

    if args.export_format == "json":
        payload = export_payload(habits, checkins)
        if args.out:
            write_json_file(Path(args.out).expanduser(), payload)
        else:
            print_json(payload)
        return

    if not args.out:
        raise InvalidInput("CSV export requires --out <dir>")
    export_csv_dir(Path(args.out).expanduser(), habits, checkins)


def _global_options() -> argparse.ArgumentParser:
    # SUPPRESS keeps a value given before the subcommand from being reset by
    # the subparser's own copy of the option.
    g = argparse.ArgumentParser(add_help=False)
    g.add_argument("--db", default=argparse.SUPPRESS, help="Path to the JSON DB file")
    g.add_argument("--today", default=argparse.SUPPRESS, help="Reference date (YYYY-MM-DD)")
    g.add_argument("--no-color", action="store_true", default=argparse.SUPPRESS)
    return g


def _format_option() -> argparse.ArgumentParser:
    f = argparse.ArgumentParser(add_help=False)
    f.add_argument("--format", choices=["table", "json"], default=argparse.SUPPRESS)
    return f


def _build_parser() -> argparse.ArgumentParser:
    g = _global_options()
    fmt = _format_option()
    common = [g, fmt]

    p = argparse.ArgumentParser(
        prog="habit", description="Local habit tracker (JSON file)", parents=common
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser(
        "init", help="Create the data dir and an empty DB (idempotent)", parents=common
    ).set_defaults(func=_cmd_init)

    add = sub.add_parser("add", help="Add a habit", parents=common)
    add.add_argument("name")
    add.add_argument(
        "--schedule",
        default="everyday",
        help="everyday, weekdays, weekends or e.g. mon,wed,fri",
    )
    add.add_argument("--period", choices=["day", "week"], default="day")
    add.add_argument("--target", default="1", help="Positive integer per period")
    add.add_argument("--notes")
    add.set_defaults(func=_cmd_add)

    ls = sub.add_parser("list", help="List habits", parents=common)
    ls.add_argument("--all", action="store_true", help="Include archived habits")
    ls.set_defaults(func=_cmd_list)

    show = sub.add_parser("show", help="Show one habit and its check-ins", parents=common)
    show.add_argument("habit", help="Habit id (h0001) or unique name prefix")
    show.set_defaults(func=_cmd_show)

    for name, help_text in (("archive", "Archive a habit"), ("unarchive", "Unarchive a habit")):
        a = sub.add_parser(name, help=help_text, parents=common)
        a.add_argument("habit", help="Habit id (h0001) or unique name prefix")
        a.set_defaults(func=_cmd_archive)

    ci = sub.add_parser("checkin", help="Record a check-in for a date", parents=common)
    ci.add_argument("habit", help="Habit id (h0001) or unique name prefix")
    ci.add_argument("--date", help=DATE_HELP)
    mode = ci.add_mutually_exclusive_group()
    mode.add_argument("--qty", help="Add N to the day's quantity (default: 1)")
    mode.add_argument("--set", help="Set the day's quantity to N (0 removes it)")
    mode.add_argument("--delete", action="store_true", help="Remove the day's check-in")
    ci.set_defaults(func=_cmd_checkin)

    st = sub.add_parser("status", help="Today's and this week's progress", parents=common)
    st.add_argument("--date", help=DATE_HELP)
    st.add_argument("--week-of", dest="week_of", help=DATE_HELP)
    st.add_argument("--include-archived", action="store_true")
    st.set_defaults(func=_cmd_status)

    due = sub.add_parser("due", help="Habits due on a date and what is left", parents=common)
    due.add_argument("--date", help=DATE_HELP)
    due.add_argument("--include-archived", action="store_true")
    due.set_defaults(func=_cmd_due)

    stats = sub.add_parser("stats", help="Streaks and success rate", parents=common)
    stats.add_argument("habit", nargs="?", help="Habit id or name prefix (default: all active)")
    stats.add_argument("--from", dest="from_date", help=DATE_HELP)
    stats.add_argument("--to", dest="to_date", help=DATE_HELP)
    stats.set_defaults(func=_cmd_stats)

    recap = sub.add_parser("recap", help="Completion percentage per habit", parents=common)
    recap.add_argument("--range", choices=list(RECAP_RANGES), default="month")
    recap.add_argument("--all", action="store_true", help="Include archived habits")
    recap.set_defaults(func=_cmd_recap)

    # export has its own --format (json|csv), so it only takes the global options.
    ex = sub.add_parser("export", help="Export habits and check-ins", parents=[g])
    ex.add_argument("--format", dest="export_format", required=True, choices=["json", "csv"])
    ex.add_argument("--out", help="File for json, directory for csv")
    ex.add_argument("--from", dest="from_date", help=DATE_HELP)
    ex.add_argument("--to", dest="to_date", help=DATE_HELP)
    ex.add_argument("--include-archived", action="store_true")
    ex.set_defaults(func=_cmd_export)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    as_json = getattr(args, "format", None) == "json"
    try:
        args.func(args)
    except Ambiguous as e:
        logger.warning("%s", e)
        _die(
            str(e),
            code=e.exit_code,
            as_json=as_json,
            extra={"candidates": [{"id": hid, "name": name} for hid, name in e.candidates]},
        )
    except HabitError as e:
        logger.warning("%s failed: %s", args.cmd, e)
        _die(str(e), code=e.exit_code, as_json=as_json)
    except BrokenPipeError:
        # Allow piping to head/jq without stack traces.
        raise SystemExit(0)


if __name__ == "__main__":
    main(sys.argv[1:])
