import csv
import io
import json
from datetime import date

from habit_output import (
    CHECKINS_CSV_HEADER,
    HABITS_CSV_HEADER,
    Styler,
    color_enabled,
    export_csv_dir,
    export_payload,
    print_json,
    render_table,
)
from habit_store import Store


def test_render_table_pads_columns():
    rows = [{"id": "h0001", "name": "Stretch"}, {"id": "h0002", "name": "Go"}]
    assert render_table(rows, ["id", "name"]).splitlines() == [
        "id     name   ",
        "-----  -------",
        "h0001  Stretch",
        "h0002  Go     ",
    ]


def test_render_table_empty():
    assert render_table([], ["id"]) == "(no rows)"


def test_styler():
    assert Styler(False).green("ok") == "ok"
    assert Styler(True).green("ok") == "\u001b[32mok\u001b[0m"
    assert Styler(True).gray("x").startswith("\u001b[90m")


def test_color_enabled(monkeypatch):
    assert color_enabled(False) is False
    monkeypatch.delenv("NO_COLOR")
    assert color_enabled(False) is True
    assert color_enabled(True) is False


def test_print_json_is_sorted():
    buf = io.StringIO()
    print_json({"b": 1, "a": "é"}, buf)
    assert buf.getvalue() == '{\n  "a": "é",\n  "b": 1\n}\n'


def _sample():
    store = Store()
    h = store.add_habit("Stretch, daily", today=date(2026, 1, 1), schedule_pattern="mon,fri")
    store.set_quantity(h.id, date(2026, 1, 2), 2)
    return store


def test_export_payload():
    store = _sample()
    payload = export_payload(store.list_habits(), store.checkins_in_range())
    assert payload["version"] == 1
    assert payload["checkins"] == [{"habit_id": "h0001", "date": "2026-01-02", "quantity": 2}]
    json.dumps(payload)


def test_export_csv_dir(tmp_path):
    store = _sample()
    out = tmp_path / "export"
    written = export_csv_dir(out, store.list_habits(), store.checkins_in_range())
    assert [p.name for p in written] == ["habits.csv", "checkins.csv"]

    with (out / "habits.csv").open(encoding="utf-8", newline="") as f:
        habits = list(csv.reader(f))
    assert habits[0] == HABITS_CSV_HEADER
    assert habits[1] == [
        "h0001",
        "Stretch, daily",
        "mon,fri",
        "day",
        "1",
        "",
        "false",
        "2026-01-01",
        "",
    ]

    text = (out / "checkins.csv").read_text(encoding="utf-8")
    assert text == ",".join(CHECKINS_CSV_HEADER) + "\nh0001,2026-01-02,2\n"
