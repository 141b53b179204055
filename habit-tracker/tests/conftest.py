"""
Shared fixtures for the habit tracker tests.
"""

import logging
from datetime import date
from logging.handlers import RotatingFileHandler

import pytest

from habit_store import Store


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point the data dir at a temp dir and clear settings from the real environment."""
    for name in ("HABITCLI_DB_PATH", "HABITCLI_TODAY", "XDG_DATA_HOME", "HABIT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HABIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("NO_COLOR", "1")
    yield
    root = logging.getLogger()
    for h in list(root.handlers):
        if isinstance(h, RotatingFileHandler):
            root.removeHandler(h)
            h.close()


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def stretch(store):
    """Weekday daily habit created 2026-01-01 with Mon/Tue/Thu/Fri check-ins in the week of Jan 26."""
    habit = store.add_habit(
        "Stretch", today=date(2026, 1, 1), schedule_pattern="weekdays", period="day", target=1
    )
    for day in (26, 27, 29, 30):
        store.set_quantity(habit.id, date(2026, 1, day), 1)
    return habit


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "db" / "db.json"


@pytest.fixture
def run_cli(capsys, db_path):
    """Run the CLI against the temp DB; returns (exit_code, stdout, stderr)."""
    from habit_cli import main

    def run(*args, today="2026-01-31"):
        argv = ["--db", str(db_path)]
        if today is not None:
            argv += ["--today", today]
        argv += args
        code = 0
        try:
            main(list(argv))
        except SystemExit as e:
            code = e.code if isinstance(e.code, int) else 1
        out, err = capsys.readouterr()
        return code, out, err

    return run
