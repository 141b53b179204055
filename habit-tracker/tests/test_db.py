import json
from datetime import date
from pathlib import Path

import pytest

from habit_db import (
    DbLock,
    init_data_dir,
    lock_path_for,
    read_env_file,
    read_store,
    resolve_paths,
    update_store,
    validate_shape,
    write_store,
)
from habit_errors import InvalidInput, StorageCorrupt, StorageUnavailable
from habit_store import Store


D = date(2026, 1, 28)


def _valid_payload():
    return {"version": 1, "meta": {"next_habit_number": 1}, "habits": [], "checkins": []}


class TestValidateShape:
    """Top-level payload checks."""

    def test_accepts_empty(self):
        validate_shape(_valid_payload())

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p: p.update(version=2),
            lambda p: p.update(version=True),
            lambda p: p.pop("meta"),
            lambda p: p.update(meta={"next_habit_number": 0}),
            lambda p: p.update(meta={"next_habit_number": True}),
            lambda p: p.update(meta={"next_habit_number": "1"}),
            lambda p: p.update(habits={}),
            lambda p: p.pop("checkins"),
        ],
    )
    def test_rejects(self, mutate):
        payload = _valid_payload()
        mutate(payload)
        with pytest.raises(StorageCorrupt, match="DB corrupted"):
            validate_shape(payload)

    @pytest.mark.parametrize("payload", [[], "x", None, 1])
    def test_rejects_non_object(self, payload):
        with pytest.raises(StorageCorrupt):
            validate_shape(payload)


class TestReadWrite:
    """Loading and saving the JSON file."""

    def test_missing_file_is_empty(self, db_path):
        store = read_store(db_path)
        assert store.habits == []
        assert store.next_habit_number == 1
        assert not db_path.exists()

    def test_round_trip(self, db_path):
        store = Store()
        h = store.add_habit("Stretch", today=D, notes="café")
        store.set_quantity(h.id, D, 2)
        write_store(db_path, store)
        assert read_store(db_path) == store
        assert not lock_path_for(db_path).exists()

    def test_stable_output(self, db_path):
        write_store(db_path, Store())
        text = db_path.read_text(encoding="utf-8")
        assert text.endswith("\n")
        assert list(json.loads(text)) == ["checkins", "habits", "meta", "version"]

    def test_file_mode(self, db_path):
        write_store(db_path, Store())
        assert db_path.stat().st_mode & 0o777 == 0o600

    def test_corrupt_json(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageCorrupt, match="DB corrupted") as exc:
            read_store(db_path)
        assert exc.value.exit_code == 5

    def test_bad_row(self, db_path):
        payload = _valid_payload()
        payload["checkins"] = [{"habit_id": "h0001", "date": "nope", "quantity": 1}]
        db_path.parent.mkdir(parents=True)
        db_path.write_text(json.dumps(payload), encoding="utf-8")
        with pytest.raises(StorageCorrupt):
            read_store(db_path)

    def test_unreadable_path(self, tmp_path):
        with pytest.raises(StorageUnavailable, match="DB IO error"):
            read_store(tmp_path)

    def test_not_utf8(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_bytes(b"\xff\xfe garbage")
        with pytest.raises(StorageCorrupt, match="DB corrupted"):
            read_store(db_path)

    def test_env_file_not_utf8(self, tmp_path):
        p = tmp_path / ".env"
        p.write_bytes(b"HABITCLI_DB_PATH=\xff\n")
        assert read_env_file(p) == {}


class TestLocking:
    """Lock file and read-modify-write."""

    def test_lock_contention(self, db_path):
        db_path.parent.mkdir(parents=True)
        with DbLock(db_path):
            with pytest.raises(StorageUnavailable, match="DB is locked") as exc:
                DbLock(db_path).acquire()
        assert exc.value.exit_code == 5
        assert not lock_path_for(db_path).exists()

    def test_failed_pid_write_releases_lock(self, db_path, monkeypatch):
        db_path.parent.mkdir(parents=True)

        def no_space(fd, data):
            raise OSError(28, "No space left on device")

        lock = DbLock(db_path)
        monkeypatch.setattr("habit_db.os.write", no_space)
        with pytest.raises(StorageUnavailable, match="DB IO error"):
            lock.acquire()
        monkeypatch.undo()
        assert lock.fd is None
        assert not lock_path_for(db_path).exists()
        with DbLock(db_path):
            pass

    def test_update_refuses_when_locked(self, db_path):
        db_path.parent.mkdir(parents=True)
        lock_path_for(db_path).write_text("12345", encoding="ascii")
        with pytest.raises(StorageUnavailable):
            update_store(db_path, lambda s: s.add_habit("X", today=D))
        assert not db_path.exists()
        assert lock_path_for(db_path).exists()

    def test_update_persists(self, db_path):
        habit = update_store(db_path, lambda s: s.add_habit("Stretch", today=D))
        assert habit.id == "h0001"
        assert [h.name for h in read_store(db_path).habits] == ["Stretch"]

    def test_update_rereads_latest(self, db_path):
        stale = read_store(db_path)
        update_store(db_path, lambda s: s.add_habit("First", today=D))
        stale.add_habit("Lost", today=D)
        second = update_store(db_path, lambda s: s.add_habit("Second", today=D))
        assert second.id == "h0002"
        assert [h.name for h in read_store(db_path).habits] == ["First", "Second"]

    def test_failed_mutation_writes_nothing(self, db_path):
        update_store(db_path, lambda s: s.add_habit("Stretch", today=D))
        before = db_path.read_bytes()

        def boom(store):
            store.add_habit("Partial", today=D)
            raise InvalidInput("Invalid target")

        with pytest.raises(InvalidInput):
            update_store(db_path, boom)
        assert db_path.read_bytes() == before
        assert not lock_path_for(db_path).exists()


class TestPaths:
    """Data dir, DB path and .env resolution."""

    def test_defaults_under_data_dir(self, tmp_path):
        paths = resolve_paths()
        assert paths.data_dir == tmp_path / "data"
        assert paths.db_path == tmp_path / "data" / "db.json"
        assert paths.log_dir == tmp_path / "data" / "logs"
        assert paths.lock_path == tmp_path / "data" / "db.json.lock"

    def test_xdg_data_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HABIT_DATA_DIR")
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
        assert resolve_paths().data_dir == tmp_path / "xdg" / "habit-tracker"

    def test_env_var_then_flag(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HABITCLI_DB_PATH", str(tmp_path / "env.json"))
        assert resolve_paths().db_path == tmp_path / "env.json"
        assert resolve_paths(str(tmp_path / "flag.json")).db_path == tmp_path / "flag.json"

    def test_dotenv_file(self, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / ".env").write_text(
            '# settings\nHABITCLI_DB_PATH="%s"\nbroken line\n' % (tmp_path / "dot.json"),
            encoding="utf-8",
        )
        assert resolve_paths().db_path == tmp_path / "dot.json"

    def test_read_env_file(self, tmp_path):
        p = tmp_path / ".env"
        p.write_text('A=1\nB = "two words"\n=skip\nC\n', encoding="utf-8")
        assert read_env_file(p) == {"A": "1", "B": "two words"}
        assert read_env_file(tmp_path / "missing") == {}


class TestInit:
    def test_creates_then_keeps(self, tmp_path):
        paths = resolve_paths()
        assert init_data_dir(paths) is True
        assert paths.log_dir.is_dir()
        update_store(paths.db_path, lambda s: s.add_habit("Keep", today=D))
        assert init_data_dir(paths) is False
        assert [h.name for h in read_store(paths.db_path).habits] == ["Keep"]

    def test_refuses_corrupt_db(self):
        paths = resolve_paths()
        Path(paths.data_dir).mkdir(parents=True)
        paths.db_path.write_text("[]", encoding="utf-8")
        with pytest.raises(StorageCorrupt):
            init_data_dir(paths)
