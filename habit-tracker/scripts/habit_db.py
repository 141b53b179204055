"""
JSON-file persistence for the habit store.

- Paths come from --db / HABITCLI_DB_PATH / HABIT_DATA_DIR / XDG_DATA_HOME,
  with a minimal dotenv file in the data dir for persistent settings.
- Writes go through a non-blocking lock file next to the DB: the latest state
  is re-read inside the lock, mutated, then replaced atomically.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, TypeVar

from habit_errors import StorageCorrupt, StorageUnavailable
from habit_store import SCHEMA_VERSION, Store


SKILL_NAME = "habit-tracker"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_env_file(path: Path) -> dict[str, str]:
    """
    Parse a very small subset of dotenv:
    - KEY=value
    - KEY="value"
    Lines that don't match are ignored.
    """
    out: dict[str, str] = {}
    if not path.exists():
        return out
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return out
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            continue
        if len(v) >= 2 and v[0] == '"' and v[-1] == '"':
            v = v[1:-1].replace('\\"', '"').replace("\\\\", "\\")
        out[k] = v
    return out


@dataclass(frozen=True)
class Paths:
    data_dir: Path
    db_path: Path
    log_dir: Path
    env_path: Path

    @property
    def lock_path(self) -> Path:
        return lock_path_for(self.db_path)


def default_data_dir() -> Path:
    raw = (os.environ.get("HABIT_DATA_DIR") or "").strip()
    if raw:
        return Path(raw).expanduser()
    xdg = (os.environ.get("XDG_DATA_HOME") or "").strip()
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / SKILL_NAME


def setting(name: str, env_file: dict[str, str]) -> str | None:
    """Process environment first, then the data-dir .env file."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        raw = env_file.get(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def resolve_paths(db_arg: str | None = None) -> Paths:
    data_dir = default_data_dir()
    env_path = data_dir / ".env"
    env = read_env_file(env_path)

    raw_db = (db_arg or "").strip() or setting("HABITCLI_DB_PATH", env)
    db_path = Path(raw_db).expanduser() if raw_db else data_dir / "db.json"
    return Paths(
        data_dir=data_dir,
        db_path=db_path,
        log_dir=data_dir / "logs",
        env_path=env_path,
    )


def setup_logging(log_dir: Path, *, max_bytes: int = 1_000_000, backup_count: int = 3) -> None:
    """Attach a rotating file handler to the root logger (once per log file)."""
    log_file = log_dir / "habit.log"
    root = logging.getLogger()
    for h in root.handlers:
        if isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file.resolve():
            return
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    except OSError:
        # An unwritable log dir must not break the CLI.
        return
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    level = (os.environ.get("HABIT_LOG_LEVEL") or "INFO").strip().upper()
    root.setLevel(getattr(logging, level, logging.INFO))


def dumps_stable(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=True) + "\n"


def validate_shape(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise StorageCorrupt("DB corrupted")
    if payload.get("version") != SCHEMA_VERSION or isinstance(payload.get("version"), bool):
        raise StorageCorrupt("DB corrupted")
    meta = payload.get("meta")
    if not isinstance(meta, dict):
        raise StorageCorrupt("DB corrupted")
    n = meta.get("next_habit_number")
    if isinstance(n, bool) or not isinstance(n, int) or n < 1:
        raise StorageCorrupt("DB corrupted")
    if not isinstance(payload.get("habits"), list) or not isinstance(payload.get("checkins"), list):
        raise StorageCorrupt("DB corrupted")


def read_store(db_path: Path) -> Store:
    """Load the store; a missing file is an empty store."""
    try:
        raw = db_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("no DB at %s; starting empty", db_path)
        return Store()
    except UnicodeDecodeError as e:
        logger.warning("DB at %s is not valid UTF-8: %s", db_path, e)
        raise StorageCorrupt("DB corrupted") from e
    except OSError as e:
        raise StorageUnavailable("DB IO error") from e

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("DB at %s is not valid JSON: %s", db_path, e)
        raise StorageCorrupt("DB corrupted") from e
    try:
        validate_shape(payload)
        store = Store.from_dict(payload)
    except StorageCorrupt:
        logger.warning("DB at %s failed validation", db_path)
        raise
    logger.debug(
        "loaded %s: %d habits, %d checkins", db_path, len(store.habits), len(store.checkins)
    )
    return store


def lock_path_for(db_path: Path) -> Path:
    return db_path.with_name(db_path.name + ".lock")


class DbLock:
    """
    Exclusive lock file next to the DB. Acquisition never waits: if the lock
    file already exists the DB is reported busy.
    """

    def __init__(self, db_path: Path) -> None:
        self.lockfile = lock_path_for(db_path)
        self.fd: int | None = None

    def acquire(self) -> None:
        try:
            self.fd = os.open(str(self.lockfile), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError as e:
            logger.warning("DB lock %s is held by another process", self.lockfile)
            raise StorageUnavailable("DB is locked") from e
        except OSError as e:
            raise StorageUnavailable("DB IO error") from e
        try:
            os.write(self.fd, str(os.getpid()).encode("ascii"))
        except OSError as e:
            os.close(self.fd)
            self.fd = None
            self.lockfile.unlink(missing_ok=True)
            raise StorageUnavailable("DB IO error") from e
        logger.debug("acquired %s", self.lockfile)

    def release(self) -> None:
        if self.fd is None:
            return
        try:
            os.close(self.fd)
        finally:
            self.fd = None
            try:
                self.lockfile.unlink()
            except FileNotFoundError:
                pass
            logger.debug("released %s", self.lockfile)

    def __enter__(self) -> "DbLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def ensure_parent_dir(db_path: Path) -> None:
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    except OSError as e:
        raise StorageUnavailable("DB IO error") from e


def _write_atomic(db_path: Path, store: Store) -> None:
    payload = store.to_dict()
    validate_shape(payload)
    data = dumps_stable(payload)
    fd, tmp_name = tempfile.mkstemp(prefix=".db.json.tmp.", dir=str(db_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, db_path)
    except OSError as e:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise StorageUnavailable("DB IO error") from e


def write_store(db_path: Path, store: Store) -> None:
    ensure_parent_dir(db_path)
    with DbLock(db_path):
        _write_atomic(db_path, store)
    logger.info("saved %s", db_path)


def update_store(db_path: Path, mutator: Callable[[Store], T]) -> T:
    """
    Read-modify-write under the DB lock. The store handed to `mutator` is
    re-read inside the lock; if `mutator` raises, nothing is written.
    """
    ensure_parent_dir(db_path)
    with DbLock(db_path):
        latest = read_store(db_path)
        result = mutator(latest)
        _write_atomic(db_path, latest)
    logger.info("saved %s", db_path)
    return result


def init_data_dir(paths: Paths) -> bool:
    """Create the data/log dirs and an empty DB; returns True if the DB was created."""
    try:
        paths.data_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        paths.log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageUnavailable("DB IO error") from e
    if paths.db_path.exists():
        read_store(paths.db_path)
        return False
    write_store(paths.db_path, Store())
    return True
