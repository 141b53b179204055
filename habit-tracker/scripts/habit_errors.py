"""
Error kinds shared by the habit tracker modules.

Every error carries the process exit code the CLI uses when it surfaces it.
"""

from __future__ import annotations


class HabitError(Exception):
    exit_code = 1


class InvalidInput(HabitError, ValueError):
    exit_code = 2


class NotFound(HabitError):
    exit_code = 3


class Ambiguous(HabitError):
    exit_code = 4

    def __init__(self, message: str, candidates: list[tuple[str, str]]) -> None:
        super().__init__(message)
        self.candidates = candidates


class StorageCorrupt(HabitError):
    exit_code = 5


class StorageUnavailable(HabitError):
    exit_code = 5
