"""
Per-drive serialization.

Every mutation of a drive's applications or phases runs inside
drive_lock(drive_id), so two requests on the same drive never interleave
their read-modify-write within this process. Across processes the
optimistic version check (bump_drive_version) catches the same race.

Applications are the exception: they only add a row guarded by a unique
constraint, so they take a shared row lock (share_drive_row) instead of
bumping the version, and never conflict with each other.
"""

import threading
from contextlib import contextmanager
from typing import Dict

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from app.core.exceptions import ConcurrentModification
from app.db.tables import drives


class DriveLockRegistry:
    """Hands out one lock per drive id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def get(self, drive_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(drive_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[drive_id] = lock
            return lock


_registry = DriveLockRegistry()


@contextmanager
def drive_lock(drive_id: int):
    lock = _registry.get(int(drive_id))
    with lock:
        yield


def bump_drive_version(db: Session, drive_id: int, expected_version: int, status: str = None) -> None:
    """
    Advance drives.version from expected_version, optionally setting status.

    Raises:
        ConcurrentModification if another writer got there first
    """
    params = {"id": drive_id, "v": expected_version}
    set_clause = "version = version + 1, updated_at = CURRENT_TIMESTAMP"
    if status is not None:
        set_clause += ", status = :status"
        params["status"] = status

    result = db.execute(
        text(f"UPDATE drives SET {set_clause} WHERE drive_id = :id AND version = :v"),
        params
    )
    if result.rowcount != 1:
        raise ConcurrentModification(drive_id)


def share_drive_row(db: Session, drive_id: int) -> None:
    """
    Hold a shared lock on the drive row until the transaction ends.

    Applications to the same drive share it freely; a version bump from a
    phase or override waits until they commit. SQLite compiles this to a
    plain SELECT since its writers already serialize on the file.
    """
    db.execute(
        select(drives.c.drive_id).where(drives.c.drive_id == drive_id).with_for_update(read=True)
    )
