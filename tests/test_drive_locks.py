"""Per-drive locks and the optimistic version check."""

import threading

import pytest
from sqlalchemy import text

from app.core.exceptions import ConcurrentModification
from app.db.postgres import get_db_session
from app.services.drive_locks import DriveLockRegistry, bump_drive_version, drive_lock


def test_registry_reuses_lock_per_drive():
    registry = DriveLockRegistry()
    assert registry.get(1) is registry.get(1)
    assert registry.get(1) is not registry.get(2)


def test_drive_lock_serializes_same_drive():
    inside = []
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with drive_lock(42):
            entered.set()
            release.wait(5)
            inside.append("holder")

    def waiter():
        with drive_lock(42):
            inside.append("waiter")

    first = threading.Thread(target=holder)
    first.start()
    entered.wait(5)
    second = threading.Thread(target=waiter)
    second.start()
    second.join(0.2)
    assert inside == []

    release.set()
    first.join()
    second.join()
    assert inside == ["holder", "waiter"]


def test_version_bump_and_status(seed):
    drive = seed.drive()

    with get_db_session() as db:
        bump_drive_version(db, drive["drive_id"], 0, status="In Progress")

    with get_db_session() as db:
        row = db.execute(
            text("SELECT version, status FROM drives WHERE drive_id = :d"), {"d": drive["drive_id"]}
        ).mappings().one()
    assert (row["version"], row["status"]) == (1, "In Progress")


def test_stale_version_rolls_back(seed):
    drive = seed.drive()

    with pytest.raises(ConcurrentModification):
        with get_db_session() as db:
            db.execute(text("UPDATE drives SET role = 'Changed' WHERE drive_id = :d"), {"d": drive["drive_id"]})
            bump_drive_version(db, drive["drive_id"], 7)

    with get_db_session() as db:
        row = db.execute(
            text("SELECT version, role FROM drives WHERE drive_id = :d"), {"d": drive["drive_id"]}
        ).mappings().one()
    assert row["version"] == 0
    assert row["role"] != "Changed"
