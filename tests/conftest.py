"""
Shared fixtures.

The database URL is pointed at a throwaway SQLite file before any app
module is imported; tables are recreated for every test. Notifications
go to an in-memory RecordingSink instead of MongoDB.
"""

import os
import tempfile
import threading
from datetime import datetime, timedelta

_TMP_DIR = tempfile.mkdtemp(prefix="placement-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'placement.db')}"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from app.core.auth import create_access_token
from app.db.postgres import engine, get_db_session
from app.db.tables import create_tables, drop_tables
from app.main import app
from app.services.drive_registry import DriveRegistry
from app.services.eligibility_service import EligibilityService
from app.services.notification_service import NotificationDispatcher, set_dispatcher


class RecordingSink:
    """Keeps every delivered event in memory."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def deliver(self, event):
        with self._lock:
            self.events.append(event)

    def messages_for(self, student_id):
        return [e.message for e in self.events if student_id in e.student_ids]


class FailingSink:
    def __init__(self):
        self.calls = 0

    def deliver(self, event):
        self.calls += 1
        raise RuntimeError("notification backend down")


@pytest.fixture(autouse=True)
def fresh_tables():
    drop_tables(engine)
    create_tables(engine)
    yield


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture(autouse=True)
def dispatcher(sink):
    d = NotificationDispatcher([sink])
    set_dispatcher(d)
    yield d
    d.flush()
    set_dispatcher(None)


@pytest.fixture
def client():
    return TestClient(app)


class Seed:
    """Inserts users, students and drives directly."""

    def __init__(self, dispatcher):
        self.dispatcher = dispatcher
        self._counter = 0

    def _next(self):
        self._counter += 1
        return self._counter

    def user(self, email, role, full_name="Test User", branch=None, is_active=True):
        with get_db_session() as db:
            return db.execute(
                text("""
                    INSERT INTO users (email, full_name, role, branch, is_active)
                    VALUES (:email, :name, :role, :branch, :active)
                    RETURNING user_id
                """),
                {"email": email.lower(), "name": full_name, "role": role, "branch": branch, "active": is_active}
            ).scalar_one()

    def coordinator(self, email="tpo@college.edu"):
        return self.user(email, "coordinator", full_name="Placement Officer")

    def advisor(self, branch="CSE", email=None):
        return self.user(email or f"advisor.{branch.lower()}@college.edu", "advisor",
                         full_name="Branch Advisor", branch=branch)

    def student(self, email=None, branch="CSE", cgpa=8.0, backlogs=0, semesters=6, name=None):
        """Returns (user_id, student_id)."""
        n = self._next()
        email = email or f"student{n}@college.edu"
        user_id = self.user(email, "student", full_name=name or f"Student {n}")
        with get_db_session() as db:
            student_id = db.execute(
                text("""
                    INSERT INTO students (user_id, registration_number, batch, branch, cgpa,
                                          number_of_backlogs, semesters_completed)
                    VALUES (:uid, :reg, 2026, :branch, :cgpa, :backlogs, :semesters)
                    RETURNING student_id
                """),
                {"uid": user_id, "reg": f"REG{n:04d}", "branch": branch, "cgpa": cgpa,
                 "backlogs": backlogs, "semesters": semesters}
            ).scalar_one()
            EligibilityService().refresh_student(db, student_id)
        return user_id, student_id

    def drive(self, **overrides):
        data = {
            "company_name": "Acme Corp",
            "role": "Software Engineer",
            "description": "Backend role",
            "drive_date": datetime.utcnow() + timedelta(days=30),
            "eligible_branches": ["CSE", "IT"],
            "min_cgpa": 7.5,
            "max_backlogs": 0,
            "min_semesters_completed": 4,
        }
        data.update(overrides)
        return DriveRegistry(dispatcher=self.dispatcher).create_drive(data)


@pytest.fixture
def seed(dispatcher):
    return Seed(dispatcher)


def auth_header(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest.fixture
def auth():
    return auth_header
