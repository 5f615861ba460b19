"""Apply, status override and the applications projection."""

import threading

import pytest
from sqlalchemy import text

from app.core.exceptions import (
    AlreadyApplied, ApplicationNotFound, DriveCompleted, DriveNotFound, NotEligible,
    StudentNotFound, ValidationException
)
from app.db.postgres import get_db_session
from app.services import application_ledger
from app.services.application_ledger import ApplicationLedger
from app.services.eligibility_service import EligibilityService
from app.services.notification_service import NotificationDispatcher
from app.services.phase_pipeline import PhasePipeline

from tests.conftest import FailingSink


def drive_version(drive_id):
    with get_db_session() as db:
        return db.execute(text("SELECT version FROM drives WHERE drive_id = :d"), {"d": drive_id}).scalar_one()


def count_applications(drive_id):
    with get_db_session() as db:
        return db.execute(
            text("SELECT COUNT(*) FROM applications WHERE drive_id = :d"), {"d": drive_id}
        ).scalar_one()


class TestApply:

    def test_apply_records_applied_status(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()

        application = ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], sid)

        assert application["status"] == "Applied"
        assert application["student_id"] == sid
        assert application["applied_at"] is not None
        assert drive_version(drive["drive_id"]) == 0

    def test_second_apply_is_rejected_and_nothing_changes(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()
        ledger = ApplicationLedger(dispatcher=dispatcher)
        ledger.apply(drive["drive_id"], sid)

        with pytest.raises(AlreadyApplied):
            ledger.apply(drive["drive_id"], sid)

        assert count_applications(drive["drive_id"]) == 1
        assert drive_version(drive["drive_id"]) == 0

    def test_ineligible_student(self, seed, dispatcher):
        _, sid = seed.student(cgpa=7.4)
        drive = seed.drive(min_cgpa=7.5)

        with pytest.raises(NotEligible):
            ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], sid)
        assert count_applications(drive["drive_id"]) == 0

    def test_unknown_drive_and_student(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()
        ledger = ApplicationLedger(dispatcher=dispatcher)

        with pytest.raises(DriveNotFound):
            ledger.apply(999, sid)
        with pytest.raises(StudentNotFound):
            ledger.apply(drive["drive_id"], 999)

    def test_completed_drive_refuses_applications(self, seed, dispatcher):
        _, first = seed.student(email="first@college.edu")
        _, late = seed.student()
        drive = seed.drive()
        ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], first)
        PhasePipeline(dispatcher=dispatcher).end_drive(drive["drive_id"], ["first@college.edu"])

        with pytest.raises(DriveCompleted):
            ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], late)

    def test_apply_keeps_drive_in_eligible_set(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()
        with get_db_session() as db:
            db.execute(text("DELETE FROM student_eligible_drives WHERE student_id = :s"), {"s": sid})

        ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], sid)

        with get_db_session() as db:
            assert drive["drive_id"] in EligibilityService().get_eligible_drive_ids(db, sid)

    def test_apply_notifies_student(self, seed, dispatcher, sink):
        _, sid = seed.student()
        drive = seed.drive(company_name="Initech", role="QA")

        ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], sid)
        dispatcher.flush()

        assert "Application successful for Initech - QA" in sink.messages_for(sid)

    def test_notification_failure_does_not_fail_apply(self, seed):
        _, sid = seed.student()
        drive = seed.drive()
        failing = FailingSink()
        dispatcher = NotificationDispatcher([failing])

        application = ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], sid)
        dispatcher.flush()
        dispatcher.stop()

        assert application["status"] == "Applied"
        assert failing.calls == 1
        assert count_applications(drive["drive_id"]) == 1


class TestConcurrentApply:

    def test_same_student_racing_gets_exactly_one_application(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()
        ledger = ApplicationLedger(dispatcher=dispatcher)

        barrier = threading.Barrier(4)
        outcomes = []
        outcomes_lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                ledger.apply(drive["drive_id"], sid)
                result = "ok"
            except AlreadyApplied:
                result = "duplicate"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["duplicate", "duplicate", "duplicate", "ok"]
        assert count_applications(drive["drive_id"]) == 1

    def test_different_students_all_succeed(self, seed, dispatcher):
        students = [seed.student()[1] for _ in range(5)]
        drive = seed.drive()
        ledger = ApplicationLedger(dispatcher=dispatcher)
        barrier = threading.Barrier(len(students))
        errors = []

        def attempt(student_id):
            barrier.wait()
            try:
                ledger.apply(drive["drive_id"], student_id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=attempt, args=(s,)) for s in students]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert count_applications(drive["drive_id"]) == 5
        assert drive_version(drive["drive_id"]) == 0

    def test_apply_ignores_drive_version(self, seed, dispatcher, monkeypatch):
        """Another worker moved the version on since this one read the drive."""
        _, sid = seed.student()
        drive = seed.drive()
        real_fetch = application_ledger.fetch_drive

        def stale_fetch(db, drive_id):
            row = real_fetch(db, drive_id)
            row["version"] -= 1
            return row

        monkeypatch.setattr(application_ledger, "fetch_drive", stale_fetch)
        ApplicationLedger(dispatcher=dispatcher).apply(drive["drive_id"], sid)

        assert count_applications(drive["drive_id"]) == 1


class TestUpdateStatus:

    def test_override_status(self, seed, dispatcher, sink):
        _, sid = seed.student()
        drive = seed.drive()
        ledger = ApplicationLedger(dispatcher=dispatcher)
        ledger.apply(drive["drive_id"], sid)

        updated = ledger.update_status(drive["drive_id"], sid, "Interview")
        dispatcher.flush()

        assert updated["status"] == "Interview"
        assert any('updated to "Interview"' in m for m in sink.messages_for(sid))

    def test_invalid_status(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()
        ledger = ApplicationLedger(dispatcher=dispatcher)
        ledger.apply(drive["drive_id"], sid)

        with pytest.raises(ValidationException):
            ledger.update_status(drive["drive_id"], sid, "Hired")

    def test_no_application(self, seed, dispatcher):
        _, sid = seed.student()
        drive = seed.drive()

        with pytest.raises(ApplicationNotFound):
            ApplicationLedger(dispatcher=dispatcher).update_status(drive["drive_id"], sid, "Selected")


def test_list_applications_includes_student_details(seed, dispatcher):
    _, sid = seed.student(email="asha@college.edu", name="Asha Rao")
    drive = seed.drive()
    ledger = ApplicationLedger(dispatcher=dispatcher)
    ledger.apply(drive["drive_id"], sid)

    rows = ledger.list_applications(drive["drive_id"])

    assert len(rows) == 1
    assert rows[0]["full_name"] == "Asha Rao"
    assert rows[0]["email"] == "asha@college.edu"
    assert rows[0]["status"] == "Applied"
    assert rows[0]["registration_number"].startswith("REG")
