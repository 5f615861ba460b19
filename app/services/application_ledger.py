"""
Application Ledger

One application per (drive, student), created by Apply and moved
through Applied / Interview / Selected / Rejected afterwards, either by
the phase pipeline or by a coordinator override.

Uniqueness is guaranteed by the uq_applications_drive_student
constraint; the pre-check in apply() only gives the common case a clean
error without touching the constraint.
"""

from typing import List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from app.core.config import get_settings
from app.core.exceptions import (
    AlreadyApplied, ApplicationNotFound, DriveCompleted, NotEligible,
    StudentNotFound, ValidationException
)
from app.db.postgres import get_db_session
from app.models.domain import ApplicationStatus, DriveStatus, EligibilityCriteria, NotificationSeverity
from app.services.drive_locks import bump_drive_version, drive_lock, share_drive_row
from app.services.drive_queries import fetch_application, fetch_applications, fetch_drive
from app.services.eligibility_service import EligibilityService, is_eligible
from app.services.notification_service import NotificationDispatcher, get_dispatcher


class ApplicationLedger:

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        eligibility: Optional[EligibilityService] = None
    ):
        self.dispatcher = dispatcher or get_dispatcher()
        self.eligibility = eligibility or EligibilityService()
        self.settings = get_settings()

    def apply(self, drive_id: int, student_id: int) -> dict:
        """
        Record a student's application to a drive.

        Raises:
            DriveNotFound, DriveCompleted, StudentNotFound, NotEligible, AlreadyApplied
        """
        with drive_lock(drive_id):
            with get_db_session() as db:
                share_drive_row(db, drive_id)
                drive = fetch_drive(db, drive_id)
                if drive["status"] == DriveStatus.completed.value:
                    raise DriveCompleted(drive_id)

                student = self.eligibility.load_student(db, student_id)
                if student is None:
                    raise StudentNotFound(student_id)

                criteria = EligibilityCriteria.build(
                    eligible_branches=drive["eligible_branches"],
                    min_cgpa=drive["min_cgpa"],
                    max_backlogs=drive["max_backlogs"],
                    min_semesters_completed=drive["min_semesters_completed"],
                    drive_id=drive_id,
                )
                if not is_eligible(student, criteria):
                    raise NotEligible(drive_id)

                if fetch_application(db, drive_id, student_id) is not None:
                    raise AlreadyApplied(drive_id, student_id)

                try:
                    row = db.execute(
                        text("""
                            INSERT INTO applications (drive_id, student_id, status)
                            VALUES (:did, :sid, :status)
                            RETURNING application_id, drive_id, student_id, status, applied_at, updated_at
                        """),
                        {"did": drive_id, "sid": student_id, "status": ApplicationStatus.applied.value}
                    ).mappings().one()
                except IntegrityError as e:
                    raise AlreadyApplied(drive_id, student_id) from e

                self.eligibility.ensure_listed(db, student_id, drive_id)
                application = dict(row)

        logger.info(f"Student {student_id} applied to drive {drive_id}")
        self.dispatcher.notify(
            [student_id],
            f"Application successful for {drive['company_name']} - {drive['role']}",
            NotificationSeverity.success,
            self.settings.notification_link,
            drive_id
        )
        return application

    def update_status(self, drive_id: int, student_id: int, new_status: str) -> dict:
        """
        Coordinator override of one application's status.

        Independent of phase shortlists, so it can leave status and
        shortlist membership out of step.
        """
        try:
            status = ApplicationStatus(new_status)
        except ValueError:
            raise ValidationException(
                f"Invalid status '{new_status}'. Allowed: "
                + ", ".join(s.value for s in ApplicationStatus)
            )

        with drive_lock(drive_id):
            with get_db_session() as db:
                drive = fetch_drive(db, drive_id)
                if fetch_application(db, drive_id, student_id) is None:
                    raise ApplicationNotFound(drive_id, student_id)

                db.execute(
                    text("""
                        UPDATE applications SET status = :status, updated_at = CURRENT_TIMESTAMP
                        WHERE drive_id = :did AND student_id = :sid
                    """),
                    {"status": status.value, "did": drive_id, "sid": student_id}
                )
                bump_drive_version(db, drive_id, drive["version"])
                application = fetch_application(db, drive_id, student_id)

        logger.info(f"Drive {drive_id}: student {student_id} status set to {status.value} by coordinator")
        severity = NotificationSeverity.success if status == ApplicationStatus.selected else NotificationSeverity.info
        self.dispatcher.notify(
            [student_id],
            f'Application status updated to "{status.value}" for {drive["company_name"]} - {drive["role"]}',
            severity,
            self.settings.notification_link,
            drive_id
        )
        return application

    def list_applications(self, drive_id: int) -> List[dict]:
        """Read-only projection of a drive's applications."""
        with get_db_session() as db:
            fetch_drive(db, drive_id)
            return fetch_applications(db, drive_id)


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def get_application_ledger() -> ApplicationLedger:
    """Get application ledger instance."""
    return ApplicationLedger()
