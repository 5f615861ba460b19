"""
Drive Registry

PURPOSE:
Create placement drives and serve the read views built on them.

HOW IT WORKS:
1. create_drive() validates the criteria, inserts the drive and its
   branches, then unions the drive into every eligible student's
   eligible-drives set in the same transaction
2. Newly eligible students get a "new drive" notification after commit
3. get_drive() / list_drives() / list_public_drives() / student_drives()
   are read-only projections; what a caller sees depends on their role
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ValidationException
from app.db.postgres import get_db_session
from app.models.domain import DriveStatus, NotificationSeverity, PhaseStatus, UserRole
from app.services.drive_queries import (
    DRIVE_COLUMNS, fetch_applications, fetch_application, fetch_drive, fetch_phases,
    fetch_students_display
)
from app.services.eligibility_service import EligibilityService, eligibility_writes
from app.services.notification_service import NotificationDispatcher, get_dispatcher


def utc_naive(value: datetime) -> datetime:
    """Drive dates are stored as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def clean_branches(branches: Iterable[str]) -> List[str]:
    """Trim, drop blanks, dedupe case-insensitively (first spelling wins)."""
    seen = set()
    result = []
    for b in branches or []:
        b = (b or "").strip()
        if b and b.lower() not in seen:
            seen.add(b.lower())
            result.append(b)
    return result


def phase_summary(phase: Optional[dict]) -> Optional[dict]:
    if phase is None:
        return None
    return {
        "name": phase["name"],
        "created_at": phase["created_at"],
        "requirements": phase["requirements"],
        "instructions": phase["instructions"],
    }


def student_phase_status(phases: List[dict], student_id: int) -> Optional[PhaseStatus]:
    """Standing in the current (last) phase; None before any phase exists."""
    if not phases:
        return None
    if student_id in phases[-1]["shortlisted_student_ids"]:
        return PhaseStatus.shortlisted
    return PhaseStatus.rejected


class DriveRegistry:

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        eligibility: Optional[EligibilityService] = None
    ):
        self.dispatcher = dispatcher or get_dispatcher()
        self.eligibility = eligibility or EligibilityService()
        self.settings = get_settings()

    # ============================================================
    # CREATE
    # ============================================================

    def create_drive(self, data: dict, created_by: Optional[int] = None) -> dict:
        """
        Create a drive and compute its eligible population.

        Args:
            data: company_name, role, description, drive_date,
                  eligible_branches, min_cgpa, max_backlogs,
                  min_semesters_completed

        Returns:
            The stored drive plus eligible_students_count
        """
        company = (data.get("company_name") or "").strip()
        role = (data.get("role") or "").strip()
        drive_date = data.get("drive_date")
        branches = clean_branches(data.get("eligible_branches") or [])

        if not company or not role or drive_date is None:
            raise ValidationException("Company name, role and drive date are required")
        if not branches:
            raise ValidationException("At least one eligible branch is required")

        min_cgpa = data.get("min_cgpa") or 0
        max_backlogs = data.get("max_backlogs") or 0
        min_semesters = data.get("min_semesters_completed") or 0
        if min_cgpa < 0 or max_backlogs < 0 or min_semesters < 0:
            raise ValidationException("Eligibility criteria cannot be negative")

        with eligibility_writes(), get_db_session() as db:
            drive_id = db.execute(
                text("""
                    INSERT INTO drives (company_name, role, description, drive_date, min_cgpa,
                                        max_backlogs, min_semesters_completed, status, version, created_by)
                    VALUES (:company, :role, :description, :drive_date, :min_cgpa,
                            :max_backlogs, :min_semesters, :status, 0, :created_by)
                    RETURNING drive_id
                """),
                {
                    "company": company,
                    "role": role,
                    "description": data.get("description") or "",
                    "drive_date": utc_naive(drive_date),
                    "min_cgpa": min_cgpa,
                    "max_backlogs": max_backlogs,
                    "min_semesters": min_semesters,
                    "status": DriveStatus.open.value,
                    "created_by": created_by,
                }
            ).scalar_one()

            db.execute(
                text("INSERT INTO drive_branches (drive_id, branch) VALUES (:did, :branch)"),
                [{"did": drive_id, "branch": b} for b in branches]
            )

            newly_eligible = self.eligibility.populate_for_drive(db, drive_id)
            drive = fetch_drive(db, drive_id)

        logger.info(f"Created drive {drive_id}: {company} - {role} ({len(newly_eligible)} eligible)")
        self.dispatcher.notify(
            newly_eligible,
            f"New placement drive: {company} - {role}",
            NotificationSeverity.info,
            self.settings.notification_link,
            drive_id
        )

        drive["eligible_students_count"] = len(newly_eligible)
        return drive

    # ============================================================
    # READ
    # ============================================================

    def get_drive(self, drive_id: int, caller: Optional[dict] = None) -> dict:
        """
        Drive detail.

        Students see their own application status and standing in the
        current phase. Coordinators also get every application and the
        current shortlist.
        """
        caller = caller or {}
        with get_db_session() as db:
            drive = fetch_drive(db, drive_id)
            phases = fetch_phases(db, drive_id)

            drive["phases"] = [self._phase_view(p) for p in phases]
            drive["current_phase"] = phase_summary(phases[-1] if phases else None)

            if caller.get("role") == UserRole.student.value and caller.get("student_id"):
                student_id = caller["student_id"]
                application = fetch_application(db, drive_id, student_id)
                drive["application_status"] = application["status"] if application else None
                drive["student_phase_status"] = student_phase_status(phases, student_id)

            elif caller.get("role") == UserRole.coordinator.value:
                drive["applications"] = fetch_applications(db, drive_id)
                current_ids = sorted(phases[-1]["shortlisted_student_ids"]) if phases else []
                drive["shortlisted_students"] = fetch_students_display(db, current_ids)

        return drive

    def list_drives(self, year: Optional[int] = None) -> List[dict]:
        """All drives newest first, optionally limited to one calendar year."""
        sql = f"""
            SELECT {DRIVE_COLUMNS},
                   (SELECT COUNT(*) FROM applications a WHERE a.drive_id = d.drive_id) AS applicant_count
            FROM drives d
        """
        params = {}
        if year is not None:
            sql += " WHERE d.drive_date >= :start AND d.drive_date < :end"
            params = {"start": datetime(year, 1, 1), "end": datetime(year + 1, 1, 1)}
        sql += " ORDER BY d.drive_date DESC, d.drive_id DESC"

        with get_db_session() as db:
            rows = [dict(r) for r in db.execute(text(sql), params).mappings().all()]
            return self._attach_branches(db, rows)

    def list_public_drives(self) -> List[dict]:
        """
        Drives that have not happened yet, soonest first.

        display_status is "Upcoming" while the drive is Open and its date is
        ahead, otherwise "Ongoing".
        """
        now = datetime.utcnow()
        with get_db_session() as db:
            rows = db.execute(
                text(f"""
                    SELECT {DRIVE_COLUMNS},
                           CASE WHEN d.status = :open AND d.drive_date > :now
                                THEN 'Upcoming' ELSE 'Ongoing' END AS display_status
                    FROM drives d
                    WHERE d.status IN (:open, :in_progress) AND d.drive_date >= :now
                    ORDER BY d.drive_date ASC, d.drive_id ASC
                """),
                {
                    "open": DriveStatus.open.value,
                    "in_progress": DriveStatus.in_progress.value,
                    "now": now,
                }
            ).mappings().all()
            return self._attach_branches(db, [dict(r) for r in rows])

    def student_drives(self, student_id: int) -> List[dict]:
        """The student's eligible drives with their own progress in each."""
        with get_db_session() as db:
            rows = db.execute(
                text(f"""
                    SELECT {DRIVE_COLUMNS}, a.status AS application_status
                    FROM student_eligible_drives sed
                    JOIN drives d ON d.drive_id = sed.drive_id
                    LEFT JOIN applications a
                           ON a.drive_id = d.drive_id AND a.student_id = sed.student_id
                    WHERE sed.student_id = :sid
                    ORDER BY d.drive_date DESC, d.drive_id DESC
                """),
                {"sid": student_id}
            ).mappings().all()

            drives = self._attach_branches(db, [dict(r) for r in rows])
            for drive in drives:
                phases = fetch_phases(db, drive["drive_id"])
                drive["application_status"] = drive["application_status"] or "Not Applied"
                drive["current_phase"] = phase_summary(phases[-1] if phases else None)
                drive["student_phase_status"] = student_phase_status(phases, student_id)
            return drives

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _phase_view(phase: dict) -> dict:
        view = {k: v for k, v in phase.items() if k != "shortlisted_student_ids"}
        view["shortlisted_count"] = len(phase["shortlisted_student_ids"])
        return view

    @staticmethod
    def _attach_branches(db: Session, drives: List[dict]) -> List[dict]:
        if not drives:
            return drives
        rows = db.execute(text("SELECT drive_id, branch FROM drive_branches ORDER BY branch")).fetchall()
        by_drive = {}
        for drive_id, branch in rows:
            by_drive.setdefault(drive_id, []).append(branch)
        for drive in drives:
            drive["eligible_branches"] = by_drive.get(drive["drive_id"], [])
        return drives


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def get_drive_registry() -> DriveRegistry:
    """Get drive registry instance."""
    return DriveRegistry()
