"""
Student Service

PURPOSE:
Onboard students (single add or spreadsheet import by a branch advisor)
and let students maintain the profile fields eligibility depends on.

Any change to branch, CGPA, backlogs or semesters recomputes the
student's eligible drives in the same transaction.

Import is per-row: one bad row is reported and skipped, the rest are
stored.
"""

from typing import List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationException, ConflictException, DomainException, StudentNotFound,
    ValidationException
)
from app.db.postgres import get_db_session
from app.models.domain import UserRole, normalize_branch
from app.services.drive_queries import STUDENT_DISPLAY_COLUMNS
from app.services.eligibility_service import EligibilityService, eligibility_writes


ELIGIBILITY_FIELDS = ("branch", "cgpa", "number_of_backlogs", "semesters_completed")
UPDATABLE_FIELDS = ELIGIBILITY_FIELDS + ("phone",)
REQUIRED_FIELDS = ("full_name", "email", "batch", "registration_number", "branch")


def coerce_attributes(values: dict) -> dict:
    """Convert spreadsheet or form values to the stored types."""
    result = dict(values)
    converters = {"cgpa": float, "batch": int, "number_of_backlogs": int, "semesters_completed": int}
    for name, convert in converters.items():
        value = result.get(name)
        if value is None or value == "":
            result[name] = None
            continue
        try:
            result[name] = convert(float(value)) if convert is int else convert(value)
        except (TypeError, ValueError):
            raise ValidationException(f"{name} must be a number, got '{value}'")
    for name in ("registration_number", "phone"):
        if result.get(name) is not None and not isinstance(result[name], str):
            value = result[name]
            result[name] = str(int(value)) if isinstance(value, float) and value.is_integer() else str(value)
    return result


def validate_attributes(values: dict) -> None:
    """Range checks shared by add, import and profile update."""
    cgpa = values.get("cgpa")
    if cgpa is not None and not 0 <= cgpa <= 10:
        raise ValidationException("CGPA must be between 0 and 10")
    for name in ("number_of_backlogs", "semesters_completed"):
        value = values.get(name)
        if value is not None and value < 0:
            raise ValidationException(f"{name} cannot be negative")


class StudentService:

    def __init__(self, eligibility: Optional[EligibilityService] = None):
        self.eligibility = eligibility or EligibilityService()

    # ============================================================
    # ONBOARDING
    # ============================================================

    def add_student(self, data: dict, advisor: dict) -> dict:
        """
        Register one student under the advisor's branch.

        Raises:
            ValidationException: missing field or out-of-range value
            AuthorizationException: branch differs from the advisor's
            ConflictException: email or registration number already used
        """
        data = {k: (v.strip() if isinstance(v, str) else v) for k, v in data.items()}
        data = coerce_attributes(data)

        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationException(f"Missing required fields: {', '.join(missing)}")
        validate_attributes(data)

        if normalize_branch(data["branch"]) != normalize_branch(advisor.get("branch")):
            raise AuthorizationException(
                f"Advisors can only add students of their own branch ({advisor.get('branch')})"
            )

        email = data["email"].lower()

        with eligibility_writes(), get_db_session() as db:
            self._check_unique(db, email, data["registration_number"])
            try:
                user_id = db.execute(
                    text("""
                        INSERT INTO users (email, full_name, role, is_active)
                        VALUES (:email, :name, :role, :active)
                        RETURNING user_id
                    """),
                    {"email": email, "name": data["full_name"], "role": UserRole.student.value, "active": True}
                ).scalar_one()

                student_id = db.execute(
                    text("""
                        INSERT INTO students (user_id, registration_number, batch, branch, cgpa,
                                              number_of_backlogs, semesters_completed, phone)
                        VALUES (:uid, :reg, :batch, :branch, :cgpa, :backlogs, :semesters, :phone)
                        RETURNING student_id
                    """),
                    {
                        "uid": user_id,
                        "reg": data["registration_number"],
                        "batch": data["batch"],
                        "branch": data["branch"],
                        "cgpa": data.get("cgpa"),
                        "backlogs": data.get("number_of_backlogs") or 0,
                        "semesters": data.get("semesters_completed") or 0,
                        "phone": data.get("phone"),
                    }
                ).scalar_one()
            except IntegrityError as e:
                raise ConflictException("A student with this email or registration number already exists") from e

            self.eligibility.refresh_student(db, student_id)
            profile = self._load_profile(db, student_id)

        logger.info(f"Advisor {advisor.get('user_id')} added student {student_id} ({email})")
        return profile

    def import_students(self, rows: List[dict], advisor: dict) -> dict:
        """
        Add every row independently.

        Returns:
            {"successful": [profiles], "errors": [{"row", "email", "error"}]}
        """
        successful, errors = [], []
        for row in rows:
            row_number = row.get("row_number")
            data = {k: v for k, v in row.items() if k != "row_number"}
            try:
                successful.append(self.add_student(data, advisor))
            except DomainException as e:
                errors.append({"row": row_number, "email": data.get("email"), "error": str(e)})

        logger.info(f"Student import: {len(successful)} added, {len(errors)} rejected")
        return {"successful": successful, "errors": errors}

    # ============================================================
    # PROFILE
    # ============================================================

    def get_profile(self, student_id: int) -> dict:
        with get_db_session() as db:
            return self._load_profile(db, student_id)

    def get_by_email(self, email: str) -> dict:
        with get_db_session() as db:
            row = db.execute(
                text("""
                    SELECT s.student_id FROM students s JOIN users u ON s.user_id = u.user_id
                    WHERE LOWER(u.email) = :email
                """),
                {"email": (email or "").strip().lower()}
            ).first()
            if not row:
                raise StudentNotFound(email)
            return self._load_profile(db, row[0])

    def update_profile(self, student_id: int, changes: dict) -> dict:
        """
        Apply profile changes; recompute eligible drives when an
        eligibility attribute actually changed.
        """
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "branch" in changes:
            changes["branch"] = changes["branch"].strip()
            if not changes["branch"]:
                raise ValidationException("Branch cannot be empty")
        validate_attributes(changes)

        with eligibility_writes(), get_db_session() as db:
            current = self._load_profile(db, student_id)
            changed = {k: v for k, v in changes.items() if current.get(k) != v}

            if changed:
                set_clause = ", ".join(f"{k} = :{k}" for k in changed)
                db.execute(
                    text(f"UPDATE students SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE student_id = :sid"),
                    {**changed, "sid": student_id}
                )

            if any(k in ELIGIBILITY_FIELDS for k in changed):
                self.eligibility.refresh_student(db, student_id)

            profile = self._load_profile(db, student_id)

        if changed:
            logger.info(f"Student {student_id} updated {sorted(changed)}")
        return profile

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _check_unique(db: Session, email: str, registration_number: str) -> None:
        if db.execute(text("SELECT 1 FROM users WHERE LOWER(email) = :e"), {"e": email}).first():
            raise ConflictException(f"Email already registered: {email}")
        if db.execute(
            text("SELECT 1 FROM students WHERE registration_number = :r"), {"r": registration_number}
        ).first():
            raise ConflictException(f"Registration number already registered: {registration_number}")

    def _load_profile(self, db: Session, student_id: int) -> dict:
        row = db.execute(
            text(f"""
                SELECT {STUDENT_DISPLAY_COLUMNS}, s.batch, s.phone, u.user_id
                FROM students s JOIN users u ON s.user_id = u.user_id
                WHERE s.student_id = :id
            """),
            {"id": student_id}
        ).mappings().first()
        if not row:
            raise StudentNotFound(student_id)

        profile = dict(row)
        profile["eligible_drive_ids"] = sorted(self.eligibility.get_eligible_drive_ids(db, student_id))
        return profile


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def get_student_service() -> StudentService:
    """Get student service instance."""
    return StudentService()
