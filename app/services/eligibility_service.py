"""
Eligibility Service

PURPOSE:
Decide which students may apply to which drives, and keep the
denormalized "eligible drives" set of every student in step with
that decision.

HOW IT WORKS:
1. is_eligible() is a pure predicate over a student's attributes and
   a drive's criteria (branch, CGPA, backlogs, semesters)
2. compute_eligible_drive_ids() applies it to every drive
3. EligibilityService persists the result in student_eligible_drives:
   - a new drive is unioned into every eligible student's set
   - a changed profile recomputes the student's whole set and writes
     only when it differs from what is stored

The stored set is a materialized view, never the source of truth:
the predicate is.

CONCURRENCY:
Every writer of the set runs its whole transaction inside
eligibility_writes(). Across processes the student rows a writer reads
are locked FOR UPDATE, so a profile refresh and a new drive's scan
always see each other's committed result.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Set

from loguru import logger
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from app.db.tables import students
from app.models.domain import EligibilityCriteria, StudentAttributes, normalize_branch

ATTRIBUTE_COLUMNS = (
    students.c.branch, students.c.cgpa, students.c.number_of_backlogs, students.c.semesters_completed
)


# ============================================================
# PURE EVALUATION
# ============================================================

def is_eligible(student: StudentAttributes, criteria: EligibilityCriteria) -> bool:
    """
    Static criteria match between a student and a drive.

    Missing numeric fields count as 0 on both sides, so an incomplete
    profile can pass the numeric checks. CGPA and semesters are
    inclusive lower bounds, backlogs an inclusive upper bound.
    """
    branch = normalize_branch(student.branch)
    if not branch or branch not in criteria.eligible_branches:
        return False

    if (student.cgpa or 0) < (criteria.min_cgpa or 0):
        return False
    if (student.number_of_backlogs or 0) > (criteria.max_backlogs or 0):
        return False
    if (student.semesters_completed or 0) < (criteria.min_semesters_completed or 0):
        return False

    return True


def compute_eligible_drive_ids(
    student: StudentAttributes,
    drives: Iterable[EligibilityCriteria]
) -> Set[int]:
    """The full eligible-drives set for one student."""
    return {d.drive_id for d in drives if d.drive_id is not None and is_eligible(student, d)}


# ============================================================
# PERSISTENCE
# ============================================================

_write_lock = threading.Lock()


@contextmanager
def eligibility_writes():
    """
    Serialize writers of student_eligible_drives within this process.

    Wrap the whole session, not just the write, so one writer has
    committed before the next reads criteria or stored sets:

        with eligibility_writes(), get_db_session() as db:
            service.refresh_student(db, student_id)
    """
    with _write_lock:
        yield


class EligibilityService:
    """
    Maintains student_eligible_drives.

    All methods take the caller's session so the writes commit (or roll
    back) together with the operation that triggered them.
    """

    def load_criteria(self, db: Session, drive_id: Optional[int] = None) -> List[EligibilityCriteria]:
        """Criteria of one drive, or of every drive when drive_id is None."""
        sql = """
            SELECT d.drive_id, d.min_cgpa, d.max_backlogs, d.min_semesters_completed, b.branch
            FROM drives d LEFT JOIN drive_branches b ON b.drive_id = d.drive_id
        """
        params = {}
        if drive_id is not None:
            sql += " WHERE d.drive_id = :drive_id"
            params["drive_id"] = drive_id

        rows = db.execute(text(sql), params).mappings().all()

        grouped: Dict[int, dict] = {}
        for r in rows:
            entry = grouped.setdefault(r["drive_id"], {
                "min_cgpa": r["min_cgpa"],
                "max_backlogs": r["max_backlogs"],
                "min_semesters_completed": r["min_semesters_completed"],
                "branches": [],
            })
            if r["branch"]:
                entry["branches"].append(r["branch"])

        return [
            EligibilityCriteria.build(
                eligible_branches=e["branches"],
                min_cgpa=e["min_cgpa"],
                max_backlogs=e["max_backlogs"],
                min_semesters_completed=e["min_semesters_completed"],
                drive_id=did,
            )
            for did, e in grouped.items()
        ]

    def load_student(self, db: Session, student_id: int, lock: bool = False) -> Optional[StudentAttributes]:
        stmt = select(*ATTRIBUTE_COLUMNS).where(students.c.student_id == student_id)
        if lock:
            stmt = stmt.with_for_update()
        row = db.execute(stmt).mappings().first()
        return StudentAttributes.from_row(dict(row)) if row else None

    def get_eligible_drive_ids(self, db: Session, student_id: int) -> Set[int]:
        rows = db.execute(
            text("SELECT drive_id FROM student_eligible_drives WHERE student_id = :id"),
            {"id": student_id}
        ).fetchall()
        return {r[0] for r in rows}

    def populate_for_drive(self, db: Session, drive_id: int) -> List[int]:
        """
        Union a newly created drive into every eligible student's set.

        Returns:
            Student IDs for which the drive was newly added
        """
        criteria = self.load_criteria(db, drive_id)
        if not criteria:
            return []
        drive = criteria[0]

        # Ordered so concurrent scans take row locks in the same order
        rows = db.execute(
            select(students.c.student_id, *ATTRIBUTE_COLUMNS)
            .order_by(students.c.student_id)
            .with_for_update()
        ).mappings().all()

        already = {
            r[0] for r in db.execute(
                text("SELECT student_id FROM student_eligible_drives WHERE drive_id = :did"),
                {"did": drive_id}
            ).fetchall()
        }

        newly_eligible = [
            s["student_id"] for s in rows
            if s["student_id"] not in already and is_eligible(StudentAttributes.from_row(dict(s)), drive)
        ]

        if newly_eligible:
            db.execute(
                text("INSERT INTO student_eligible_drives (student_id, drive_id) VALUES (:sid, :did)"),
                [{"sid": sid, "did": drive_id} for sid in newly_eligible]
            )

        logger.info(f"Drive {drive_id}: {len(newly_eligible)} students newly eligible")
        return newly_eligible

    def refresh_student(self, db: Session, student_id: int) -> bool:
        """
        Recompute a student's eligible drives against all drives.

        Writes only when the computed set differs from the stored one.

        Returns:
            True if the stored set was replaced
        """
        student = self.load_student(db, student_id, lock=True)
        if student is None:
            return False

        computed = compute_eligible_drive_ids(student, self.load_criteria(db))
        stored = self.get_eligible_drive_ids(db, student_id)
        if computed == stored:
            return False

        db.execute(
            text("DELETE FROM student_eligible_drives WHERE student_id = :sid"),
            {"sid": student_id}
        )
        if computed:
            db.execute(
                text("INSERT INTO student_eligible_drives (student_id, drive_id) VALUES (:sid, :did)"),
                [{"sid": student_id, "did": did} for did in sorted(computed)]
            )

        logger.info(
            f"Student {student_id}: eligible drives {sorted(stored)} -> {sorted(computed)}"
        )
        return True

    def ensure_listed(self, db: Session, student_id: int, drive_id: int) -> None:
        """Add a single (student, drive) pair if it is missing."""
        db.execute(
            text("""
                INSERT INTO student_eligible_drives (student_id, drive_id)
                VALUES (:sid, :did)
                ON CONFLICT DO NOTHING
            """),
            {"sid": student_id, "did": drive_id}
        )
