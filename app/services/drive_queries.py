"""
SQL helpers shared by the drive services.

Every function takes the caller's session; none of them commit.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import bindparam, text
from sqlalchemy.orm import Session

from app.core.exceptions import DriveNotFound


DRIVE_COLUMNS = """
    d.drive_id, d.company_name, d.role, d.description, d.drive_date,
    d.min_cgpa, d.max_backlogs, d.min_semesters_completed, d.status,
    d.version, d.created_by, d.created_at, d.updated_at
"""

STUDENT_DISPLAY_COLUMNS = """
    s.student_id, u.full_name, u.email, s.registration_number, s.branch,
    s.cgpa, s.number_of_backlogs, s.semesters_completed
"""


def fetch_drive(db: Session, drive_id: int) -> dict:
    """Drive row plus its eligible branches. Raises DriveNotFound."""
    row = db.execute(
        text(f"SELECT {DRIVE_COLUMNS} FROM drives d WHERE d.drive_id = :id"),
        {"id": drive_id}
    ).mappings().first()
    if not row:
        raise DriveNotFound(drive_id)

    drive = dict(row)
    drive["eligible_branches"] = fetch_branches(db, drive_id)
    return drive


def fetch_branches(db: Session, drive_id: int) -> List[str]:
    rows = db.execute(
        text("SELECT branch FROM drive_branches WHERE drive_id = :id ORDER BY branch"),
        {"id": drive_id}
    ).fetchall()
    return [r[0] for r in rows]


def fetch_applicant_ids(db: Session, drive_id: int) -> Set[int]:
    rows = db.execute(
        text("SELECT student_id FROM applications WHERE drive_id = :id"),
        {"id": drive_id}
    ).fetchall()
    return {r[0] for r in rows}


def fetch_applications(db: Session, drive_id: int) -> List[dict]:
    """Applications with the student's display fields attached."""
    rows = db.execute(
        text(f"""
            SELECT a.application_id, a.drive_id, a.status, a.applied_at, a.updated_at,
                   {STUDENT_DISPLAY_COLUMNS}
            FROM applications a
            JOIN students s ON a.student_id = s.student_id
            JOIN users u ON s.user_id = u.user_id
            WHERE a.drive_id = :id
            ORDER BY a.applied_at, a.application_id
        """),
        {"id": drive_id}
    ).mappings().all()
    return [dict(r) for r in rows]


def fetch_application(db: Session, drive_id: int, student_id: int) -> Optional[dict]:
    row = db.execute(
        text("""
            SELECT application_id, drive_id, student_id, status, applied_at, updated_at
            FROM applications WHERE drive_id = :did AND student_id = :sid
        """),
        {"did": drive_id, "sid": student_id}
    ).mappings().first()
    return dict(row) if row else None


def fetch_phases(db: Session, drive_id: int) -> List[dict]:
    """Phases in pipeline order, each with its shortlist ids."""
    rows = db.execute(
        text("""
            SELECT phase_id, drive_id, position, name, requirements, instructions,
                   created_at, updated_at
            FROM phases WHERE drive_id = :id ORDER BY position
        """),
        {"id": drive_id}
    ).mappings().all()

    phases = [dict(r) for r in rows]
    if not phases:
        return phases

    members = db.execute(
        text("""
            SELECT ps.phase_id, ps.student_id
            FROM phase_shortlists ps JOIN phases p ON ps.phase_id = p.phase_id
            WHERE p.drive_id = :id
        """),
        {"id": drive_id}
    ).fetchall()

    by_phase: Dict[int, Set[int]] = {}
    for phase_id, student_id in members:
        by_phase.setdefault(phase_id, set()).add(student_id)

    for phase in phases:
        phase["shortlisted_student_ids"] = by_phase.get(phase["phase_id"], set())
    return phases


def fetch_students_display(db: Session, student_ids: Sequence[int]) -> List[dict]:
    if not student_ids:
        return []
    stmt = text(f"""
        SELECT {STUDENT_DISPLAY_COLUMNS}
        FROM students s JOIN users u ON s.user_id = u.user_id
        WHERE s.student_id IN :ids
        ORDER BY u.full_name
    """).bindparams(bindparam("ids", expanding=True))
    return [dict(r) for r in db.execute(stmt, {"ids": list(student_ids)}).mappings().all()]


def normalize_emails(emails: Optional[Sequence[str]]) -> List[str]:
    """Trim and lowercase, dropping blanks and repeats; input order kept."""
    normalized = []
    for e in emails or ():
        e = (e or "").strip().lower()
        if e and e not in normalized:
            normalized.append(e)
    return normalized


def resolve_student_emails(db: Session, emails: Sequence[str]) -> Tuple[Dict[str, int], List[str]]:
    """
    Map shortlist emails to registered students.

    Emails are compared trimmed and case-insensitively.

    Returns:
        (email -> student_id for every resolved email, unresolved emails in input order)
    """
    normalized = normalize_emails(emails)
    if not normalized:
        return {}, []

    stmt = text("""
        SELECT LOWER(u.email) AS email, s.student_id
        FROM users u JOIN students s ON s.user_id = u.user_id
        WHERE LOWER(u.email) IN :emails AND u.role = 'student'
    """).bindparams(bindparam("emails", expanding=True))

    found = {r["email"]: r["student_id"] for r in db.execute(stmt, {"emails": normalized}).mappings().all()}
    unresolved = [e for e in normalized if e not in found]
    return found, unresolved
