"""
Domain types shared by the services.

Enums carry the exact values stored in the database and returned
by the API ("In Progress", "Final Selection", ...).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from app.core.exceptions import DriveCompleted


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    coordinator = "coordinator"
    advisor = "advisor"


class DriveStatus(str, Enum):
    open = "Open"
    in_progress = "In Progress"
    completed = "Completed"


class ApplicationStatus(str, Enum):
    applied = "Applied"
    interview = "Interview"
    selected = "Selected"
    rejected = "Rejected"


class PhaseName(str, Enum):
    resume_screening = "Resume Screening"
    written_test = "Written Test"
    interview_hr = "Interview HR"
    interview_technical = "Interview Technical"
    aptitude_test = "Aptitude Test"
    coding_test = "Coding Test"
    final_selection = "Final Selection"


class PhaseStatus(str, Enum):
    """A student's standing in the drive's current phase."""
    shortlisted = "Shortlisted"
    rejected = "Rejected"


class NotificationSeverity(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


# ============================================================
# ELIGIBILITY VALUE OBJECTS
# ============================================================

@dataclass(frozen=True)
class StudentAttributes:
    """The slice of a student profile the eligibility check reads."""
    branch: Optional[str] = None
    cgpa: Optional[float] = None
    number_of_backlogs: Optional[int] = None
    semesters_completed: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "StudentAttributes":
        return cls(
            branch=row.get("branch"),
            cgpa=row.get("cgpa"),
            number_of_backlogs=row.get("number_of_backlogs"),
            semesters_completed=row.get("semesters_completed"),
        )


@dataclass(frozen=True)
class EligibilityCriteria:
    """A drive's static admission criteria. Missing numbers default to 0."""
    eligible_branches: FrozenSet[str] = field(default_factory=frozenset)
    min_cgpa: Optional[float] = None
    max_backlogs: Optional[int] = None
    min_semesters_completed: Optional[int] = None
    drive_id: Optional[int] = None

    @classmethod
    def build(
        cls,
        eligible_branches: Iterable[str],
        min_cgpa: Optional[float] = None,
        max_backlogs: Optional[int] = None,
        min_semesters_completed: Optional[int] = None,
        drive_id: Optional[int] = None,
    ) -> "EligibilityCriteria":
        return cls(
            eligible_branches=frozenset(normalize_branch(b) for b in eligible_branches if b),
            min_cgpa=min_cgpa,
            max_backlogs=max_backlogs,
            min_semesters_completed=min_semesters_completed,
            drive_id=drive_id,
        )


def normalize_branch(branch: Optional[str]) -> str:
    return (branch or "").strip().lower()


# ============================================================
# DRIVE STATUS
# ============================================================

def next_drive_status(drive_id: int, current: DriveStatus, phase_name: PhaseName) -> DriveStatus:
    """
    Status after appending a phase named `phase_name`.

    Open -> In Progress -> Completed, never backwards. A Final Selection
    phase is terminal.
    """
    if DriveStatus(current) == DriveStatus.completed:
        raise DriveCompleted(drive_id)
    if PhaseName(phase_name) == PhaseName.final_selection:
        return DriveStatus.completed
    return DriveStatus.in_progress
