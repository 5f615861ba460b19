"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
Enums come from app.models.domain so the API and the services agree on
the stored values.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime

from app.models.domain import (
    ApplicationStatus, DriveStatus, NotificationSeverity, PhaseName, PhaseStatus, UserRole
)

__all__ = [
    "ApplicationStatus", "DriveStatus", "NotificationSeverity", "PhaseName", "PhaseStatus", "UserRole",
]


# ============================================================
# DRIVE SCHEMAS
# ============================================================

class DriveCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=200)
    role: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    drive_date: datetime
    eligible_branches: List[str] = Field(..., min_length=1)
    min_cgpa: float = Field(0, ge=0, le=10)
    max_backlogs: int = Field(0, ge=0)
    min_semesters_completed: int = Field(0, ge=0)

    @field_validator("eligible_branches")
    @classmethod
    def branches_not_blank(cls, v: List[str]) -> List[str]:
        cleaned = [b.strip() for b in v if b and b.strip()]
        if not cleaned:
            raise ValueError("At least one eligible branch is required")
        return cleaned


class PhaseSummary(BaseModel):
    name: str
    created_at: Optional[datetime] = None
    requirements: str = ""
    instructions: str = ""


class PhaseResponse(PhaseSummary):
    phase_id: int
    drive_id: int
    position: int
    updated_at: Optional[datetime] = None
    shortlisted_count: int = 0


class StudentBrief(BaseModel):
    """Student display fields attached to applications and shortlists."""
    student_id: int
    full_name: str
    email: str
    registration_number: str
    branch: Optional[str] = None
    cgpa: Optional[float] = None
    number_of_backlogs: Optional[int] = None
    semesters_completed: Optional[int] = None


class ApplicationResponse(StudentBrief):
    application_id: int
    drive_id: int
    status: ApplicationStatus
    applied_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ApplicationRecord(BaseModel):
    application_id: int
    drive_id: int
    student_id: int
    status: ApplicationStatus
    applied_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ApplicationStatusUpdate(BaseModel):
    # Validated by the ledger so an unknown value gets the domain error message
    status: str


class DriveResponse(BaseModel):
    drive_id: int
    company_name: str
    role: str
    description: Optional[str] = None
    drive_date: datetime
    eligible_branches: List[str] = []
    min_cgpa: float = 0
    max_backlogs: int = 0
    min_semesters_completed: int = 0
    status: DriveStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DriveCreateResponse(DriveResponse):
    eligible_students_count: int


class DriveListItem(DriveResponse):
    applicant_count: int = 0


class PublicDriveResponse(DriveResponse):
    display_status: str


class DriveDetailResponse(DriveResponse):
    phases: List[PhaseResponse] = []
    current_phase: Optional[PhaseSummary] = None
    # Student callers
    application_status: Optional[ApplicationStatus] = None
    student_phase_status: Optional[PhaseStatus] = None
    # Coordinator callers
    applications: Optional[List[ApplicationResponse]] = None
    shortlisted_students: Optional[List[StudentBrief]] = None


class StudentDriveResponse(DriveResponse):
    application_status: str
    current_phase: Optional[PhaseSummary] = None
    student_phase_status: Optional[PhaseStatus] = None


class PhaseResultResponse(BaseModel):
    message: str
    drive_id: int
    phase_id: int
    phase_name: PhaseName
    position: int
    drive_status: DriveStatus
    shortlisted_count: int
    selected_count: int
    rejected_count: int


# ============================================================
# STUDENT SCHEMAS
# ============================================================

class StudentCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    batch: int = Field(..., ge=2000, le=2100)
    registration_number: str = Field(..., min_length=1, max_length=50)
    branch: str = Field(..., min_length=1, max_length=50)
    semesters_completed: int = Field(0, ge=0)
    number_of_backlogs: int = Field(0, ge=0)
    phone: Optional[str] = None
    cgpa: Optional[float] = Field(None, ge=0, le=10)


class StudentUpdate(BaseModel):
    branch: Optional[str] = Field(None, min_length=1, max_length=50)
    cgpa: Optional[float] = Field(None, ge=0, le=10)
    number_of_backlogs: Optional[int] = Field(None, ge=0)
    semesters_completed: Optional[int] = Field(None, ge=0)
    phone: Optional[str] = None


class StudentResponse(StudentBrief):
    user_id: int
    batch: Optional[int] = None
    phone: Optional[str] = None
    eligible_drive_ids: List[int] = []


class ImportRowError(BaseModel):
    row: Optional[int] = None
    email: Optional[str] = None
    error: str


class StudentImportResponse(BaseModel):
    message: str
    successful: List[StudentResponse]
    errors: List[ImportRowError]


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class NotificationResponse(BaseModel):
    id: str
    student_id: int
    message: str
    type: NotificationSeverity
    link: Optional[str] = None
    related_id: Optional[int] = None
    read: bool = False
    created_at: datetime


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

class ErrorResponse(BaseModel):
    detail: str
    invalid_emails: Optional[List[str]] = None
