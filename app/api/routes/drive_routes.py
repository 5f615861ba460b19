"""
Drive Routes

POST /drives - Create placement drive (coordinator only)
GET /drives - List drives, optional ?year= (coordinator only)
GET /drives/public - Upcoming and ongoing drives (no auth)
GET /drives/mine - Eligible drives with own progress (student only)
GET /drives/template - Shortlist template download (coordinator only)
GET /drives/{drive_id} - Drive details (any role)
GET /drives/{drive_id}/applications - Applications (coordinator only)
POST /drives/{drive_id}/apply - Apply to drive (student only)
POST /drives/{drive_id}/add-phase - Add phase with shortlist file (coordinator only)
POST /drives/{drive_id}/end - End drive with final shortlist (coordinator only)
PUT /drives/{drive_id}/status/{student_id} - Override application status (coordinator only)

Handlers are plain `def`: they run in the threadpool and block on the
per-drive lock and the database.
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from typing import List, Optional

from app.core.auth import (
    attach_student_id, get_current_coordinator, get_current_student, get_current_user
)
from app.services.application_ledger import get_application_ledger
from app.services.drive_registry import get_drive_registry
from app.services.phase_pipeline import PhaseOutcome, get_phase_pipeline
from app.utils.shortlist_file import SHORTLIST_HEADERS, build_template, parse_email_column, read_upload
from app.schemas.schemas import (
    ApplicationRecord, ApplicationResponse, ApplicationStatusUpdate, DriveCreate,
    DriveCreateResponse, DriveDetailResponse, DriveListItem, ErrorResponse, PhaseResultResponse,
    PublicDriveResponse, StudentDriveResponse
)

router = APIRouter(prefix="/drives", tags=["Drives"])

# Shortlist failures; 400 bodies carry invalid_emails when addresses did not resolve
SHORTLIST_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _emails_from(upload: Optional[UploadFile], allow_empty: bool = False) -> Optional[List[str]]:
    """Parsed email column, or None when no file was sent."""
    if upload is None or not upload.filename:
        return None
    content = read_upload(upload)
    return parse_email_column(content, upload.filename, allow_empty=allow_empty)


def _phase_result(message: str, outcome: PhaseOutcome) -> PhaseResultResponse:
    return PhaseResultResponse(
        message=message,
        drive_id=outcome.drive_id,
        phase_id=outcome.phase_id,
        phase_name=outcome.phase_name,
        position=outcome.position,
        drive_status=outcome.drive_status,
        shortlisted_count=len(outcome.shortlist),
        selected_count=len(outcome.selected),
        rejected_count=len(outcome.rejected),
    )


@router.post("", response_model=DriveCreateResponse, status_code=201)
def create_drive(drive: DriveCreate, coordinator: dict = Depends(get_current_coordinator)):
    """Create a drive and compute which students are eligible."""
    return get_drive_registry().create_drive(drive.model_dump(), created_by=coordinator["user_id"])


@router.get("", response_model=List[DriveListItem])
def list_drives(
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Calendar year of the drive date"),
    coordinator: dict = Depends(get_current_coordinator)
):
    """All drives, newest first."""
    return get_drive_registry().list_drives(year)


@router.get("/public", response_model=List[PublicDriveResponse])
def list_public_drives():
    """Upcoming and ongoing drives for the public placement board."""
    return get_drive_registry().list_public_drives()


@router.get("/mine", response_model=List[StudentDriveResponse])
def my_drives(student: dict = Depends(get_current_student)):
    """Drives the student is eligible for, with application and phase status."""
    return get_drive_registry().student_drives(student["student_id"])


@router.get("/template")
def shortlist_template(coordinator: dict = Depends(get_current_coordinator)):
    """Download an empty shortlist spreadsheet."""
    content = build_template(SHORTLIST_HEADERS, sheet_title="Shortlist")
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="shortlist_template.xlsx"'}
    )


@router.get("/{drive_id}", response_model=DriveDetailResponse)
def get_drive(drive_id: int, user: dict = Depends(get_current_user)):
    """Drive with phases; students see their standing, coordinators see applicants."""
    return get_drive_registry().get_drive(drive_id, attach_student_id(user))


@router.get("/{drive_id}/applications", response_model=List[ApplicationResponse])
def list_applications(drive_id: int, coordinator: dict = Depends(get_current_coordinator)):
    return get_application_ledger().list_applications(drive_id)


@router.post("/{drive_id}/apply", response_model=ApplicationRecord, status_code=201)
def apply_to_drive(drive_id: int, student: dict = Depends(get_current_student)):
    """Apply to a drive. The student must meet its criteria."""
    return get_application_ledger().apply(drive_id, student["student_id"])


@router.post("/{drive_id}/add-phase", response_model=PhaseResultResponse, responses=SHORTLIST_ERRORS)
def add_phase(
    drive_id: int,
    phase_name: str = Form(..., alias="phaseName"),
    requirements: str = Form(""),
    instructions: str = Form(""),
    shortlist_file: Optional[UploadFile] = File(None, alias="shortlistFile"),
    unattended_file: Optional[UploadFile] = File(None, alias="unattendedFile"),
    coordinator: dict = Depends(get_current_coordinator)
):
    """
    Append a phase.

    The shortlist file may be omitted only for the first phase, in which
    case every applicant advances. The unattended file lists students to
    leave out of the new shortlist.
    """
    outcome = get_phase_pipeline().add_phase(
        drive_id,
        phase_name,
        shortlist_emails=_emails_from(shortlist_file),
        requirements=requirements,
        instructions=instructions,
        unattended_emails=_emails_from(unattended_file, allow_empty=True),
    )
    return _phase_result(f"Phase '{outcome.phase_name.value}' added successfully", outcome)


@router.post("/{drive_id}/end", response_model=PhaseResultResponse, responses=SHORTLIST_ERRORS)
def end_drive(
    drive_id: int,
    requirements: str = Form(""),
    instructions: str = Form(""),
    shortlist_file: Optional[UploadFile] = File(None, alias="shortlistFile"),
    coordinator: dict = Depends(get_current_coordinator)
):
    """Close the drive: listed applicants are Selected, all others Rejected."""
    outcome = get_phase_pipeline().end_drive(
        drive_id,
        _emails_from(shortlist_file),
        requirements=requirements,
        instructions=instructions,
    )
    return _phase_result("Drive ended successfully", outcome)


@router.put("/{drive_id}/status/{student_id}", response_model=ApplicationRecord)
def update_application_status(
    drive_id: int,
    student_id: int,
    update: ApplicationStatusUpdate,
    coordinator: dict = Depends(get_current_coordinator)
):
    return get_application_ledger().update_status(drive_id, student_id, update.status)
