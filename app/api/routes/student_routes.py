"""
Student Routes

POST /students - Add a student to the advisor's branch (advisor only)
POST /students/import - Bulk import from XLSX/CSV (advisor only)
GET /students/import/template - Import template download (advisor only)
GET /students/profile - Get own profile (student only)
PUT /students/profile - Update own profile (student only)
GET /students/by-email/{email} - Look up a student (coordinator only)
"""

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response

from app.core.auth import get_current_advisor, get_current_coordinator, get_current_student
from app.services.student_service import get_student_service
from app.utils.shortlist_file import STUDENT_HEADERS, build_template, parse_student_rows, read_upload
from app.schemas.schemas import StudentCreate, StudentImportResponse, StudentResponse, StudentUpdate

router = APIRouter(prefix="/students", tags=["Students"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("", response_model=StudentResponse, status_code=201)
def add_student(data: StudentCreate, advisor: dict = Depends(get_current_advisor)):
    """Add one student. The branch must be the advisor's own."""
    return get_student_service().add_student(data.model_dump(), advisor)


@router.post("/import", response_model=StudentImportResponse)
def import_students(file: UploadFile = File(...), advisor: dict = Depends(get_current_advisor)):
    """
    Import students from a spreadsheet.

    Rows are handled independently: valid rows are stored even when
    others fail, and every failure is reported with its row number.
    """
    content = read_upload(file)
    rows = parse_student_rows(content, file.filename)
    result = get_student_service().import_students(rows, advisor)
    return StudentImportResponse(
        message=f"{len(result['successful'])} students added, {len(result['errors'])} rows failed",
        successful=result["successful"],
        errors=result["errors"],
    )


@router.get("/import/template")
def import_template(advisor: dict = Depends(get_current_advisor)):
    content = build_template(STUDENT_HEADERS, sheet_title="Students")
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="student_import_template.xlsx"'}
    )


@router.get("/profile", response_model=StudentResponse)
def get_profile(student: dict = Depends(get_current_student)):
    """Get current student's profile with eligible drive ids."""
    return get_student_service().get_profile(student["student_id"])


@router.put("/profile", response_model=StudentResponse)
def update_profile(data: StudentUpdate, student: dict = Depends(get_current_student)):
    """Update profile. Eligibility is recomputed when branch, CGPA, backlogs or semesters change."""
    return get_student_service().update_profile(student["student_id"], data.model_dump(exclude_unset=True))


@router.get("/by-email/{email}", response_model=StudentResponse)
def get_student_by_email(email: str, coordinator: dict = Depends(get_current_coordinator)):
    return get_student_service().get_by_email(email)
