"""
Spreadsheet Utility - shortlist and student import files.

Supported formats:
- Excel (.xlsx) using openpyxl (first sheet)
- CSV (.csv)

Max file size: settings.max_upload_mb (5MB by default)
"""

import csv
import io
from typing import List, Optional, Sequence

from fastapi import HTTPException, UploadFile
from openpyxl import Workbook, load_workbook

from app.core.config import get_settings
from app.core.exceptions import ValidationException


ALLOWED_EXTENSIONS = {'.xlsx', '.csv'}
EMAIL_HEADERS = ("Email", "email", "Student Email")

SHORTLIST_HEADERS = ["Email"]

# Spreadsheet header -> student field
STUDENT_COLUMNS = {
    "Name": "full_name",
    "Email": "email",
    "Batch": "batch",
    "RegistrationNumber": "registration_number",
    "Branch": "branch",
    "SemestersCompleted": "semesters_completed",
    "NumberOfBacklogs": "number_of_backlogs",
    "PhoneNumber": "phone",
    "CGPA": "cgpa",
}
STUDENT_HEADERS = list(STUDENT_COLUMNS)


def get_file_extension(filename: str) -> str:
    """Get lowercase file extension."""
    if '.' not in filename:
        return ''
    return '.' + filename.rsplit('.', 1)[1].lower()


def read_upload(file: UploadFile) -> bytes:
    """
    Validate and read an uploaded spreadsheet.

    Raises:
        HTTPException on bad extension (400) or size (413)
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    ext = get_file_extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext}'. Allowed: XLSX, CSV"
        )

    max_mb = get_settings().max_upload_mb
    content = file.file.read()
    if len(content) > max_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {max_mb}MB"
        )
    return content


def read_rows(content: bytes, filename: str) -> List[List]:
    """All rows of the first sheet (or the CSV) as lists of cell values."""
    ext = get_file_extension(filename or "")
    if ext == '.csv':
        text = _decode(content)
        return [row for row in csv.reader(io.StringIO(text))]
    if ext == '.xlsx':
        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise ValidationException(f"Could not read spreadsheet: {e}") from e
        try:
            sheet = workbook.worksheets[0]
            return [list(row) for row in sheet.iter_rows(values_only=True)]
        finally:
            workbook.close()
    raise ValidationException(f"Unsupported file type '{ext}'. Allowed: XLSX, CSV")


def parse_email_column(content: bytes, filename: str, allow_empty: bool = False) -> List[str]:
    """
    Extract the email column of a shortlist file.

    Values are trimmed and lowercased; blanks are skipped and duplicates
    removed, keeping first-seen order.

    Raises:
        ValidationException if there is no email header, or no emails
        and allow_empty is False
    """
    rows = read_rows(content, filename)
    if not rows:
        if allow_empty:
            return []
        raise ValidationException("Shortlist file is empty")

    header = [_cell(c) for c in rows[0]]
    column = _find_column(header, EMAIL_HEADERS)
    if column is None:
        raise ValidationException(
            "Shortlist file must have an 'Email' column (accepted headers: "
            + ", ".join(EMAIL_HEADERS) + ")"
        )

    emails: List[str] = []
    for row in rows[1:]:
        if column >= len(row):
            continue
        email = _cell(row[column]).lower()
        if email and email not in emails:
            emails.append(email)

    if not emails and not allow_empty:
        raise ValidationException("No emails found in shortlist file")
    return emails


def parse_student_rows(content: bytes, filename: str) -> List[dict]:
    """
    Rows of a student import file keyed by student field name.

    Each dict carries `row_number` (spreadsheet row, header is row 1).
    Entirely blank rows are skipped. Values are passed through as read;
    the student service converts and validates them per row.
    """
    rows = read_rows(content, filename)
    if not rows:
        raise ValidationException("Import file is empty")

    header = [_cell(c) for c in rows[0]]
    missing = [h for h in ("Name", "Email", "RegistrationNumber", "Branch") if h not in header]
    if missing:
        raise ValidationException(f"Import file is missing columns: {', '.join(missing)}")

    positions = {STUDENT_COLUMNS[h]: i for i, h in enumerate(header) if h in STUDENT_COLUMNS}

    students = []
    for number, row in enumerate(rows[1:], start=2):
        values = {}
        for field, i in positions.items():
            value = row[i] if i < len(row) else None
            if isinstance(value, str):
                value = value.strip() or None
            values[field] = value
        if all(v is None for v in values.values()):
            continue
        values["row_number"] = number
        students.append(values)
    return students


def build_template(headers: Sequence[str], sheet_title: str = "Sheet1") -> bytes:
    """An .xlsx workbook with just a header row."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    sheet.append(list(headers))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _find_column(header: List[str], names: Sequence[str]) -> Optional[int]:
    for name in names:
        if name in header:
            return header.index(name)
    return None


def _cell(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _decode(content: bytes) -> str:
    for encoding in ['utf-8-sig', 'latin-1']:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ValidationException("Could not decode CSV file")
