"""Spreadsheet parsing and templates."""

import io

import pytest
from openpyxl import Workbook, load_workbook

from app.core.exceptions import ValidationException
from app.utils.shortlist_file import (
    SHORTLIST_HEADERS, STUDENT_HEADERS, build_template, parse_email_column, parse_student_rows
)


def xlsx(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestParseEmailColumn:

    def test_xlsx_trims_lowercases_and_dedupes(self):
        content = xlsx([
            ["Name", "Email"],
            ["A", "  A@College.edu "],
            ["B", None],
            ["C", "c@college.edu"],
            ["A again", "a@college.edu"],
        ])
        assert parse_email_column(content, "list.xlsx") == ["a@college.edu", "c@college.edu"]

    @pytest.mark.parametrize("header", ["Email", "email", "Student Email"])
    def test_accepted_headers(self, header):
        content = f"{header}\nx@college.edu\n".encode()
        assert parse_email_column(content, "list.csv") == ["x@college.edu"]

    def test_csv_with_bom(self):
        content = "\ufeffEmail\r\ny@college.edu\r\n".encode("utf-8")
        assert parse_email_column(content, "LIST.CSV") == ["y@college.edu"]

    def test_missing_header(self):
        with pytest.raises(ValidationException):
            parse_email_column(b"Name\nBob\n", "list.csv")

    def test_empty_list(self):
        with pytest.raises(ValidationException):
            parse_email_column(b"Email\n\n", "list.csv")
        assert parse_email_column(b"Email\n", "absent.csv", allow_empty=True) == []
        assert parse_email_column(b"", "absent.csv", allow_empty=True) == []

    def test_unsupported_extension(self):
        with pytest.raises(ValidationException):
            parse_email_column(b"Email\na@b.com", "list.txt")

    def test_corrupt_workbook(self):
        with pytest.raises(ValidationException):
            parse_email_column(b"not a zip", "list.xlsx")


class TestParseStudentRows:

    def test_rows_keyed_by_field_with_row_numbers(self):
        content = xlsx([
            STUDENT_HEADERS,
            ["Ravi", "ravi@college.edu", 2026, "21CS001", "CSE", 6, 0, "9876543210", 8.2],
            ["   "] + [None] * (len(STUDENT_HEADERS) - 1),
            ["Meera", "meera@college.edu", 2026, "21CS002", "CSE", 6, 1, None, 7.9],
        ])

        rows = parse_student_rows(content, "students.xlsx")

        assert [r["row_number"] for r in rows] == [2, 4]
        assert rows[0]["full_name"] == "Ravi"
        assert rows[0]["registration_number"] == "21CS001"
        assert rows[1]["number_of_backlogs"] == 1
        assert rows[1]["phone"] is None

    def test_missing_required_columns(self):
        with pytest.raises(ValidationException):
            parse_student_rows(b"Name,Email\nRavi,ravi@college.edu\n", "students.csv")


@pytest.mark.parametrize("headers", [SHORTLIST_HEADERS, STUDENT_HEADERS])
def test_template_has_header_row_only(headers):
    workbook = load_workbook(io.BytesIO(build_template(headers, "Sheet")))
    rows = list(workbook.active.iter_rows(values_only=True))
    assert rows == [tuple(headers)]
