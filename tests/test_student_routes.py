"""Advisor onboarding and student profile endpoints."""

import io

import pytest
from openpyxl import Workbook

from app.utils.shortlist_file import STUDENT_HEADERS


def student_json(**kw):
    data = {
        "full_name": "Ravi Kumar",
        "email": "ravi@college.edu",
        "batch": 2026,
        "registration_number": "21CS001",
        "branch": "CSE",
        "semesters_completed": 6,
        "number_of_backlogs": 0,
        "cgpa": 8.2,
    }
    data.update(kw)
    return data


@pytest.fixture
def advisor(seed, auth):
    return auth(seed.advisor(branch="CSE"))


def test_advisor_adds_student(client, advisor, seed):
    drive = seed.drive()

    response = client.post("/api/students", json=student_json(), headers=advisor)

    assert response.status_code == 201
    assert response.json()["eligible_drive_ids"] == [drive["drive_id"]]


def test_advisor_cannot_add_other_branch(client, advisor):
    response = client.post("/api/students", json=student_json(branch="ECE"), headers=advisor)
    assert response.status_code == 403


def test_duplicate_student(client, advisor):
    client.post("/api/students", json=student_json(), headers=advisor)
    response = client.post("/api/students", json=student_json(registration_number="X"), headers=advisor)
    assert response.status_code == 409


def test_only_advisors_add_students(client, seed, auth):
    response = client.post("/api/students", json=student_json(), headers=auth(seed.coordinator()))
    assert response.status_code == 403


def test_import_reports_per_row_errors(client, advisor):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(STUDENT_HEADERS)
    sheet.append(["Ravi", "ravi@college.edu", 2026, "21CS001", "CSE", 6, 0, "9876543210", 8.2])
    sheet.append(["Meera", "meera@college.edu", 2026, "21EC001", "ECE", 6, 0, None, 9.0])
    sheet.append(["Arun", "arun@college.edu", 2026, "21CS002", "CSE", 5, 1, None, 12])
    buffer = io.BytesIO()
    workbook.save(buffer)

    response = client.post(
        "/api/students/import",
        files={"file": ("students.xlsx", buffer.getvalue(), "application/octet-stream")},
        headers=advisor,
    )

    assert response.status_code == 200
    body = response.json()
    assert [s["email"] for s in body["successful"]] == ["ravi@college.edu"]
    assert [e["row"] for e in body["errors"]] == [3, 4]
    assert body["message"] == "1 students added, 2 rows failed"


def test_import_template(client, advisor):
    response = client.get("/api/students/import/template", headers=advisor)
    assert response.status_code == 200
    assert response.content[:2] == b"PK"


def test_student_profile_read_and_update(client, seed, auth):
    drive = seed.drive(min_cgpa=9.0)
    user_id, student_id = seed.student(cgpa=8.0)
    headers = auth(user_id)

    profile = client.get("/api/students/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["student_id"] == student_id
    assert profile.json()["eligible_drive_ids"] == []

    updated = client.put("/api/students/profile", json={"cgpa": 9.1}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["eligible_drive_ids"] == [drive["drive_id"]]

    invalid = client.put("/api/students/profile", json={"cgpa": 12}, headers=headers)
    assert invalid.status_code == 422


def test_coordinator_lookup_by_email(client, seed, auth):
    _, student_id = seed.student(email="find.me@college.edu")
    coordinator = auth(seed.coordinator())

    found = client.get("/api/students/by-email/FIND.ME@college.edu", headers=coordinator)
    missing = client.get("/api/students/by-email/nobody@college.edu", headers=coordinator)

    assert found.status_code == 200
    assert found.json()["student_id"] == student_id
    assert missing.status_code == 404


def test_deactivated_account(client, seed, auth):
    user_id = seed.user("gone@college.edu", "student", is_active=False)
    response = client.get("/api/students/profile", headers=auth(user_id))
    assert response.status_code == 403
