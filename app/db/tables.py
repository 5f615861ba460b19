"""
Relational schema for the placement drive service.

Declared with SQLAlchemy Core so the same DDL works on PostgreSQL
(production) and SQLite (local runs, tests). Queries elsewhere are raw
text() SQL against these tables.

Tables:
- users / students            identity + eligibility attributes
- student_eligible_drives     materialized "eligible drives" view
- drives / drive_branches      drive definitions and criteria
- applications                one row per (drive, student)
- phases / phase_shortlists    ordered elimination phases
"""

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Float, Text, Boolean,
    DateTime, ForeignKey, UniqueConstraint, Index, func, true
)

metadata = MetaData()


users = Table(
    "users", metadata,
    Column("user_id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(200), nullable=False),
    Column("role", String(20), nullable=False, default="student"),
    Column("branch", String(50)),
    Column("is_active", Boolean, nullable=False, default=True, server_default=true()),
    Column("created_at", DateTime, server_default=func.now()),
)

students = Table(
    "students", metadata,
    Column("student_id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.user_id"), nullable=False, unique=True),
    Column("registration_number", String(50), nullable=False, unique=True),
    Column("batch", Integer),
    Column("branch", String(50)),
    Column("cgpa", Float, nullable=True),
    Column("number_of_backlogs", Integer, nullable=False, default=0, server_default="0"),
    Column("semesters_completed", Integer, nullable=False, default=0, server_default="0"),
    Column("phone", String(30)),
    Column("created_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
)

drives = Table(
    "drives", metadata,
    Column("drive_id", Integer, primary_key=True, autoincrement=True),
    Column("company_name", String(200), nullable=False),
    Column("role", String(200), nullable=False),
    Column("description", Text),
    Column("drive_date", DateTime, nullable=False),
    Column("min_cgpa", Float, nullable=False, default=0, server_default="0"),
    Column("max_backlogs", Integer, nullable=False, default=0, server_default="0"),
    Column("min_semesters_completed", Integer, nullable=False, default=0, server_default="0"),
    Column("status", String(20), nullable=False, default="Open", server_default="Open"),
    # Optimistic concurrency counter, bumped by every mutation
    Column("version", Integer, nullable=False, default=0, server_default="0"),
    Column("created_by", Integer, ForeignKey("users.user_id")),
    Column("created_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
    Index("ix_drives_status_date", "status", "drive_date"),
)

drive_branches = Table(
    "drive_branches", metadata,
    Column("drive_id", Integer, ForeignKey("drives.drive_id"), primary_key=True),
    Column("branch", String(50), primary_key=True),
)

student_eligible_drives = Table(
    "student_eligible_drives", metadata,
    Column("student_id", Integer, ForeignKey("students.student_id"), primary_key=True),
    Column("drive_id", Integer, ForeignKey("drives.drive_id"), primary_key=True),
)

applications = Table(
    "applications", metadata,
    Column("application_id", Integer, primary_key=True, autoincrement=True),
    Column("drive_id", Integer, ForeignKey("drives.drive_id"), nullable=False),
    Column("student_id", Integer, ForeignKey("students.student_id"), nullable=False),
    Column("status", String(20), nullable=False, default="Applied", server_default="Applied"),
    Column("applied_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
    UniqueConstraint("drive_id", "student_id", name="uq_applications_drive_student"),
)

phases = Table(
    "phases", metadata,
    Column("phase_id", Integer, primary_key=True, autoincrement=True),
    Column("drive_id", Integer, ForeignKey("drives.drive_id"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("name", String(50), nullable=False),
    Column("requirements", Text, nullable=False, default="", server_default=""),
    Column("instructions", Text, nullable=False, default="", server_default=""),
    Column("created_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
    UniqueConstraint("drive_id", "position", name="uq_phases_drive_position"),
)

phase_shortlists = Table(
    "phase_shortlists", metadata,
    Column("phase_id", Integer, ForeignKey("phases.phase_id"), primary_key=True),
    Column("student_id", Integer, ForeignKey("students.student_id"), primary_key=True),
)


def create_tables(bind) -> None:
    """Create all tables (no-op for existing ones)."""
    metadata.create_all(bind=bind)


def drop_tables(bind) -> None:
    metadata.drop_all(bind=bind)
