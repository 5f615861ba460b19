"""
Exception Hierarchy

Domain errors raised by the services. The API layer maps each family
to an HTTP status in app.main.
"""
from typing import List


class DomainException(Exception):
    """Base exception for all domain errors"""
    pass


# ============================================================
# 400 - VALIDATION
# ============================================================

class ValidationException(DomainException):
    """Malformed enum value or missing required field"""
    pass


class InvalidPhaseName(ValidationException):

    def __init__(self, phase_name: str):
        self.phase_name = phase_name
        super().__init__(f"Invalid phase name: '{phase_name}'")


class MissingShortlistFile(ValidationException):

    def __init__(self, message: str = "Shortlist file required for subsequent phases"):
        super().__init__(message)


class UnresolvedEmails(ValidationException):
    """One or more shortlist emails do not belong to a registered student."""

    def __init__(self, emails: List[str]):
        self.emails = list(emails)
        super().__init__(
            "The following emails are invalid or not registered students: "
            + ", ".join(self.emails)
        )


# ============================================================
# 403 - AUTHORIZATION
# ============================================================

class AuthorizationException(DomainException):
    """Role or branch mismatch"""
    pass


class NotEligible(AuthorizationException):

    def __init__(self, drive_id: int):
        self.drive_id = drive_id
        super().__init__("You are not eligible for this placement drive")


# ============================================================
# 404 - NOT FOUND
# ============================================================

class ResourceNotFoundException(DomainException):
    """Requested resource not found"""

    def __init__(self, resource_type: str, identifier):
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(f"{resource_type} not found: {identifier}")


class DriveNotFound(ResourceNotFoundException):

    def __init__(self, drive_id: int):
        super().__init__("Placement drive", drive_id)


class StudentNotFound(ResourceNotFoundException):

    def __init__(self, identifier):
        super().__init__("Student", identifier)


class ApplicationNotFound(ResourceNotFoundException):

    def __init__(self, drive_id: int, student_id: int):
        super().__init__("Application", f"drive={drive_id}, student={student_id}")


# ============================================================
# 409 - CONFLICT
# ============================================================

class ConflictException(DomainException):
    """State conflict: duplicate record or illegal transition"""
    pass


class AlreadyApplied(ConflictException):

    def __init__(self, drive_id: int, student_id: int):
        self.drive_id = drive_id
        self.student_id = student_id
        super().__init__("You have already applied to this placement drive")


class DriveCompleted(ConflictException):

    def __init__(self, drive_id: int):
        self.drive_id = drive_id
        super().__init__(f"Placement drive {drive_id} is already completed")


class ConcurrentModification(ConflictException):

    def __init__(self, drive_id: int):
        self.drive_id = drive_id
        super().__init__(f"Placement drive {drive_id} was modified concurrently, retry the request")


# ============================================================
# EXTERNAL SERVICES (logged, never propagated to callers)
# ============================================================

class ExternalServiceException(DomainException):
    """Notification or other outbound delivery failed"""
    pass
