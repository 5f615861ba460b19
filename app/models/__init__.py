"""
Models module - internal domain types.

Difference from schemas:
- Models: enums, value objects and pure state rules used by services
- Schemas: API contract (what client sends/receives)
"""

from app.models.domain import (
    UserRole, DriveStatus, ApplicationStatus, PhaseName, PhaseStatus,
    NotificationSeverity, StudentAttributes, EligibilityCriteria,
    next_drive_status,
)
from app.models.reconciliation import (
    Reconciliation, NarrowingStep, FullPoolStep, PhaseStep,
)

__all__ = [
    "UserRole", "DriveStatus", "ApplicationStatus", "PhaseName", "PhaseStatus",
    "NotificationSeverity", "StudentAttributes", "EligibilityCriteria",
    "next_drive_status",
    "Reconciliation", "NarrowingStep", "FullPoolStep", "PhaseStep",
]
