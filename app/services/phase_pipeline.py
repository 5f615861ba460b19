"""
Phase Pipeline

PURPOSE:
Advance a drive through its ordered elimination phases and keep every
application's status consistent with who is still in the running.

STATES:
    Open (no phases) -> In Progress (>= 1 phase) -> Completed (Final Selection)
Transitions only go forward; a Completed drive accepts no more phases.

OPERATIONS:
- add_phase(): appends any phase. Reconciles by NARROWING: the new
  shortlist becomes Selected, students dropped since the previous phase
  become Rejected, nobody else is touched.
- end_drive(): appends Final Selection. Reconciles the FULL POOL: every
  applicant is Selected or Rejected by membership in the final list.

Shortlists arrive as email lists. Resolution is all-or-nothing: one
unknown email aborts the whole operation before anything is written.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Set

from loguru import logger
from sqlalchemy import bindparam, text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import DriveCompleted, InvalidPhaseName, MissingShortlistFile, UnresolvedEmails
from app.db.postgres import get_db_session
from app.models.domain import (
    ApplicationStatus, DriveStatus, NotificationSeverity, PhaseName, next_drive_status
)
from app.models.reconciliation import FullPoolStep, NarrowingStep, PhaseStep, Reconciliation
from app.services.drive_locks import bump_drive_version, drive_lock
from app.services.drive_queries import (
    fetch_applicant_ids, fetch_drive, fetch_phases, normalize_emails, resolve_student_emails
)
from app.services.notification_service import NotificationDispatcher, get_dispatcher


@dataclass(frozen=True)
class PhaseOutcome:
    """What one pipeline step did."""
    drive_id: int
    phase_id: int
    phase_name: PhaseName
    position: int
    drive_status: DriveStatus
    shortlist: FrozenSet[int]
    selected: FrozenSet[int]
    rejected: FrozenSet[int]


class PhasePipeline:

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.dispatcher = dispatcher or get_dispatcher()
        self.settings = get_settings()

    # ============================================================
    # ADD PHASE
    # ============================================================

    def add_phase(
        self,
        drive_id: int,
        phase_name: str,
        shortlist_emails: Optional[Sequence[str]] = None,
        requirements: str = "",
        instructions: str = "",
        unattended_emails: Optional[Sequence[str]] = None
    ) -> PhaseOutcome:
        """
        Append a phase and reconcile against the previous shortlist.

        Args:
            shortlist_emails: optional for the first phase (everyone who
                applied advances), mandatory afterwards
            unattended_emails: students to drop from the new shortlist
                (e.g. absent for the round); may be empty

        Raises:
            DriveNotFound, DriveCompleted, InvalidPhaseName,
            MissingShortlistFile, UnresolvedEmails
        """
        with drive_lock(drive_id):
            with get_db_session() as db:
                drive = fetch_drive(db, drive_id)

                # DriveCompleted takes precedence over a bad name
                if drive["status"] == DriveStatus.completed.value:
                    raise DriveCompleted(drive_id)
                name = self._parse_phase_name(phase_name)
                new_status = next_drive_status(drive_id, drive["status"], name)

                # A list of blanks counts as no list at all
                shortlist_emails = normalize_emails(shortlist_emails)
                phases = fetch_phases(db, drive_id)
                if not shortlist_emails and phases:
                    raise MissingShortlistFile()

                applicants = fetch_applicant_ids(db, drive_id)
                listed, excluded = self._resolve_all(db, shortlist_emails, normalize_emails(unattended_emails))

                candidates = applicants if listed is None else listed
                self._warn_non_applicants(drive_id, candidates - applicants)
                new_shortlist = frozenset((candidates & applicants) - excluded)

                previous = frozenset(phases[-1]["shortlisted_student_ids"]) if phases else frozenset()
                step = NarrowingStep(previous_shortlist=previous, new_shortlist=new_shortlist)

                outcome = self._commit_step(
                    db, drive, name, step, new_status, len(phases), requirements, instructions
                )

        logger.info(
            f"Drive {drive_id}: phase '{name.value}' added "
            f"({len(outcome.selected)} shortlisted, {len(outcome.rejected)} rejected, status {outcome.drive_status.value})"
        )
        self._notify(drive, outcome, requirements, instructions)
        return outcome

    # ============================================================
    # END DRIVE
    # ============================================================

    def end_drive(
        self,
        drive_id: int,
        shortlist_emails: Optional[Sequence[str]],
        requirements: str = "",
        instructions: str = ""
    ) -> PhaseOutcome:
        """
        Close the drive with a final selection list.

        Every applicant ends Selected or Rejected, whether or not they
        made it past earlier phases.

        Raises:
            DriveNotFound, DriveCompleted, MissingShortlistFile, UnresolvedEmails
        """
        with drive_lock(drive_id):
            with get_db_session() as db:
                drive = fetch_drive(db, drive_id)
                new_status = next_drive_status(drive_id, drive["status"], PhaseName.final_selection)

                shortlist_emails = normalize_emails(shortlist_emails)
                if not shortlist_emails:
                    raise MissingShortlistFile("Final shortlist file required to end drive")

                phases = fetch_phases(db, drive_id)
                applicants = fetch_applicant_ids(db, drive_id)
                listed, _ = self._resolve_all(db, shortlist_emails, None)
                self._warn_non_applicants(drive_id, listed - applicants)

                step = FullPoolStep(applicants=frozenset(applicants), final_shortlist=frozenset(listed))

                outcome = self._commit_step(
                    db, drive, PhaseName.final_selection, step, new_status,
                    len(phases), requirements, instructions
                )

        logger.info(
            f"Drive {drive_id}: ended with {len(outcome.selected)} selected, "
            f"{len(outcome.rejected)} rejected"
        )
        self._notify(drive, outcome, requirements, instructions)
        return outcome

    # ============================================================
    # INTERNALS
    # ============================================================

    @staticmethod
    def _parse_phase_name(phase_name: str) -> PhaseName:
        try:
            return PhaseName(phase_name)
        except ValueError:
            raise InvalidPhaseName(phase_name)

    @staticmethod
    def _resolve_all(
        db: Session,
        shortlist_emails: Optional[Sequence[str]],
        unattended_emails: Optional[Sequence[str]]
    ):
        """
        Resolve every supplied list before anything is written.

        Returns:
            (shortlisted ids or None when no list was given, excluded ids)
        """
        unresolved: List[str] = []

        listed: Optional[Set[int]] = None
        if shortlist_emails:
            found, bad = resolve_student_emails(db, shortlist_emails)
            listed = set(found.values())
            unresolved.extend(bad)

        excluded: Set[int] = set()
        if unattended_emails:
            found, bad = resolve_student_emails(db, unattended_emails)
            excluded = set(found.values())
            unresolved.extend(e for e in bad if e not in unresolved)

        if unresolved:
            raise UnresolvedEmails(unresolved)
        return listed, excluded

    @staticmethod
    def _warn_non_applicants(drive_id: int, student_ids: Set[int]) -> None:
        if student_ids:
            logger.warning(
                f"Drive {drive_id}: ignoring {len(student_ids)} listed students who never applied: "
                f"{sorted(student_ids)}"
            )

    def _commit_step(
        self,
        db: Session,
        drive: dict,
        name: PhaseName,
        step: PhaseStep,
        new_status: DriveStatus,
        position: int,
        requirements: str,
        instructions: str
    ) -> PhaseOutcome:
        """Persist a reconciled step: phase row, shortlist, statuses, drive status."""
        drive_id = drive["drive_id"]
        result: Reconciliation = step.reconcile()
        shortlist = result.selected

        phase_id = db.execute(
            text("""
                INSERT INTO phases (drive_id, position, name, requirements, instructions)
                VALUES (:did, :pos, :name, :req, :ins)
                RETURNING phase_id
            """),
            {
                "did": drive_id, "pos": position, "name": name.value,
                "req": requirements or "", "ins": instructions or ""
            }
        ).scalar_one()

        if shortlist:
            db.execute(
                text("INSERT INTO phase_shortlists (phase_id, student_id) VALUES (:pid, :sid)"),
                [{"pid": phase_id, "sid": sid} for sid in sorted(shortlist)]
            )

        self._apply_transitions(db, drive_id, result.transitions())
        bump_drive_version(db, drive_id, drive["version"], status=new_status.value)

        return PhaseOutcome(
            drive_id=drive_id,
            phase_id=phase_id,
            phase_name=name,
            position=position,
            drive_status=new_status,
            shortlist=shortlist,
            selected=result.selected,
            rejected=result.rejected,
        )

    @staticmethod
    def _apply_transitions(db: Session, drive_id: int, transitions: Dict[int, ApplicationStatus]) -> None:
        by_status: Dict[ApplicationStatus, List[int]] = {}
        for student_id, status in transitions.items():
            by_status.setdefault(status, []).append(student_id)

        stmt = text("""
            UPDATE applications SET status = :status, updated_at = CURRENT_TIMESTAMP
            WHERE drive_id = :did AND student_id IN :ids
        """).bindparams(bindparam("ids", expanding=True))

        for status, ids in by_status.items():
            db.execute(stmt, {"status": status.value, "did": drive_id, "ids": sorted(ids)})

    def _notify(self, drive: dict, outcome: PhaseOutcome, requirements: str, instructions: str) -> None:
        title = f"{drive['company_name']} ({drive['role']})"
        link = self.settings.notification_link

        if outcome.phase_name == PhaseName.final_selection:
            selected_msg = f"Congratulations! Selected for {title}"
            rejected_msg = f"Not selected for {title}. Thank you for participating."
        else:
            selected_msg = f"Shortlisted for {outcome.phase_name.value} - {title}"
            if requirements:
                selected_msg += f". Requirements: {requirements}"
            if instructions:
                selected_msg += f". Instructions: {instructions}"
            rejected_msg = f"Not shortlisted for {outcome.phase_name.value} - {title}"

        self.dispatcher.notify(outcome.selected, selected_msg, NotificationSeverity.success, link, outcome.drive_id)
        self.dispatcher.notify(outcome.rejected, rejected_msg, NotificationSeverity.warning, link, outcome.drive_id)


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def get_phase_pipeline() -> PhasePipeline:
    """Get phase pipeline instance."""
    return PhasePipeline()
