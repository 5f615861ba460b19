"""
Shortlist reconciliation

Each kind of pipeline step turns shortlists into application status
changes with its own rule:

- NarrowingStep (any phase added through AddPhase): only the delta
  against the previous phase's shortlist is touched.
- FullPoolStep (EndDrive): every applicant gets a final verdict.

Both are pure; the pipeline persists whatever reconcile() returns.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Union

from app.models.domain import ApplicationStatus


@dataclass(frozen=True)
class Reconciliation:
    """Status transitions produced by one step."""
    selected: FrozenSet[int]
    rejected: FrozenSet[int]

    def transitions(self) -> Dict[int, ApplicationStatus]:
        changes = {sid: ApplicationStatus.rejected for sid in self.rejected}
        changes.update({sid: ApplicationStatus.selected for sid in self.selected})
        return changes


@dataclass(frozen=True)
class NarrowingStep:
    previous_shortlist: FrozenSet[int]
    new_shortlist: FrozenSet[int]

    def reconcile(self) -> Reconciliation:
        # Students never shortlisted before keep their current status
        return Reconciliation(
            selected=frozenset(self.new_shortlist),
            rejected=frozenset(self.previous_shortlist - self.new_shortlist),
        )


@dataclass(frozen=True)
class FullPoolStep:
    applicants: FrozenSet[int]
    final_shortlist: FrozenSet[int]

    def reconcile(self) -> Reconciliation:
        selected = frozenset(self.final_shortlist & self.applicants)
        return Reconciliation(
            selected=selected,
            rejected=frozenset(self.applicants - selected),
        )


PhaseStep = Union[NarrowingStep, FullPoolStep]
