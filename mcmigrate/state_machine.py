"""
Migration State Machine - the legal lifecycle transitions of a migration.

The repository applies every status change as a conditional update
("move to X only if currently in one of S"). This module decides which
(S, X) pairs are legal; it never mutates anything itself.

State Diagram:

    ┌───────────┐
    │ SCHEDULED │ ────────────────────────────────┐
    └─────┬─────┘                                 │
          │ promote                               │
          ▼                                       │
    ┌──────────┐                                  │
    │ STARTING │ ──────────┬────────────────────┐ │
    └─────┬────┘           │                    │ │
          │ spawned        │                    │ │
          ▼                ▼                    ▼ ▼
    ┌─────────┐       ┌────────┐          ┌───────────┐
    │ RUNNING │ ────► │ FAILED │          │ CANCELLED │
    └────┬────┘       └────────┘          └───────────┘
         │ exit 0          ▲                    ▲
         ▼                 │ recovery           │
    ┌───────────┐          │                    │
    │ COMPLETED │ ◄──┐     │       RUNNING ─────┘
    └─────┬─────┘    │ reconciliation failed
          ▼          │     │
    ┌─────────────┐ ─┘     │
    │ RECONCILING │ ───────┘
    └──────┬──────┘
      ┌────┴─────────────────────┐
      ▼                          ▼
  ┌──────────┐     ┌────────────────────────────┐
  │ VERIFIED │     │ COMPLETED_WITH_DIFFERENCES │
  └──────────┘     └────────────────────────────┘
"""

from collections.abc import Callable, Iterable
from typing import Any

from mcmigrate.core.exceptions import InvalidStateTransitionError
from mcmigrate.types import MigrationStatus


class MigrationStateMachine:
    """
    State machine for the migration lifecycle.

    Valid Transitions:
        SCHEDULED → STARTING (promotion), CANCELLED
        STARTING → RUNNING (spawned), FAILED, CANCELLED
        RUNNING → COMPLETED (exit 0), FAILED, CANCELLED
        COMPLETED → RECONCILING
        RECONCILING → VERIFIED, COMPLETED_WITH_DIFFERENCES,
                      COMPLETED (reconciliation failed), FAILED (restart recovery)

    Usage:
        >>> sm = MigrationStateMachine()
        >>> sm.can_transition(MigrationStatus.RUNNING, MigrationStatus.COMPLETED)
        True
        >>> sm.validate("m-1", [MigrationStatus.STARTING], MigrationStatus.RUNNING)
    """

    # Valid transitions: from_status -> [to_status, ...]
    VALID_TRANSITIONS = {
        MigrationStatus.SCHEDULED: [MigrationStatus.STARTING, MigrationStatus.CANCELLED],
        MigrationStatus.STARTING: [
            MigrationStatus.RUNNING,
            MigrationStatus.FAILED,
            MigrationStatus.CANCELLED,
        ],
        MigrationStatus.RUNNING: [
            MigrationStatus.COMPLETED,
            MigrationStatus.FAILED,
            MigrationStatus.CANCELLED,
        ],
        MigrationStatus.COMPLETED: [MigrationStatus.RECONCILING],
        MigrationStatus.RECONCILING: [
            MigrationStatus.VERIFIED,
            MigrationStatus.COMPLETED_WITH_DIFFERENCES,
            MigrationStatus.COMPLETED,
            MigrationStatus.FAILED,
        ],
        MigrationStatus.FAILED: [],  # Terminal state
        MigrationStatus.CANCELLED: [],  # Terminal state
        MigrationStatus.VERIFIED: [],  # Terminal state
        MigrationStatus.COMPLETED_WITH_DIFFERENCES: [],  # Terminal state
    }

    def __init__(
        self,
        on_transition: Callable[[str, MigrationStatus, MigrationStatus], Any] | None = None,
    ):
        """
        Args:
            on_transition: Optional callback invoked after a transition was applied
        """
        self._on_transition = on_transition

    def can_transition(self, from_status: MigrationStatus, to_status: MigrationStatus) -> bool:
        return to_status in self.VALID_TRANSITIONS.get(from_status, [])

    def validate(
        self,
        migration_id: str,
        from_statuses: Iterable[MigrationStatus],
        to_status: MigrationStatus,
    ) -> None:
        """
        Check every source status against the target.

        Raises:
            InvalidStateTransitionError: If any pair is not a legal transition
        """
        for from_status in from_statuses:
            if not self.can_transition(from_status, to_status):
                raise InvalidStateTransitionError(migration_id, from_status, to_status)

    def sources_of(self, to_status: MigrationStatus) -> list[MigrationStatus]:
        """All statuses from which ``to_status`` can be reached."""
        return [
            from_status
            for from_status, targets in self.VALID_TRANSITIONS.items()
            if to_status in targets
        ]

    def applied(
        self, migration_id: str, from_status: MigrationStatus, to_status: MigrationStatus
    ) -> None:
        """Notify the transition hook, if any, that a transition took effect."""
        if self._on_transition:
            self._on_transition(migration_id, from_status, to_status)
