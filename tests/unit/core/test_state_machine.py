"""
Tests for the migration state machine.
"""

import pytest

from mcmigrate.core.exceptions import InvalidStateTransitionError
from mcmigrate.state_machine import MigrationStateMachine
from mcmigrate.types import TERMINAL_STATUSES, MigrationStatus


class TestMigrationStateMachine:
    @pytest.fixture
    def machine(self):
        return MigrationStateMachine()

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (MigrationStatus.SCHEDULED, MigrationStatus.STARTING),
            (MigrationStatus.STARTING, MigrationStatus.RUNNING),
            (MigrationStatus.RUNNING, MigrationStatus.COMPLETED),
            (MigrationStatus.RUNNING, MigrationStatus.FAILED),
            (MigrationStatus.COMPLETED, MigrationStatus.RECONCILING),
            (MigrationStatus.RECONCILING, MigrationStatus.VERIFIED),
            (MigrationStatus.RECONCILING, MigrationStatus.COMPLETED_WITH_DIFFERENCES),
            (MigrationStatus.RECONCILING, MigrationStatus.COMPLETED),
            (MigrationStatus.SCHEDULED, MigrationStatus.CANCELLED),
            (MigrationStatus.RUNNING, MigrationStatus.CANCELLED),
        ],
    )
    def test_valid_transitions(self, machine, from_status, to_status):
        assert machine.can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (MigrationStatus.SCHEDULED, MigrationStatus.RUNNING),
            (MigrationStatus.RUNNING, MigrationStatus.VERIFIED),
            (MigrationStatus.COMPLETED, MigrationStatus.CANCELLED),
            (MigrationStatus.RECONCILING, MigrationStatus.CANCELLED),
        ],
    )
    def test_invalid_transitions(self, machine, from_status, to_status):
        assert not machine.can_transition(from_status, to_status)

    def test_terminal_statuses_have_no_exits(self, machine):
        for terminal in TERMINAL_STATUSES:
            for target in MigrationStatus:
                assert not machine.can_transition(terminal, target)

    def test_validate_raises_for_any_illegal_source(self, machine):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            machine.validate(
                "m-1",
                [MigrationStatus.STARTING, MigrationStatus.VERIFIED],
                MigrationStatus.CANCELLED,
            )

        assert exc_info.value.from_status == MigrationStatus.VERIFIED
        assert "m-1" in str(exc_info.value)

    def test_sources_of_cancelled(self, machine):
        assert set(machine.sources_of(MigrationStatus.CANCELLED)) == {
            MigrationStatus.SCHEDULED,
            MigrationStatus.STARTING,
            MigrationStatus.RUNNING,
        }

    def test_applied_invokes_hook(self):
        seen = []
        machine = MigrationStateMachine(on_transition=lambda *args: seen.append(args))

        machine.applied("m-1", MigrationStatus.RUNNING, MigrationStatus.COMPLETED)

        assert seen == [("m-1", MigrationStatus.RUNNING, MigrationStatus.COMPLETED)]
