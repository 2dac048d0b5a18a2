"""Tests for the dose log state machine."""

from __future__ import annotations

import pytest

from eyemate.errors import AlreadyCompletedError, InvalidStateError
from eyemate.reminders.doses import _chains_next_dose, validate_transition
from eyemate.reminders.models import DoseStatus

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("current", [DoseStatus.PENDING, DoseStatus.SNOOZED])
@pytest.mark.parametrize(
    "target", [DoseStatus.COMPLETED, DoseStatus.SKIPPED, DoseStatus.SNOOZED]
)
def test_open_states_allow_resolution(current, target):
    validate_transition("LOG1", current, target)


@pytest.mark.parametrize(
    "target", [DoseStatus.COMPLETED, DoseStatus.SKIPPED, DoseStatus.SNOOZED]
)
def test_completed_is_terminal(target):
    with pytest.raises(AlreadyCompletedError) as exc_info:
        validate_transition("LOG1", DoseStatus.COMPLETED, target)
    assert exc_info.value.details == {"log_id": "LOG1", "status": "completed"}


@pytest.mark.parametrize(
    "target", [DoseStatus.COMPLETED, DoseStatus.SKIPPED, DoseStatus.SNOOZED]
)
def test_skipped_is_terminal(target):
    with pytest.raises(InvalidStateError) as exc_info:
        validate_transition("LOG1", DoseStatus.SKIPPED, target)
    assert not isinstance(exc_info.value, AlreadyCompletedError)


def test_nothing_returns_to_pending():
    with pytest.raises(InvalidStateError):
        validate_transition("LOG1", DoseStatus.SNOOZED, DoseStatus.PENDING)


class TestChainsNextDose:
    BASE = {
        "calculate_from_actual": True,
        "frequency_type": "interval",
        "interval_hours": 8.0,
        "dose_sequence": 2,
        "times_per_day": 2,
    }

    def test_last_dose_of_interval_sequence_chains(self):
        assert _chains_next_dose(self.BASE)

    @pytest.mark.parametrize(
        "override",
        [
            {"calculate_from_actual": False},
            {"frequency_type": "fixed_times"},
            {"interval_hours": None},
            {"dose_sequence": 1},
        ],
    )
    def test_other_doses_do_not_chain(self, override):
        assert not _chains_next_dose({**self.BASE, **override})
