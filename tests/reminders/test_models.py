"""Tests for schedule definitions, patches and input parsing."""

from __future__ import annotations

from datetime import date, time

import pydantic
import pytest

from eyemate.errors import ValidationError
from eyemate.reminders._helpers import _parse_input, _set_clause
from eyemate.reminders.models import (
    FrequencyType,
    MedicationSchedule,
    NotificationSettingsPatch,
    ScheduleDefinition,
    SchedulePatch,
)

pytestmark = pytest.mark.unit


def _definition(**overrides) -> dict:
    data = {
        "prescription_id": "RX1",
        "frequency_type": "fixed_times",
        "dose_times": [{"dose_time": "08:00"}, {"dose_time": "20:00", "dose_label": "Night"}],
        "start_date": "2026-03-02",
    }
    data.update(overrides)
    return data


class TestScheduleDefinition:
    def test_defaults(self):
        definition = ScheduleDefinition.model_validate(_definition())

        assert definition.frequency_type == FrequencyType.FIXED_TIMES
        assert definition.dose_times[0].dose_time == time(8, 0)
        assert definition.dose_times[0].dose_label is None
        assert definition.dose_spacing_minutes == 5
        assert definition.calculate_from_actual is True
        assert definition.sleep_start_time == time(22, 0)
        assert definition.start_date == date(2026, 3, 2)

    def test_interval_requires_hours(self):
        with pytest.raises(pydantic.ValidationError, match="interval_hours is required"):
            ScheduleDefinition.model_validate(_definition(frequency_type="interval"))

    def test_hours_only_for_interval(self):
        with pytest.raises(pydantic.ValidationError, match="only valid"):
            ScheduleDefinition.model_validate(_definition(interval_hours=8))

    def test_unknown_frequency_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ScheduleDefinition.model_validate(_definition(frequency_type="weekly"))

    def test_end_before_start_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="end_date"):
            ScheduleDefinition.model_validate(_definition(end_date="2026-03-01"))

    def test_extra_fields_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ScheduleDefinition.model_validate(_definition(color="blue"))


class TestPatches:
    def test_only_set_fields_are_changes(self):
        patch = SchedulePatch.model_validate({"dose_spacing_minutes": 15})
        assert patch.changes() == {"dose_spacing_minutes": 15}

    def test_nullable_field_can_be_cleared(self):
        patch = SchedulePatch.model_validate({"end_date": None})
        assert patch.changes() == {"end_date": None}

    def test_required_field_cannot_be_nulled(self):
        with pytest.raises(pydantic.ValidationError, match="is_active cannot be null"):
            SchedulePatch.model_validate({"is_active": None})

    def test_settings_patch_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            NotificationSettingsPatch.model_validate({"snooze_duration_minutes": 0})

    def test_settings_patch_quiet_hours_clear(self):
        patch = NotificationSettingsPatch.model_validate(
            {"quiet_hours_enabled": True, "quiet_hours_start": None}
        )
        assert patch.changes() == {"quiet_hours_enabled": True, "quiet_hours_start": None}


class TestParseInput:
    def test_passes_model_through(self):
        patch = SchedulePatch(notes="hi")
        assert _parse_input(SchedulePatch, patch) is patch

    def test_wraps_pydantic_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            _parse_input(SchedulePatch, {"times_per_day": 0, "bogus": 1})

        err = exc_info.value
        assert err.kind == "validation_error"
        assert {e["field"] for e in err.details["errors"]} == {"times_per_day", "bogus"}


def test_set_clause_numbers_from_offset():
    clause, values = _set_clause({"push_enabled": False, "max_snooze_count": 3}, first_param=2)
    assert clause == "push_enabled = $2, max_snooze_count = $3"
    assert values == [False, 3]


def test_schedule_from_row_ignores_unknown_columns():
    schedule = MedicationSchedule.from_row(
        {
            "schedule_id": "SCHED1",
            "patient_id": "PAT1",
            "prescription_id": "RX1",
            "medication_id": "MED1",
            "frequency_type": "interval",
            "start_date": date(2026, 3, 2),
            "interval_hours": 8.0,
            "created_at": None,
        }
    )
    assert schedule.frequency_type is FrequencyType.INTERVAL
    assert schedule.interval_hours == 8.0
