"""Tests for dose-time expansion of schedules into dated doses."""

from __future__ import annotations

from datetime import date, datetime, time

import pytest

from eyemate.reminders.generator import dose_times_for_date, plan_doses
from eyemate.reminders.models import DoseTime, FrequencyType, MedicationSchedule

pytestmark = pytest.mark.unit

START = date(2026, 3, 2)


def _schedule(**overrides) -> MedicationSchedule:
    defaults = dict(
        schedule_id="SCHED1",
        patient_id="PAT1",
        prescription_id="RX1",
        medication_id="MED1",
        frequency_type=FrequencyType.FIXED_TIMES,
        start_date=START,
    )
    defaults.update(overrides)
    return MedicationSchedule(**defaults)


def _dose_time(hour: int, minute: int = 0, order: int = 1, active: bool = True) -> DoseTime:
    return DoseTime(
        dose_time_id=f"DOSE{order}",
        schedule_id="SCHED1",
        dose_time=time(hour, minute),
        dose_label=f"Dose {order}",
        dose_order=order,
        is_active=active,
    )


class TestFixedTimes:
    def test_two_doses_over_seven_days(self):
        planned = plan_doses(_schedule(), [_dose_time(8, order=1), _dose_time(20, order=2)], START)

        assert len(planned) == 14
        for offset in range(7):
            day = planned[offset * 2].scheduled_datetime.date()
            assert [p.scheduled_datetime.time() for p in planned[offset * 2 : offset * 2 + 2]] == [
                time(8, 0),
                time(20, 0),
            ]
            assert day == date(2026, 3, 2 + offset)

    def test_sleep_window_omits_night_dose(self):
        schedule = _schedule(
            sleep_mode_enabled=True,
            sleep_start_time=time(22, 0),
            sleep_end_time=time(6, 0),
            sleep_skip_dose=True,
        )
        dose_times = [_dose_time(8, order=1), _dose_time(20, order=2), _dose_time(23, order=3)]

        planned = plan_doses(schedule, dose_times, START)

        assert len(planned) == 14
        assert all(p.scheduled_datetime.time() != time(23, 0) for p in planned)

    def test_sleep_window_without_skip_keeps_dose(self):
        schedule = _schedule(sleep_mode_enabled=True, sleep_skip_dose=False)
        planned = dose_times_for_date(schedule, [_dose_time(23)], START)
        assert [p.scheduled_datetime for p in planned] == [datetime(2026, 3, 2, 23, 0)]

    def test_inactive_dose_times_are_ignored(self):
        planned = dose_times_for_date(
            _schedule(), [_dose_time(8, order=1), _dose_time(12, order=2, active=False)], START
        )
        assert len(planned) == 1

    def test_sorted_by_dose_order_and_sequence_follows_it(self):
        planned = dose_times_for_date(
            _schedule(), [_dose_time(20, order=2), _dose_time(8, order=1)], START
        )
        assert [p.dose_sequence for p in planned] == [1, 2]
        assert [p.dose_time_id for p in planned] == ["DOSE1", "DOSE2"]


class TestInterval:
    def test_every_eight_hours(self):
        schedule = _schedule(frequency_type=FrequencyType.INTERVAL, interval_hours=8)
        planned = dose_times_for_date(schedule, [], START)

        assert [p.scheduled_datetime for p in planned] == [
            datetime(2026, 3, 2, 8, 0),
            datetime(2026, 3, 2, 16, 0),
            datetime(2026, 3, 2, 0, 0),
        ]
        assert [p.dose_sequence for p in planned] == [1, 2, 3]
        assert [p.dose_label for p in planned] == ["Dose 1", "Dose 2", "Dose 3"]
        assert all(p.dose_time_id is None for p in planned)

    def test_sleep_window_drops_slot_but_keeps_numbering(self):
        schedule = _schedule(
            frequency_type=FrequencyType.INTERVAL,
            interval_hours=8,
            sleep_mode_enabled=True,
            sleep_start_time=time(22, 0),
            sleep_end_time=time(6, 0),
        )
        planned = dose_times_for_date(schedule, [], START)

        assert [p.scheduled_datetime.time() for p in planned] == [time(8, 0), time(16, 0)]
        assert [p.dose_sequence for p in planned] == [1, 2]

    def test_fractional_interval(self):
        schedule = _schedule(frequency_type=FrequencyType.INTERVAL, interval_hours=5)
        planned = dose_times_for_date(schedule, [], START)
        assert len(planned) == 4
        assert planned[1].scheduled_datetime.time() == time(13, 0)

    def test_missing_interval_generates_nothing(self):
        schedule = _schedule(frequency_type=FrequencyType.INTERVAL, interval_hours=None)
        assert dose_times_for_date(schedule, [], START) == []


def test_custom_frequency_generates_nothing():
    schedule = _schedule(frequency_type=FrequencyType.CUSTOM)
    assert plan_doses(schedule, [_dose_time(8)], START) == []


def test_end_date_truncates_window():
    schedule = _schedule(end_date=date(2026, 3, 4))
    planned = plan_doses(schedule, [_dose_time(8)], START)
    assert [p.scheduled_datetime.date() for p in planned] == [
        date(2026, 3, 2),
        date(2026, 3, 3),
        date(2026, 3, 4),
    ]
