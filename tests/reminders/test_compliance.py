"""Tests for slot grouping and status-count aggregation."""

from __future__ import annotations

from datetime import datetime

import pytest

from eyemate.reminders.compliance import (
    overall_compliance,
    slot_status,
    summarize_slots,
    summarize_status_counts,
)
from eyemate.reminders.models import SlotStatus

pytestmark = pytest.mark.unit


def _log(hour: int, status: str, log_id: str = "LOG", minute: int = 0) -> dict:
    return {
        "log_id": f"{log_id}{hour}{minute}",
        "medication_id": "MED1",
        "medication_name": "Latanoprost",
        "scheduled_datetime": datetime(2026, 3, 2, hour, minute),
        "status": status,
        "actual_datetime": None,
    }


class TestSlotStatus:
    @pytest.mark.parametrize(
        ("scheduled", "completed", "expected"),
        [
            (0, 0, SlotStatus.NO_MEDICATION),
            (2, 2, SlotStatus.COMPLETED),
            (3, 1, SlotStatus.PARTIAL),
            (2, 0, SlotStatus.MISSED),
        ],
    )
    def test_status(self, scheduled, completed, expected):
        assert slot_status(scheduled, completed) == expected


class TestSummarizeSlots:
    def test_partial_morning(self):
        logs = [
            _log(8, "completed", minute=0),
            _log(8, "completed", minute=10),
            _log(9, "pending"),
        ]
        slots = summarize_slots(logs)

        morning = slots["morning"]
        assert morning["scheduled_count"] == 3
        assert morning["completed_count"] == 2
        assert morning["status"] == "partial"
        assert morning["compliance_rate"] == 66.67
        assert [m["scheduled_time"] for m in morning["medications"]] == [
            "08:00:00",
            "08:10:00",
            "09:00:00",
        ]

    def test_empty_slots_present_with_zero_rate(self):
        slots = summarize_slots([])

        assert set(slots) == {"morning", "afternoon", "evening"}
        for slot in slots.values():
            assert slot["status"] == "no_medication"
            assert slot["compliance_rate"] == 0
            assert slot["medications"] == []
        assert overall_compliance(slots) == 0

    def test_night_dose_counts_as_evening(self):
        slots = summarize_slots([_log(2, "completed"), _log(13, "skipped")])

        assert slots["evening"]["status"] == "completed"
        assert slots["afternoon"]["status"] == "missed"
        assert slots["morning"]["status"] == "no_medication"
        assert overall_compliance(slots) == 50.0


class TestSummarizeStatusCounts:
    def _row(self, status: str, count: int, overdue: int = 0, schedule_id: str = "SCHED1"):
        return {
            "schedule_id": schedule_id,
            "medication_id": "MED1",
            "medication_name": "Latanoprost",
            "status": status,
            "count": count,
            "overdue": overdue,
        }

    def test_overdue_unresolved_doses_are_missed(self):
        report = summarize_status_counts(
            [
                self._row("completed", 6),
                self._row("skipped", 1),
                self._row("pending", 5, overdue=2),
                self._row("snoozed", 2, overdue=1),
            ]
        )

        assert report["summary"] == {
            "total_doses": 14,
            "completed": 6,
            "skipped": 1,
            "snoozed": 1,
            "pending": 3,
            "missed": 3,
            "compliance_rate": 42.86,
        }

    def test_per_schedule_breakdown(self):
        report = summarize_status_counts(
            [
                self._row("completed", 2, schedule_id="SCHED1"),
                self._row("completed", 1, schedule_id="SCHED2"),
                self._row("pending", 1, schedule_id="SCHED2"),
            ]
        )

        by_schedule = {entry["schedule_id"]: entry for entry in report["by_medication"]}
        assert by_schedule["SCHED1"]["compliance_rate"] == 100.0
        assert by_schedule["SCHED2"]["total_doses"] == 2
        assert by_schedule["SCHED2"]["compliance_rate"] == 50.0

    def test_empty_range(self):
        report = summarize_status_counts([])
        assert report["summary"]["total_doses"] == 0
        assert report["summary"]["compliance_rate"] == 0
        assert report["by_medication"] == []
