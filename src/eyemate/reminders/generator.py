"""Dose-time generation: expand a schedule into concrete dated doses.

``fixed_times`` schedules produce one dose per active dose time per day.
``interval`` schedules start every day at 08:00 and step by
``interval_hours``, producing ``floor(24 / interval_hours)`` slots.  Doses
that land inside an active sleep window are omitted entirely when the
schedule has ``sleep_skip_dose`` set: they never exist, they are not
"skipped".
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

import asyncpg

from eyemate.ids import LOG_PREFIX, generate_id
from eyemate.reminders.models import DoseTime, FrequencyType, MedicationSchedule
from eyemate.reminders.timeslots import is_within_sleep_window

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 7
INTERVAL_ANCHOR = time(8, 0)


@dataclass(frozen=True)
class PlannedDose:
    """A dose occurrence computed from a schedule but not yet stored."""

    scheduled_datetime: datetime
    dose_sequence: int
    dose_time_id: str | None = None
    dose_label: str | None = None


def _suppressed_by_sleep(schedule: MedicationSchedule, value: time) -> bool:
    return schedule.sleep_skip_dose and is_within_sleep_window(
        value,
        schedule.sleep_mode_enabled,
        schedule.sleep_start_time,
        schedule.sleep_end_time,
    )


def dose_times_for_date(
    schedule: MedicationSchedule,
    dose_times: list[DoseTime],
    day: date,
) -> list[PlannedDose]:
    """Return the doses *schedule* calls for on *day*, in daily order."""
    if schedule.end_date is not None and day > schedule.end_date:
        return []

    planned: list[PlannedDose] = []

    if schedule.frequency_type == FrequencyType.FIXED_TIMES:
        active = sorted((dt for dt in dose_times if dt.is_active), key=lambda dt: dt.dose_order)
        for dose_time in active:
            if _suppressed_by_sleep(schedule, dose_time.dose_time):
                continue
            planned.append(
                PlannedDose(
                    scheduled_datetime=datetime.combine(day, dose_time.dose_time),
                    dose_sequence=dose_time.dose_order,
                    dose_time_id=dose_time.dose_time_id,
                    dose_label=dose_time.dose_label,
                )
            )

    elif schedule.frequency_type == FrequencyType.INTERVAL:
        interval_hours = schedule.interval_hours or 0
        if interval_hours <= 0:
            return []
        step = timedelta(hours=interval_hours)
        clock = datetime.combine(day, INTERVAL_ANCHOR)
        for index in range(math.floor(24 / interval_hours)):
            # The clock advances even for omitted slots; a slot that rolls
            # past midnight keeps its time of day on the same calendar date.
            slot_time = clock.time()
            clock += step
            if _suppressed_by_sleep(schedule, slot_time):
                continue
            planned.append(
                PlannedDose(
                    scheduled_datetime=datetime.combine(day, slot_time),
                    dose_sequence=index + 1,
                    dose_label=f"Dose {index + 1}",
                )
            )

    return planned


def plan_doses(
    schedule: MedicationSchedule,
    dose_times: list[DoseTime],
    start_date: date,
    days: int = DEFAULT_LOOKAHEAD_DAYS,
) -> list[PlannedDose]:
    """Expand *schedule* over *days* calendar days starting at *start_date*."""
    planned: list[PlannedDose] = []
    for offset in range(days):
        planned.extend(dose_times_for_date(schedule, dose_times, start_date + timedelta(offset)))
    return planned


async def fetch_active_dose_times(conn: Any, schedule_id: str) -> list[DoseTime]:
    rows = await conn.fetch(
        """
        SELECT * FROM medication_dose_times
        WHERE schedule_id = $1 AND is_active = true
        ORDER BY dose_order
        """,
        schedule_id,
    )
    return [DoseTime.from_row(r) for r in rows]


async def generate_upcoming_logs(
    conn: asyncpg.Connection,
    schedule: MedicationSchedule,
    dose_times: list[DoseTime],
    start_date: date | None = None,
    days: int = DEFAULT_LOOKAHEAD_DAYS,
) -> list[str]:
    """Insert pending dose logs for the lookahead window and return their ids.

    Must run on the caller's transaction; repeated calls over the same range
    create duplicate rows.
    """
    planned = plan_doses(schedule, dose_times, start_date or schedule.start_date, days)
    records = [
        (
            generate_id(LOG_PREFIX),
            schedule.schedule_id,
            dose.dose_time_id,
            schedule.patient_id,
            schedule.medication_id,
            dose.scheduled_datetime,
            dose.dose_sequence,
        )
        for dose in planned
    ]
    if records:
        await conn.executemany(
            """
            INSERT INTO medication_logs (
                log_id, schedule_id, dose_time_id, patient_id, medication_id,
                scheduled_datetime, status, dose_sequence
            ) VALUES ($1, $2, $3, $4, $5, $6, 'pending', $7)
            """,
            records,
        )
    logger.info(
        "Generated %d dose log(s) for schedule %s over %d day(s)",
        len(records),
        schedule.schedule_id,
        days,
    )
    return [record[0] for record in records]
