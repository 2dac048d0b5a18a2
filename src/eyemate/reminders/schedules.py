"""Medication schedule store: create, patch, list and delete schedules."""

from __future__ import annotations

import logging
from datetime import time
from typing import Any

import asyncpg

from eyemate.db import transaction
from eyemate.errors import NotFoundError
from eyemate.ids import DOSE_TIME_PREFIX, SCHEDULE_PREFIX, generate_id
from eyemate.reminders._helpers import _parse_input, _row_to_dict, _set_clause
from eyemate.reminders.generator import DEFAULT_LOOKAHEAD_DAYS, generate_upcoming_logs
from eyemate.reminders.models import (
    DoseTime,
    FrequencyType,
    MedicationSchedule,
    ScheduleDefinition,
    SchedulePatch,
)

logger = logging.getLogger(__name__)


async def _require_schedule(conn: Any, patient_id: str, schedule_id: str) -> asyncpg.Record:
    row = await conn.fetchrow(
        """
        SELECT * FROM medication_schedules
        WHERE schedule_id = $1 AND patient_id = $2
        FOR UPDATE
        """,
        schedule_id,
        patient_id,
    )
    if row is None:
        raise NotFoundError(f"Schedule {schedule_id} not found", schedule_id=schedule_id)
    return row


async def create_schedule(
    pool: asyncpg.Pool,
    patient_id: str,
    definition: ScheduleDefinition | dict[str, Any],
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
) -> dict[str, Any]:
    """Create a schedule for an active prescription and materialize its doses.

    The schedule, its dose times and the first *lookahead_days* of dose logs
    are written in one transaction.
    """
    spec = _parse_input(ScheduleDefinition, definition)

    async with transaction(pool) as conn:
        prescription = await conn.fetchrow(
            """
            SELECT prescription_id, medication_id FROM patient_medications
            WHERE prescription_id = $1 AND patient_id = $2 AND status = 'active'
            """,
            spec.prescription_id,
            patient_id,
        )
        if prescription is None:
            raise NotFoundError(
                f"No active prescription {spec.prescription_id} for patient {patient_id}",
                prescription_id=spec.prescription_id,
            )

        schedule = MedicationSchedule(
            schedule_id=generate_id(SCHEDULE_PREFIX),
            patient_id=patient_id,
            prescription_id=spec.prescription_id,
            medication_id=spec.medication_id or prescription["medication_id"],
            frequency_type=spec.frequency_type,
            start_date=spec.start_date,
            interval_hours=spec.interval_hours,
            times_per_day=spec.times_per_day,
            calculate_from_actual=spec.calculate_from_actual,
            dose_spacing_minutes=spec.dose_spacing_minutes,
            end_date=spec.end_date,
            sleep_mode_enabled=spec.sleep_mode_enabled,
            sleep_start_time=spec.sleep_start_time,
            sleep_end_time=spec.sleep_end_time,
            sleep_skip_dose=spec.sleep_skip_dose,
            reminder_advance_minutes=spec.reminder_advance_minutes,
            notes=spec.notes,
        )
        await conn.execute(
            """
            INSERT INTO medication_schedules (
                schedule_id, patient_id, prescription_id, medication_id,
                frequency_type, interval_hours, times_per_day,
                calculate_from_actual, dose_spacing_minutes, start_date, end_date,
                sleep_mode_enabled, sleep_start_time, sleep_end_time, sleep_skip_dose,
                reminder_advance_minutes, is_active, notes
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11,
                      $12, $13, $14, $15, $16, true, $17)
            """,
            schedule.schedule_id,
            schedule.patient_id,
            schedule.prescription_id,
            schedule.medication_id,
            schedule.frequency_type.value,
            schedule.interval_hours,
            schedule.times_per_day,
            schedule.calculate_from_actual,
            schedule.dose_spacing_minutes,
            schedule.start_date,
            schedule.end_date,
            schedule.sleep_mode_enabled,
            schedule.sleep_start_time,
            schedule.sleep_end_time,
            schedule.sleep_skip_dose,
            schedule.reminder_advance_minutes,
            schedule.notes,
        )

        dose_times: list[DoseTime] = []
        if schedule.frequency_type == FrequencyType.FIXED_TIMES:
            for order, item in enumerate(spec.dose_times, start=1):
                dose_times.append(
                    DoseTime(
                        dose_time_id=generate_id(DOSE_TIME_PREFIX),
                        schedule_id=schedule.schedule_id,
                        dose_time=item.dose_time,
                        dose_label=item.dose_label or f"Dose {order}",
                        dose_order=order,
                    )
                )
            if dose_times:
                await conn.executemany(
                    """
                    INSERT INTO medication_dose_times (
                        dose_time_id, schedule_id, dose_time, dose_label, dose_order, is_active
                    ) VALUES ($1, $2, $3, $4, $5, true)
                    """,
                    [
                        (
                            dt.dose_time_id,
                            dt.schedule_id,
                            dt.dose_time,
                            dt.dose_label,
                            dt.dose_order,
                        )
                        for dt in dose_times
                    ],
                )

        log_ids = await generate_upcoming_logs(
            conn, schedule, dose_times, schedule.start_date, lookahead_days
        )

    logger.info(
        "Created %s schedule %s for patient %s with %d dose time(s)",
        schedule.frequency_type.value,
        schedule.schedule_id,
        patient_id,
        len(dose_times),
    )
    return {"schedule_id": schedule.schedule_id, "generated_logs": len(log_ids)}


async def update_schedule(
    pool: asyncpg.Pool,
    patient_id: str,
    schedule_id: str,
    patch: SchedulePatch | dict[str, Any],
) -> dict[str, Any]:
    """Write only the fields present in *patch*.

    An explicit ``None`` clears a nullable field such as ``end_date``.
    Already generated dose logs are not regenerated.
    """
    changes = _parse_input(SchedulePatch, patch).changes()

    async with transaction(pool) as conn:
        await _require_schedule(conn, patient_id, schedule_id)
        if changes:
            assignments, values = _set_clause(changes, first_param=2)
            await conn.execute(
                f"""
                UPDATE medication_schedules
                SET {assignments}, updated_at = now()
                WHERE schedule_id = $1
                """,
                schedule_id,
                *values,
            )

    logger.info("Updated schedule %s: %s", schedule_id, sorted(changes))
    return {"schedule_id": schedule_id, "updated_fields": sorted(changes)}


async def update_sleep_mode(
    pool: asyncpg.Pool,
    patient_id: str,
    schedule_id: str,
    enabled: bool,
    start: time | None = None,
    end: time | None = None,
    skip_dose: bool | None = None,
) -> dict[str, Any]:
    """Toggle sleep mode; window bounds and skip flag change only when given."""
    patch: dict[str, Any] = {"sleep_mode_enabled": enabled}
    if start is not None:
        patch["sleep_start_time"] = start
    if end is not None:
        patch["sleep_end_time"] = end
    if skip_dose is not None:
        patch["sleep_skip_dose"] = skip_dose
    await update_schedule(pool, patient_id, schedule_id, patch)
    return {"schedule_id": schedule_id, "sleep_mode_enabled": enabled}


async def list_schedules(
    pool: asyncpg.Pool,
    patient_id: str,
    is_active: bool | None = None,
) -> dict[str, Any]:
    query = """
        SELECT ms.*, m.name AS medication_name, m.generic_name
        FROM medication_schedules ms
        LEFT JOIN medications m ON m.medication_id = ms.medication_id
        WHERE ms.patient_id = $1
    """
    params: list[Any] = [patient_id]
    if is_active is not None:
        query += " AND ms.is_active = $2"
        params.append(is_active)
    query += " ORDER BY ms.created_at DESC"

    async with pool.acquire() as conn:
        rows = await conn.fetch(query, *params)
        dose_rows = await conn.fetch(
            """
            SELECT * FROM medication_dose_times
            WHERE schedule_id = ANY($1::text[]) AND is_active = true
            ORDER BY schedule_id, dose_order
            """,
            [r["schedule_id"] for r in rows],
        )

    by_schedule: dict[str, list[dict[str, Any]]] = {}
    for dose in dose_rows:
        by_schedule.setdefault(dose["schedule_id"], []).append(_row_to_dict(dose))

    schedules = []
    for row in rows:
        item = _row_to_dict(row)
        item["dose_times"] = by_schedule.get(row["schedule_id"], [])
        schedules.append(item)
    return {"schedules": schedules, "total_count": len(schedules)}


async def delete_schedule(pool: asyncpg.Pool, patient_id: str, schedule_id: str) -> None:
    """Delete a schedule; its dose times and logs go with it."""
    async with transaction(pool) as conn:
        await _require_schedule(conn, patient_id, schedule_id)
        await conn.execute("DELETE FROM medication_schedules WHERE schedule_id = $1", schedule_id)
    logger.info("Deleted schedule %s for patient %s", schedule_id, patient_id)
