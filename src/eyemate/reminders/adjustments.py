"""Schedule time adjustments, for one day or for good."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

import asyncpg

from eyemate.db import transaction
from eyemate.errors import NotFoundError, ValidationError
from eyemate.reminders._helpers import _affected_rows, local_now, wall_clock
from eyemate.reminders.models import AdjustmentType
from eyemate.reminders.timeslots import shift_time_of_day

logger = logging.getLogger(__name__)


async def adjust_dose_time(
    pool: asyncpg.Pool,
    patient_id: str,
    schedule_id: str,
    adjustment_type: AdjustmentType | str,
    minutes: int,
    reason: str | None = None,
    apply_date: date | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Shift a schedule's doses by *minutes* (negative moves them earlier).

    ``one_time`` moves the pending doses of *apply_date* (default today) and
    leaves the schedule's dose times alone.  ``permanent`` rewrites every
    dose time of the schedule, wrapping within 24 hours, and moves every
    pending dose scheduled at or after *now*.  Shifted logs are flagged
    ``is_adjusted`` with the adjustment metadata.
    """
    try:
        kind = AdjustmentType(adjustment_type)
    except ValueError:
        raise ValidationError(
            f"Unsupported adjustment type: {adjustment_type!r}",
            adjustment_type=str(adjustment_type),
        ) from None

    now = wall_clock(now) if now is not None else local_now()

    async with transaction(pool) as conn:
        exists = await conn.fetchval(
            """
            SELECT 1 FROM medication_schedules
            WHERE schedule_id = $1 AND patient_id = $2
            FOR UPDATE
            """,
            schedule_id,
            patient_id,
        )
        if not exists:
            raise NotFoundError(f"Schedule {schedule_id} not found", schedule_id=schedule_id)

        if kind == AdjustmentType.ONE_TIME:
            status = await conn.execute(
                """
                UPDATE medication_logs
                SET scheduled_datetime = scheduled_datetime + make_interval(mins => $2),
                    is_adjusted = true,
                    adjustment_type = 'one_time',
                    adjustment_minutes = $2,
                    adjustment_reason = $3,
                    updated_at = now()
                WHERE schedule_id = $1
                  AND scheduled_datetime::date = $4
                  AND status = 'pending'
                """,
                schedule_id,
                minutes,
                reason,
                apply_date or now.date(),
            )
        else:
            dose_times = await conn.fetch(
                "SELECT dose_time_id, dose_time FROM medication_dose_times WHERE schedule_id = $1",
                schedule_id,
            )
            for dose_time in dose_times:
                await conn.execute(
                    """
                    UPDATE medication_dose_times SET dose_time = $2, updated_at = now()
                    WHERE dose_time_id = $1
                    """,
                    dose_time["dose_time_id"],
                    shift_time_of_day(dose_time["dose_time"], minutes),
                )
            status = await conn.execute(
                """
                UPDATE medication_logs
                SET scheduled_datetime = scheduled_datetime + make_interval(mins => $2),
                    is_adjusted = true,
                    adjustment_type = 'permanent',
                    adjustment_minutes = $2,
                    adjustment_reason = $3,
                    updated_at = now()
                WHERE schedule_id = $1
                  AND status = 'pending'
                  AND scheduled_datetime >= $4
                """,
                schedule_id,
                minutes,
                reason,
                now,
            )

    adjusted = _affected_rows(status)
    logger.info(
        "Schedule %s adjusted %s by %+d min (%d log(s))",
        schedule_id,
        kind.value,
        minutes,
        adjusted,
    )
    return {
        "schedule_id": schedule_id,
        "adjustment_type": kind.value,
        "adjustment_minutes": minutes,
        "adjusted_logs": adjusted,
    }
