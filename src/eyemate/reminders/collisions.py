"""Dose-spacing collision detection across a patient's active schedules."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time
from typing import Any

import asyncpg

from eyemate.reminders._helpers import _json_safe
from eyemate.reminders.timeslots import parse_time_of_day

logger = logging.getLogger(__name__)

# Times of day are compared on one shared calendar date, so 23:55 and 00:05
# are 1430 minutes apart rather than 10.
_REFERENCE_DATE = date(2000, 1, 1)


def _on_reference_date(value: time) -> datetime:
    return datetime.combine(_REFERENCE_DATE, value)


def find_collisions(proposed_time: time | str, existing: list[Any]) -> list[dict[str, Any]]:
    """Return every existing dose time closer to *proposed_time* than its own spacing.

    *existing* rows need ``schedule_id``, ``medication_name``, ``dose_time``,
    ``dose_label`` and ``dose_spacing_minutes``.  Only the stored dose's
    spacing is consulted; the proposed dose's own requirement is ignored.
    """
    proposed = _on_reference_date(parse_time_of_day(proposed_time))
    collisions: list[dict[str, Any]] = []
    for row in existing:
        existing_time = parse_time_of_day(row["dose_time"])
        spacing = row["dose_spacing_minutes"] or 0
        diff_minutes = abs((proposed - _on_reference_date(existing_time)).total_seconds()) / 60
        if diff_minutes < spacing:
            collisions.append(
                {
                    "schedule_id": row["schedule_id"],
                    "medication_name": row["medication_name"],
                    "existing_time": existing_time.isoformat(),
                    "dose_label": row["dose_label"],
                    "required_spacing": spacing,
                    "actual_spacing": math.floor(diff_minutes),
                }
            )
    return collisions


async def check_dose_collision(
    pool: asyncpg.Pool,
    patient_id: str,
    proposed_time: time | str,
    date: date | None = None,
    exclude_schedule_id: str | None = None,
) -> dict[str, Any]:
    """Check *proposed_time* against the patient's other active dose times.

    ``date`` is accepted for callers that pass one; the comparison itself is
    on time of day only.
    """
    proposed = parse_time_of_day(proposed_time)

    query = """
        SELECT ms.schedule_id, ms.dose_spacing_minutes,
               mdt.dose_time, mdt.dose_label,
               m.name AS medication_name
        FROM medication_schedules ms
        JOIN medication_dose_times mdt ON mdt.schedule_id = ms.schedule_id
        LEFT JOIN medications m ON m.medication_id = ms.medication_id
        WHERE ms.patient_id = $1
          AND ms.is_active = true
          AND mdt.is_active = true
    """
    params: list[Any] = [patient_id]
    if exclude_schedule_id is not None:
        query += " AND ms.schedule_id <> $2"
        params.append(exclude_schedule_id)
    query += " ORDER BY mdt.dose_time"

    async with pool.acquire() as conn:
        rows = await conn.fetch(query, *params)

    collisions = find_collisions(proposed, rows)
    if collisions:
        logger.info(
            "Proposed dose time %s for patient %s collides with %d dose(s)",
            proposed.isoformat(),
            patient_id,
            len(collisions),
        )
    return {
        "has_collision": bool(collisions),
        "collisions": collisions,
        "proposed_time": _json_safe(proposed),
    }
