"""Dose log state machine: confirm, skip, snooze and upcoming-dose reads.

State transitions::

    pending ──► completed | skipped | snoozed
    snoozed ──► completed | skipped | snoozed
    completed, skipped  (terminal)

Every mutation locks the log row with ``SELECT ... FOR UPDATE`` inside one
transaction, so two racing confirms on the same log serialize and the
second sees the terminal state.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

import asyncpg

from eyemate.core.logging import dose_context
from eyemate.db import transaction
from eyemate.errors import (
    AlreadyCompletedError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    SnoozeLimitExceededError,
    ValidationError,
)
from eyemate.ids import LOG_PREFIX, generate_id
from eyemate.reminders._helpers import _json_safe, _row_to_dict, local_now, wall_clock
from eyemate.reminders.models import DoseStatus, FrequencyType
from eyemate.reminders.notifications import fetch_or_create_settings

logger = logging.getLogger(__name__)

_VALID_TRANSITIONS: dict[DoseStatus, set[DoseStatus]] = {
    DoseStatus.PENDING: {DoseStatus.COMPLETED, DoseStatus.SKIPPED, DoseStatus.SNOOZED},
    DoseStatus.SNOOZED: {DoseStatus.COMPLETED, DoseStatus.SKIPPED, DoseStatus.SNOOZED},
    DoseStatus.COMPLETED: set(),
    DoseStatus.SKIPPED: set(),
}


def validate_transition(log_id: str, current: DoseStatus, target: DoseStatus) -> None:
    """Validate that a dose log may move from *current* to *target*.

    Raises AlreadyCompletedError when the log was already taken and
    InvalidStateError for any other disallowed move.
    """
    if target in _VALID_TRANSITIONS.get(current, set()):
        return
    if current == DoseStatus.COMPLETED:
        raise AlreadyCompletedError(
            f"Dose {log_id} has already been taken",
            log_id=log_id,
            status=current.value,
        )
    raise InvalidStateError(
        f"Cannot transition dose {log_id} from '{current.value}' to '{target.value}'",
        log_id=log_id,
        status=current.value,
    )


async def _lock_log(conn: asyncpg.Connection, patient_id: str, log_id: str) -> asyncpg.Record:
    """Fetch and row-lock a patient's dose log together with its schedule rules."""
    row = await conn.fetchrow(
        """
        SELECT ml.*,
               ms.frequency_type, ms.interval_hours, ms.times_per_day,
               ms.calculate_from_actual, ms.dose_spacing_minutes
        FROM medication_logs ml
        JOIN medication_schedules ms ON ms.schedule_id = ml.schedule_id
        WHERE ml.log_id = $1 AND ml.patient_id = $2
        FOR UPDATE OF ml
        """,
        log_id,
        patient_id,
    )
    if row is None:
        raise NotFoundError(f"Dose log {log_id} not found", log_id=log_id)
    return row


def _with_dose_context(
    func: Callable[..., Awaitable[dict[str, Any]]],
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Run a dose operation with its patient and log ids bound for logging."""

    @functools.wraps(func)
    async def wrapper(
        pool: asyncpg.Pool, patient_id: str, log_id: str, *args: Any, **kwargs: Any
    ) -> dict[str, Any]:
        with dose_context(patient_id=patient_id, log_id=log_id):
            return await func(pool, patient_id, log_id, *args, **kwargs)

    return wrapper


def _chains_next_dose(log: Any) -> bool:
    """True when confirming *log* re-anchors the next interval dose on real intake."""
    return bool(
        log["calculate_from_actual"]
        and log["frequency_type"] == FrequencyType.INTERVAL
        and log["interval_hours"]
        and log["dose_sequence"] == log["times_per_day"]
    )


@_with_dose_context
async def confirm_dose(
    pool: asyncpg.Pool,
    patient_id: str,
    log_id: str,
    actual_datetime: datetime | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Mark a dose as taken.

    Records a post-dose wait window for spaced multi-dose sequences and, for
    interval schedules computed from actual intake, inserts the next pending
    dose at ``actual + interval_hours`` in the same transaction.
    """
    actual = wall_clock(actual_datetime) if actual_datetime is not None else local_now()
    next_log_id: str | None = None

    async with transaction(pool) as conn:
        log = await _lock_log(conn, patient_id, log_id)
        validate_transition(log_id, DoseStatus(log["status"]), DoseStatus.COMPLETED)

        wait_started_at = wait_completed_at = None
        spacing = log["dose_spacing_minutes"] or 0
        if log["dose_sequence"] > 1 and spacing > 0:
            wait_started_at = actual
            wait_completed_at = actual + timedelta(minutes=spacing)

        await conn.execute(
            """
            UPDATE medication_logs
            SET status = 'completed',
                actual_datetime = $2,
                notes = COALESCE($3, notes),
                wait_started_at = $4,
                wait_completed_at = $5,
                updated_at = now()
            WHERE log_id = $1
            """,
            log_id,
            actual,
            notes,
            wait_started_at,
            wait_completed_at,
        )

        if _chains_next_dose(log):
            next_log_id = generate_id(LOG_PREFIX)
            await conn.execute(
                """
                INSERT INTO medication_logs (
                    log_id, schedule_id, dose_time_id, patient_id, medication_id,
                    scheduled_datetime, status, dose_sequence
                ) VALUES ($1, $2, NULL, $3, $4, $5, 'pending', 1)
                """,
                next_log_id,
                log["schedule_id"],
                patient_id,
                log["medication_id"],
                actual + timedelta(hours=float(log["interval_hours"])),
            )

    logger.info(
        "Dose %s confirmed for patient %s at %s (next: %s)",
        log_id,
        patient_id,
        actual.isoformat(),
        next_log_id,
    )
    return {
        "log_id": log_id,
        "actual_datetime": _json_safe(actual),
        "next_log_id": next_log_id,
    }


@_with_dose_context
async def skip_dose(
    pool: asyncpg.Pool,
    patient_id: str,
    log_id: str,
    reason: str,
    notes: str | None = None,
) -> dict[str, Any]:
    async with transaction(pool) as conn:
        log = await _lock_log(conn, patient_id, log_id)
        validate_transition(log_id, DoseStatus(log["status"]), DoseStatus.SKIPPED)
        await conn.execute(
            """
            UPDATE medication_logs
            SET status = 'skipped', skip_reason = $2, skip_notes = $3, updated_at = now()
            WHERE log_id = $1
            """,
            log_id,
            reason,
            notes,
        )

    logger.info("Dose %s skipped for patient %s: %s", log_id, patient_id, reason)
    return {"log_id": log_id, "status": DoseStatus.SKIPPED.value}


@_with_dose_context
async def snooze_dose(
    pool: asyncpg.Pool,
    patient_id: str,
    log_id: str,
    minutes: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Defer a dose reminder, bounded by the patient's ``max_snooze_count``.

    *minutes* defaults to the patient's ``snooze_duration_minutes``.
    """
    now = wall_clock(now) if now is not None else local_now()

    async with transaction(pool) as conn:
        log = await _lock_log(conn, patient_id, log_id)
        validate_transition(log_id, DoseStatus(log["status"]), DoseStatus.SNOOZED)

        settings = await fetch_or_create_settings(conn, patient_id)
        if not settings.snooze_enabled:
            raise LimitExceededError(
                f"Snoozing is disabled for patient {patient_id}", log_id=log_id
            )
        if log["snooze_count"] >= settings.max_snooze_count:
            raise SnoozeLimitExceededError(log_id, settings.max_snooze_count)

        delay = minutes if minutes is not None else settings.snooze_duration_minutes
        if delay <= 0:
            raise ValidationError(
                f"Snooze duration must be positive, got {delay}", log_id=log_id
            )
        snooze_until = now + timedelta(minutes=delay)
        snooze_count = await conn.fetchval(
            """
            UPDATE medication_logs
            SET status = 'snoozed',
                snooze_count = snooze_count + 1,
                snooze_until = $2,
                updated_at = now()
            WHERE log_id = $1
            RETURNING snooze_count
            """,
            log_id,
            snooze_until,
        )

    logger.info(
        "Dose %s snoozed for patient %s until %s (%d/%d)",
        log_id,
        patient_id,
        snooze_until.isoformat(),
        snooze_count,
        settings.max_snooze_count,
    )
    return {
        "log_id": log_id,
        "snooze_until": _json_safe(snooze_until),
        "snooze_count": snooze_count,
    }


async def get_upcoming_doses(
    pool: asyncpg.Pool,
    patient_id: str,
    hours_lookahead: int = 24,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Unresolved doses due within *hours_lookahead* hours, earliest first.

    Overdue doses that are still pending or snoozed are included.  Each dose
    carries the prescribed ``eye`` so the app can say which eye it is for.
    """
    now = wall_clock(now) if now is not None else local_now()
    horizon = now + timedelta(hours=hours_lookahead)

    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT ml.log_id, ml.schedule_id, ml.scheduled_datetime, ml.status,
                   ml.snooze_until, ml.snooze_count, ml.dose_sequence,
                   m.name AS medication_name, m.generic_name,
                   ms.frequency_type, ms.times_per_day, ms.dose_spacing_minutes,
                   dt.dose_label, dt.dose_time, pm.eye
            FROM medication_logs ml
            JOIN medication_schedules ms ON ms.schedule_id = ml.schedule_id
            LEFT JOIN medications m ON m.medication_id = ml.medication_id
            LEFT JOIN medication_dose_times dt ON dt.dose_time_id = ml.dose_time_id
            LEFT JOIN patient_medications pm ON pm.prescription_id = ms.prescription_id
            WHERE ml.patient_id = $1
              AND ml.scheduled_datetime <= $2
              AND ml.status IN ('pending', 'snoozed')
              AND ms.is_active = true
            ORDER BY ml.scheduled_datetime ASC
            """,
            patient_id,
            horizon,
        )

    doses = [_row_to_dict(r) for r in rows]
    return {"upcoming_doses": doses, "total_count": len(doses)}
