"""Notification settings, push tokens, history, and the due-reminder pass.

``process_due_reminders`` is the single entry point an external periodic
invoker calls (once a minute); it owns no timers of its own.  Push delivery
is best-effort: sender failures are logged and never reach the caller.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

import asyncpg
from opentelemetry import trace

from eyemate.core.logging import dose_context
from eyemate.db import transaction
from eyemate.errors import ValidationError
from eyemate.ids import SETTINGS_PREFIX, TOKEN_PREFIX, generate_id
from eyemate.push import PushMessage, PushSender, is_expo_push_token
from eyemate.reminders._helpers import (
    _parse_input,
    _row_to_dict,
    _set_clause,
    local_now,
    wall_clock,
)
from eyemate.reminders.models import (
    NotificationSettings,
    NotificationSettingsPatch,
)
from eyemate.reminders.timeslots import is_within_sleep_window

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Time for your eye drops"

# How long past its scheduled time a pending dose still gets its first
# reminder.  Covers one tick of a once-a-minute invoker.
DUE_GRACE = timedelta(minutes=1)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


async def fetch_or_create_settings(conn: Any, patient_id: str) -> NotificationSettings:
    """Return the patient's settings, inserting the default row on first use."""
    await conn.execute(
        """
        INSERT INTO notification_settings (setting_id, patient_id)
        VALUES ($1, $2)
        ON CONFLICT (patient_id) DO NOTHING
        """,
        generate_id(SETTINGS_PREFIX),
        patient_id,
    )
    row = await conn.fetchrow(
        "SELECT * FROM notification_settings WHERE patient_id = $1",
        patient_id,
    )
    return NotificationSettings.from_row(row)


async def get_notification_settings(pool: asyncpg.Pool, patient_id: str) -> NotificationSettings:
    async with transaction(pool) as conn:
        return await fetch_or_create_settings(conn, patient_id)


async def update_notification_settings(
    pool: asyncpg.Pool,
    patient_id: str,
    patch: NotificationSettingsPatch | dict[str, Any],
) -> NotificationSettings:
    """Apply the fields present in *patch*; absent fields keep their value."""
    changes = _parse_input(NotificationSettingsPatch, patch).changes()

    async with transaction(pool) as conn:
        settings = await fetch_or_create_settings(conn, patient_id)
        if not changes:
            return settings
        assignments, values = _set_clause(changes, first_param=2)
        row = await conn.fetchrow(
            f"""
            UPDATE notification_settings
            SET {assignments}, updated_at = now()
            WHERE patient_id = $1
            RETURNING *
            """,
            patient_id,
            *values,
        )

    logger.info("Updated notification settings for %s: %s", patient_id, sorted(changes))
    return NotificationSettings.from_row(row)


def should_send_notification(settings: NotificationSettings, now: datetime) -> bool:
    """Push is allowed when enabled and *now* is outside the quiet-hours window."""
    if not settings.push_enabled:
        return False
    return not is_within_sleep_window(
        now,
        settings.quiet_hours_enabled,
        settings.quiet_hours_start,
        settings.quiet_hours_end,
    )


# ---------------------------------------------------------------------------
# Push tokens and history
# ---------------------------------------------------------------------------


async def register_push_token(
    pool: asyncpg.Pool,
    patient_id: str,
    expo_push_token: str,
    device_type: str | None = None,
    device_name: str | None = None,
) -> dict[str, Any]:
    """Register a device token, re-assigning it if another patient held it."""
    if not is_expo_push_token(expo_push_token):
        raise ValidationError("Invalid Expo push token", expo_push_token=expo_push_token)

    async with transaction(pool) as conn:
        token_id = await conn.fetchval(
            """
            INSERT INTO push_tokens (
                token_id, patient_id, expo_push_token, device_type, device_name,
                is_active, last_used_at
            ) VALUES ($1, $2, $3, $4, $5, true, now())
            ON CONFLICT (expo_push_token) DO UPDATE
            SET patient_id = EXCLUDED.patient_id,
                device_type = EXCLUDED.device_type,
                device_name = EXCLUDED.device_name,
                is_active = true,
                last_used_at = now()
            RETURNING token_id
            """,
            generate_id(TOKEN_PREFIX),
            patient_id,
            expo_push_token,
            device_type,
            device_name,
        )

    logger.info("Push token %s registered for patient %s", token_id, patient_id)
    return {"token_id": token_id, "expo_push_token": expo_push_token}


async def get_notification_history(
    pool: asyncpg.Pool,
    patient_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    notification_type: str | None = None,
    limit: int = 50,
) -> dict[str, Any]:
    conditions = ["patient_id = $1"]
    params: list[Any] = [patient_id]

    if start_date is not None and end_date is not None:
        params.extend([start_date, end_date])
        conditions.append(f"sent_at::date BETWEEN ${len(params) - 1} AND ${len(params)}")
    if notification_type is not None:
        params.append(notification_type)
        conditions.append(f"notification_type = ${len(params)}")
    params.append(limit)

    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT * FROM notification_history
            WHERE {" AND ".join(conditions)}
            ORDER BY sent_at DESC
            LIMIT ${len(params)}
            """,
            *params,
        )

    notifications = [_row_to_dict(r) for r in rows]
    return {"notifications": notifications, "total_count": len(notifications)}


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


async def notify_patient(
    pool: asyncpg.Pool,
    sender: PushSender,
    patient_id: str,
    message: PushMessage,
    now: datetime | None = None,
) -> bool:
    """Send *message* if the patient's settings allow it.

    Returns True when a send was attempted.  Failures in the settings lookup
    or the sender are logged and swallowed.
    """
    now = wall_clock(now) if now is not None else local_now()
    try:
        settings = await get_notification_settings(pool, patient_id)
    except Exception:
        logger.exception("Failed to load notification settings for %s", patient_id)
        return False
    if not should_send_notification(settings, now):
        logger.debug("Push held for patient %s (disabled or quiet hours)", patient_id)
        return False
    try:
        outcome = await sender.send(patient_id, message)
        if not outcome.success:
            logger.info("Push to patient %s not delivered: %s", patient_id, outcome.reason)
    except Exception:
        logger.exception("Failed to notify patient %s", patient_id)
    return True


def _reminder_message(row: Any) -> PushMessage:
    name = row["medication_name"] or "your medication"
    label = row["dose_label"] or f"Dose {row['dose_sequence']}"
    return PushMessage(
        title=REMINDER_TITLE,
        body=f"{name} ({label}) at {row['scheduled_datetime']:%H:%M}",
        data={
            "type": "medication_reminder",
            "log_id": row["log_id"],
            "schedule_id": row["schedule_id"],
            "scheduled_datetime": row["scheduled_datetime"].isoformat(),
        },
    )


async def _claim_reminder(
    pool: asyncpg.Pool, log_id: str, previous: datetime | None, now: datetime
) -> bool:
    """Stamp ``reminder_sent_at`` unless another pass already did."""
    async with pool.acquire() as conn:
        claimed = await conn.fetchval(
            """
            UPDATE medication_logs SET reminder_sent_at = $2
            WHERE log_id = $1 AND reminder_sent_at IS NOT DISTINCT FROM $3
            RETURNING log_id
            """,
            log_id,
            now,
            previous,
        )
    return claimed is not None


async def _release_reminder(
    pool: asyncpg.Pool, log_id: str, previous: datetime | None, now: datetime
) -> None:
    async with pool.acquire() as conn:
        await conn.execute(
            """
            UPDATE medication_logs SET reminder_sent_at = $3
            WHERE log_id = $1 AND reminder_sent_at = $2
            """,
            log_id,
            now,
            previous,
        )


async def process_due_reminders(
    pool: asyncpg.Pool,
    sender: PushSender,
    now: datetime | None = None,
) -> dict[str, int]:
    """Send a reminder for every dose whose reminder is due at *now*.

    A pending dose is due once ``scheduled - reminder_advance_minutes <= now``
    and until ``DUE_GRACE`` after its scheduled time, as long as it has not
    been reminded yet.  A snoozed dose is due again once ``snooze_until`` has
    passed since its last reminder.

    Each due row is claimed by stamping ``reminder_sent_at`` with a
    conditional update before the push goes out, so overlapping passes (the
    ``run`` loop and a cron ``send-reminders``) never remind the same dose
    twice.  Doses whose push was held by settings are released and retried
    on the next pass.
    """
    now = wall_clock(now) if now is not None else local_now()
    tracer = trace.get_tracer("eyemate")
    with tracer.start_as_current_span("eyemate.reminders.tick") as span:
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT ml.log_id, ml.schedule_id, ml.patient_id, ml.scheduled_datetime,
                       ml.dose_sequence, ml.status, ml.reminder_sent_at,
                       m.name AS medication_name, dt.dose_label
                FROM medication_logs ml
                JOIN medication_schedules ms ON ms.schedule_id = ml.schedule_id
                LEFT JOIN medications m ON m.medication_id = ml.medication_id
                LEFT JOIN medication_dose_times dt ON dt.dose_time_id = ml.dose_time_id
                WHERE ms.is_active = true
                  AND (
                    (ml.status = 'pending'
                     AND ml.reminder_sent_at IS NULL
                     AND ml.scheduled_datetime
                         - make_interval(mins => ms.reminder_advance_minutes) <= $1
                     AND ml.scheduled_datetime > $2)
                    OR
                    (ml.status = 'snoozed'
                     AND ml.snooze_until <= $1
                     AND (ml.reminder_sent_at IS NULL OR ml.reminder_sent_at < ml.snooze_until))
                  )
                ORDER BY ml.scheduled_datetime
                """,
                now,
                now - DUE_GRACE,
            )

        span.set_attribute("reminders_due", len(rows))

        sent = 0
        for row in rows:
            log_id, previous = row["log_id"], row["reminder_sent_at"]
            with dose_context(patient_id=row["patient_id"], log_id=log_id):
                if not await _claim_reminder(pool, log_id, previous, now):
                    logger.debug("Reminder for dose %s already claimed by another pass", log_id)
                    continue
                attempted = await notify_patient(
                    pool, sender, row["patient_id"], _reminder_message(row), now=now
                )
                if not attempted:
                    await _release_reminder(pool, log_id, previous, now)
                    continue
                sent += 1

        span.set_attribute("reminders_sent", sent)

    if rows:
        logger.info("Reminder pass at %s: %d due, %d sent", now.isoformat(), len(rows), sent)
    return {"count": sent, "due": len(rows)}
