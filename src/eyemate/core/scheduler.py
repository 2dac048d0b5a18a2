"""Cron-driven invoker for the due-reminder pass.

The reminder engine exposes ``process_due_reminders`` as a plain function;
this loop is one external caller of it (system cron running
``eyemate send-reminders`` is another).  Each cycle sleeps until the next
cron fire time, runs one pass, and keeps going when a pass fails.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import asyncpg
from croniter import croniter

from eyemate.push import PushSender
from eyemate.reminders.notifications import process_due_reminders

logger = logging.getLogger(__name__)


def _next_run(cron: str, now: datetime | None = None) -> datetime:
    """Compute the next fire time for a cron expression from now (UTC)."""
    anchor = now or datetime.now(UTC)
    return croniter(cron, anchor).get_next(datetime).replace(tzinfo=UTC)


async def run_reminder_loop(
    pool: asyncpg.Pool,
    sender: PushSender,
    cron: str = "* * * * *",
    stop_event: asyncio.Event | None = None,
) -> int:
    """Run reminder passes on the *cron* cadence until *stop_event* is set.

    Returns the number of passes that completed.
    """
    stop_event = stop_event or asyncio.Event()
    passes = 0
    while not stop_event.is_set():
        delay = (_next_run(cron) - datetime.now(UTC)).total_seconds()
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=max(delay, 0))
            break
        except TimeoutError:
            pass

        try:
            result = await process_due_reminders(pool, sender)
            passes += 1
            logger.debug("Reminder pass complete: %s", result)
        except Exception:
            logger.exception("Reminder pass failed")
    logger.info("Reminder loop stopped after %d pass(es)", passes)
    return passes
