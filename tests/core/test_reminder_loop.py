"""Tests for the cron-driven reminder loop."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from eyemate.core import scheduler
from eyemate.core.scheduler import _next_run, run_reminder_loop

pytestmark = pytest.mark.unit


class TestNextRun:
    def test_every_minute(self):
        now = datetime(2026, 3, 2, 8, 0, 30, tzinfo=UTC)
        assert _next_run("* * * * *", now) == datetime(2026, 3, 2, 8, 1, tzinfo=UTC)

    def test_every_five_minutes(self):
        now = datetime(2026, 3, 2, 8, 1, tzinfo=UTC)
        assert _next_run("*/5 * * * *", now) == datetime(2026, 3, 2, 8, 5, tzinfo=UTC)

    def test_result_is_utc(self):
        assert _next_run("* * * * *").tzinfo is UTC


class TestRunReminderLoop:
    @pytest.fixture(autouse=True)
    def _fire_immediately(self, monkeypatch):
        monkeypatch.setattr(scheduler, "_next_run", lambda cron, now=None: datetime.now(UTC))

    async def test_runs_passes_until_stopped(self, monkeypatch):
        stop = asyncio.Event()
        calls = 0

        async def fake_pass(pool, sender):
            nonlocal calls
            calls += 1
            if calls == 3:
                stop.set()
            return {"count": 0, "due": 0}

        monkeypatch.setattr(scheduler, "process_due_reminders", fake_pass)

        passes = await run_reminder_loop(MagicMock(), MagicMock(), stop_event=stop)

        assert passes == 3

    async def test_failed_pass_does_not_stop_loop(self, monkeypatch, caplog):
        stop = asyncio.Event()
        outcomes = [RuntimeError("db down"), {"count": 1, "due": 1}]

        async def flaky_pass(pool, sender):
            outcome = outcomes.pop(0)
            if not outcomes:
                stop.set()
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        monkeypatch.setattr(scheduler, "process_due_reminders", flaky_pass)

        passes = await run_reminder_loop(MagicMock(), MagicMock(), stop_event=stop)

        assert passes == 1
        assert "Reminder pass failed" in caplog.text

    async def test_preset_stop_event_runs_nothing(self, monkeypatch):
        stop = asyncio.Event()
        stop.set()
        fake = AsyncMock()
        monkeypatch.setattr(scheduler, "process_due_reminders", fake)

        assert await run_reminder_loop(MagicMock(), MagicMock(), stop_event=stop) == 0
        fake.assert_not_awaited()
