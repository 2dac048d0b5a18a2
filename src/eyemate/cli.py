"""CLI for EyeMate: migrations, reminder passes, schedule setup and patient lookups."""

from __future__ import annotations

import asyncio
import json
import os
import signal
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TextIO

import click

from eyemate.config import ConfigError, EyeMateConfig, load_config
from eyemate.core.logging import configure_logging
from eyemate.core.scheduler import run_reminder_loop
from eyemate.db import Database
from eyemate.errors import ReminderError
from eyemate.migrations import DEFAULT_CHAIN, run_migrations
from eyemate.push import ExpoPushSender
from eyemate.reminders._helpers import TIMEZONE_ENV
from eyemate.reminders.compliance import get_compliance_history
from eyemate.reminders.doses import get_upcoming_doses
from eyemate.reminders.notifications import process_due_reminders
from eyemate.reminders.schedules import create_schedule


def _database(config: EyeMateConfig) -> Database:
    db = Database.from_env(db_name=config.database.db_name)
    db.min_pool_size = config.database.min_pool_size
    db.max_pool_size = config.database.max_pool_size
    return db


def _run_reminder_call(call: Callable[[], Awaitable[Any]]) -> Any:
    """Run a reminder operation, reporting its domain error as JSON on stderr."""
    try:
        return asyncio.run(call())
    except ReminderError as exc:
        click.echo(json.dumps(exc.to_dict()), err=True)
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to eyemate.toml (or a directory containing it)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """EyeMate: medication reminder and dose-tracking service."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_dir=Path(config.logging.log_dir) if config.logging.log_dir else None,
    )
    os.environ[TIMEZONE_ENV] = config.reminders.timezone
    ctx.obj = config


@cli.command()
@click.option("--chain", default=DEFAULT_CHAIN, show_default=True, help="Chain name or 'all'")
@click.option("--provision/--no-provision", default=True, help="Create the database if missing")
@click.pass_obj
def migrate(config: EyeMateConfig, chain: str, provision: bool) -> None:
    """Upgrade the database schema to the latest revision."""

    async def _run() -> None:
        db = _database(config)
        if provision:
            await db.provision()
        await run_migrations(db.url, chain=chain)

    asyncio.run(_run())
    click.echo(f"Migrated chain {chain!r} to head")


@cli.command("send-reminders")
@click.pass_obj
def send_reminders(config: EyeMateConfig) -> None:
    """Run one due-reminder pass (for system cron)."""

    async def _run() -> dict[str, int]:
        db = _database(config)
        pool = await db.connect()
        sender = ExpoPushSender(
            pool,
            push_url=config.reminders.expo_push_url,
            timeout=config.reminders.push_timeout_s,
        )
        try:
            return await process_due_reminders(pool, sender)
        finally:
            await sender.aclose()
            await db.close()

    result = asyncio.run(_run())
    click.echo(f"Sent {result['count']} of {result['due']} due reminder(s)")


@cli.command()
@click.pass_obj
def run(config: EyeMateConfig) -> None:
    """Run due-reminder passes on the configured cron cadence until stopped."""

    async def _run() -> None:
        db = _database(config)
        pool = await db.connect()
        sender = ExpoPushSender(
            pool,
            push_url=config.reminders.expo_push_url,
            timeout=config.reminders.push_timeout_s,
        )
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await run_reminder_loop(pool, sender, config.reminders.cron, stop_event)
        finally:
            await sender.aclose()
            await db.close()

    asyncio.run(_run())


@cli.command("create-schedule")
@click.argument("patient_id")
@click.argument("definition", type=click.File("r"))
@click.option(
    "--days",
    type=click.IntRange(min=1),
    default=None,
    help="Days of dose logs to generate [default: reminders.lookahead_days]",
)
@click.pass_obj
def create_schedule_command(
    config: EyeMateConfig, patient_id: str, definition: TextIO, days: int | None
) -> None:
    """Create a schedule from a JSON DEFINITION file and generate its doses."""
    try:
        payload = json.load(definition)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="DEFINITION") from exc
    lookahead_days = days or config.reminders.lookahead_days

    async def _run() -> dict:
        db = _database(config)
        pool = await db.connect()
        try:
            return await create_schedule(pool, patient_id, payload, lookahead_days=lookahead_days)
        finally:
            await db.close()

    click.echo(json.dumps(_run_reminder_call(_run), indent=2))


@cli.command()
@click.argument("patient_id")
@click.option(
    "--hours",
    type=click.IntRange(min=1),
    default=None,
    help="Lookahead window in hours [default: reminders.upcoming_hours]",
)
@click.pass_obj
def upcoming(config: EyeMateConfig, patient_id: str, hours: int | None) -> None:
    """Print a patient's unresolved doses due within the lookahead window."""
    hours_lookahead = hours or config.reminders.upcoming_hours

    async def _run() -> dict:
        db = _database(config)
        pool = await db.connect()
        try:
            return await get_upcoming_doses(pool, patient_id, hours_lookahead=hours_lookahead)
        finally:
            await db.close()

    click.echo(json.dumps(_run_reminder_call(_run), indent=2))


@cli.command()
@click.argument("patient_id")
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@click.pass_obj
def compliance(config: EyeMateConfig, patient_id: str, days: int) -> None:
    """Print a patient's daily compliance history as JSON."""

    async def _run() -> list[dict]:
        db = _database(config)
        pool = await db.connect()
        try:
            return await get_compliance_history(pool, patient_id, days=days)
        finally:
            await db.close()

    click.echo(json.dumps(asyncio.run(_run()), indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
