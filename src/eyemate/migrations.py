"""Programmatic Alembic migration runner for EyeMate.

Lets ``eyemate migrate`` (and tests) upgrade a database without shelling out
to the Alembic CLI.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from alembic.config import Config

from alembic import command

logger = logging.getLogger(__name__)

# Root of the alembic directory (sibling to src/)
ALEMBIC_DIR = Path(__file__).resolve().parent.parent.parent / "alembic"

DEFAULT_CHAIN = "reminders"


def get_all_chains() -> list[str]:
    """Return every version chain found under ``alembic/versions/``."""
    versions_dir = ALEMBIC_DIR / "versions"
    if not versions_dir.is_dir():
        return []
    return [
        d.name
        for d in sorted(versions_dir.iterdir())
        if d.is_dir() and any(f.suffix == ".py" for f in d.iterdir())
    ]


def _build_alembic_config(db_url: str) -> Config:
    """Build an Alembic Config pointing at the version directories."""
    config = Config(str(ALEMBIC_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    # Alembic Config uses configparser interpolation; escape '%' in URLs.
    config.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    # Each chain lives in its own subdirectory of versions/.
    config.set_main_option("recursive_version_locations", "true")
    return config


def _upgrade(db_url: str, chain: str) -> None:
    config = _build_alembic_config(db_url)
    chains = get_all_chains() if chain == "all" else [chain]
    for name in chains:
        logger.info("Running migration chain to head (chain=%s)", name)
        command.upgrade(config, f"{name}@head")


async def run_migrations(db_url: str, chain: str = DEFAULT_CHAIN) -> None:
    """Upgrade *chain* (or ``"all"``) to head against *db_url*.

    Alembic's engine is synchronous, so the upgrade runs in a worker thread
    to keep the event loop responsive.
    """
    await asyncio.to_thread(_upgrade, db_url, chain)
