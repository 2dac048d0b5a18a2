"""Prefixed identifier generation.

IDs look like ``SCHED4567890123AB12C``: the prefix, the last 10 digits of the
millisecond clock and 5 random base-36 characters.
"""

from __future__ import annotations

import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_uppercase
_RANDOM_LENGTH = 5

SCHEDULE_PREFIX = "SCHED"
DOSE_TIME_PREFIX = "DOSE"
LOG_PREFIX = "LOG"
SETTINGS_PREFIX = "NOTSET"
TOKEN_PREFIX = "TOKEN"
HISTORY_PREFIX = "HIST"


def generate_id(prefix: str = "ID") -> str:
    """Return a new collision-resistant identifier starting with *prefix*."""
    timestamp = str(time.time_ns() // 1_000_000)[-10:]
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(_RANDOM_LENGTH))
    return f"{prefix}{timestamp}{suffix}"
