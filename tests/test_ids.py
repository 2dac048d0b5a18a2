"""Tests for prefixed identifier generation."""

from __future__ import annotations

import re

import pytest

from eyemate.ids import LOG_PREFIX, SCHEDULE_PREFIX, generate_id

pytestmark = pytest.mark.unit


def test_shape():
    value = generate_id(SCHEDULE_PREFIX)
    assert re.fullmatch(r"SCHED\d{10}[0-9A-Z]{5}", value)


def test_ids_are_unique():
    ids = {generate_id(LOG_PREFIX) for _ in range(100)}
    assert len(ids) == 100
