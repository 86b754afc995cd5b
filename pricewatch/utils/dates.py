"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, timedelta

import pendulum

DEFAULT_TZ = "Europe/Brussels"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return now_in_tz().date()


def parse_iso_date(value: str) -> date:
    return pendulum.parse(value, strict=False).date()


def previous_day(value: date) -> date:
    return value - timedelta(days=1)


def retention_cutoff(as_of: date, days: int) -> date:
    """Oldest price date still kept; anything strictly before it expires."""
    return as_of - timedelta(days=days)
