"""Stable event identity derived from magnitude, location and year-month."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime

EVENT_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_valid_event_date(value: object) -> bool:
    """Return True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(value, str) or not EVENT_DATE_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def format_magnitude(magnitude: float) -> str:
    # Shortest round-trip repr, so 5 and 5.0 share one canonical form.
    text = repr(float(magnitude))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def canonical_key(magnitude: float, location: str, date: str) -> str:
    if len(date) < 7:
        raise ValueError(f"date {date!r} is shorter than YYYY-MM")
    return f"{format_magnitude(magnitude)}-{location}-{date[:7]}"


def fingerprint(magnitude: float, location: str, date: str) -> str:
    """Hash the canonical key into a 64-character hex id.

    The day of month is left out so reports of one quake published on
    different days collapse onto the same id.
    """
    key = canonical_key(magnitude, location, date)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
