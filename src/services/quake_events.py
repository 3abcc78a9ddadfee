"""
Event record shape shared by the classifier, the keyed store and the read API.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from src.services.errors import ParseError
from src.services.fingerprint import is_valid_event_date

UNKNOWN = "unknown"

CODE_FENCE_PATTERN = re.compile(r"^`{3,}\s*(?:json)?\s*(?P<body>.*?)\s*`{3,}$", re.DOTALL | re.IGNORECASE)


@dataclass
class EventRecord:
    id: str
    last_updated: str
    injured: int
    deaths: int
    magnitude: float
    location: str
    date: str
    ref_url: str

    def to_serializable(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "lastUpdated": self.last_updated,
            "injured": self.injured,
            "deaths": self.deaths,
            "magnitude": self.magnitude,
            "location": self.location,
            "date": self.date,
            "refUrl": self.ref_url,
        }

    @classmethod
    def from_serializable(cls, payload: dict[str, Any]) -> "EventRecord":
        return cls(
            id=str(payload.get("id") or ""),
            last_updated=str(payload.get("lastUpdated") or ""),
            injured=int(payload.get("injured") or 0),
            deaths=int(payload.get("deaths") or 0),
            magnitude=float(payload.get("magnitude") or 0.0),
            location=str(payload.get("location") or ""),
            date=str(payload.get("date") or ""),
            ref_url=str(payload.get("refUrl") or ""),
        )


def is_persistable(record: EventRecord) -> bool:
    """Reject records whose identifying fields were not extracted."""
    if record.magnitude == 0:
        return False
    if record.location == UNKNOWN or not record.location.strip():
        return False
    if record.date == UNKNOWN or not is_valid_event_date(record.date):
        return False
    return True


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` wrapper from a model response."""
    cleaned = text.strip()
    match = CODE_FENCE_PATTERN.match(cleaned)
    if match:
        return match.group("body").strip()
    cleaned = cleaned.strip("`").strip()
    if cleaned[:4].lower() == "json":
        cleaned = cleaned[4:]
    return cleaned.strip()


def _count_field(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"field {key!r} must be an integer, got {value!r}")
    if value < 0:
        raise ParseError(f"field {key!r} must not be negative, got {value!r}")
    return value


def _number_field(payload: dict[str, Any], key: str) -> float:
    value = payload.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"field {key!r} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ParseError(f"field {key!r} must be finite, got {value!r}")
    return float(value)


def _string_field(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError(f"field {key!r} must be a string, got {value!r}")
    return value.strip()


def parse_event_response(text: str, ref_url: str) -> EventRecord:
    """Parse a classifier response into an unfingerprinted ``EventRecord``.

    ``id`` and ``last_updated`` are left empty; the orchestrator and the
    upsert engine fill them in.
    """
    cleaned = strip_code_fences(text or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseError(f"classifier response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError(f"classifier response is not a JSON object: {type(payload).__name__}")
    return EventRecord(
        id="",
        last_updated="",
        injured=_count_field(payload, "injured"),
        deaths=_count_field(payload, "deaths"),
        magnitude=_number_field(payload, "magnitude"),
        location=_string_field(payload, "location"),
        date=_string_field(payload, "date"),
        ref_url=ref_url,
    )
