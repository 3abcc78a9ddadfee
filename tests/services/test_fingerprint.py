from __future__ import annotations

import hashlib

import pytest

from src.services import fingerprint


def test_fingerprint_ignores_day_of_month() -> None:
    first = fingerprint.fingerprint(6.1, "Hualien, Taiwan", "2024-04-03")
    later = fingerprint.fingerprint(6.1, "Hualien, Taiwan", "2024-04-05")

    assert first == later
    assert len(first) == 64


def test_fingerprint_differs_on_month_magnitude_or_location() -> None:
    base = fingerprint.fingerprint(6.1, "Hualien, Taiwan", "2024-04-03")

    assert base != fingerprint.fingerprint(6.1, "Hualien, Taiwan", "2024-05-03")
    assert base != fingerprint.fingerprint(6.2, "Hualien, Taiwan", "2024-04-03")
    assert base != fingerprint.fingerprint(6.1, "Taipei, Taiwan", "2024-04-03")


def test_fingerprint_hashes_canonical_key() -> None:
    expected = hashlib.sha256("4.7-Ridgecrest, California-2019-07".encode("utf-8")).hexdigest()

    assert fingerprint.fingerprint(4.7, "Ridgecrest, California", "2019-07-06") == expected


def test_whole_magnitudes_share_one_form() -> None:
    assert fingerprint.canonical_key(5, "Napa, California", "2014-08-24") == "5-Napa, California-2014-08"
    assert fingerprint.fingerprint(5, "Napa, California", "2014-08-24") == fingerprint.fingerprint(
        5.0, "Napa, California", "2014-08-24"
    )


def test_canonical_key_rejects_short_dates() -> None:
    with pytest.raises(ValueError):
        fingerprint.canonical_key(5.0, "Napa, California", "2014")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2024-04-03", True),
        ("2024-02-30", False),
        ("2024-4-3", False),
        ("unknown", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_event_date(value: object, expected: bool) -> None:
    assert fingerprint.is_valid_event_date(value) is expected
