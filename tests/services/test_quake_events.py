from __future__ import annotations

import pytest

from src.services import quake_events
from src.services.errors import ParseError

REF_URL = "https://apnews.com/article/taiwan-earthquake"


def make_record(**overrides: object) -> quake_events.EventRecord:
    fields = {
        "id": "",
        "last_updated": "",
        "injured": 0,
        "deaths": 0,
        "magnitude": 7.4,
        "location": "Hualien, Taiwan",
        "date": "2024-04-03",
        "ref_url": REF_URL,
    }
    fields.update(overrides)
    return quake_events.EventRecord(**fields)  # type: ignore[arg-type]


def test_parse_event_response_reads_fenced_json() -> None:
    response = """```json
    {"deaths": 9, "injured": 1011, "magnitude": 7.4, "location": "Hualien, Taiwan", "date": "2024-04-03"}
    ```"""

    record = quake_events.parse_event_response(response, REF_URL)

    assert record == make_record(deaths=9, injured=1011)


def test_parse_event_response_defaults_missing_and_null_fields() -> None:
    record = quake_events.parse_event_response('{"magnitude": 5, "deaths": null}', REF_URL)

    assert record.deaths == 0
    assert record.injured == 0
    assert record.magnitude == 5.0
    assert record.location == ""
    assert record.date == ""
    assert record.ref_url == REF_URL


@pytest.mark.parametrize(
    "response",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"deaths": "three"}',
        '{"deaths": 2.5}',
        '{"injured": -1}',
        '{"deaths": true}',
        '{"magnitude": "7.4"}',
        '{"location": 12}',
    ],
)
def test_parse_event_response_rejects_malformed_payloads(response: str) -> None:
    with pytest.raises(ParseError):
        quake_events.parse_event_response(response, REF_URL)


def test_strip_code_fences_handles_bare_and_wrapped_text() -> None:
    assert quake_events.strip_code_fences('{"a": 1}') == '{"a": 1}'
    assert quake_events.strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert quake_events.strip_code_fences('```JSON {"a": 1}```') == '{"a": 1}'


def test_is_persistable_accepts_complete_record() -> None:
    assert quake_events.is_persistable(make_record())


@pytest.mark.parametrize(
    "overrides",
    [
        {"magnitude": 0.0},
        {"location": "unknown"},
        {"location": "   "},
        {"date": "unknown"},
        {"date": "April 2024"},
        {"date": "2024-04"},
    ],
)
def test_is_persistable_rejects_unidentified_events(overrides: dict[str, object]) -> None:
    assert not quake_events.is_persistable(make_record(**overrides))


def test_serializable_round_trip_uses_camel_case_keys() -> None:
    record = make_record(id="abc", last_updated="2024-04-04T00:00:00+00:00", deaths=9)

    payload = record.to_serializable()

    assert payload["lastUpdated"] == "2024-04-04T00:00:00+00:00"
    assert payload["refUrl"] == REF_URL
    assert quake_events.EventRecord.from_serializable(payload) == record
