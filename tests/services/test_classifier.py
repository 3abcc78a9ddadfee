from __future__ import annotations

from typing import Any

import pytest
import requests

from src.services import classifier
from src.services.errors import ClassifierError


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response: FakeResponse | Exception) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def close(self) -> None:
        self.closed = True


def test_build_prompt_appends_article_after_instructions() -> None:
    prompt = classifier.build_prompt("A 5.1 quake shook Napa.")

    assert prompt.startswith(classifier.PROMPT_TEMPLATE)
    assert prompt.endswith("A 5.1 quake shook Napa.")
    assert '"date": "YYYY-MM-DD"' in prompt


def test_gemini_classify_posts_prompt_and_joins_parts() -> None:
    payload = {"candidates": [{"content": {"parts": [{"text": '{"deaths": 0,'}, {"text": ' "injured": 2}'}]}}]}
    session = FakeSession(FakeResponse(payload))
    client = classifier.GeminiClassifier("secret", model="gemini-test", timeout=3.0, session=session)

    result = client.classify("prompt text")

    assert result == '{"deaths": 0, "injured": 2}'
    call = session.calls[0]
    assert call["url"].endswith("/models/gemini-test:generateContent")
    assert call["headers"]["x-goog-api-key"] == "secret"
    assert call["json"] == {"contents": [{"parts": [{"text": "prompt text"}]}]}
    assert call["timeout"] == 3.0


def test_gemini_requires_api_key() -> None:
    with pytest.raises(ClassifierError):
        classifier.GeminiClassifier(None, session=FakeSession(FakeResponse({})))


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("boom"),
        FakeResponse({"error": "quota"}, status_code=429),
        FakeResponse(ValueError("not json")),
        FakeResponse({"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}),
        FakeResponse({"candidates": ["not an object"]}),
        FakeResponse({"candidates": [{"content": "plain text"}]}),
        FakeResponse(["unexpected", "list"]),
    ],
)
def test_gemini_failures_raise_classifier_error(response: FakeResponse | Exception) -> None:
    client = classifier.GeminiClassifier("secret", session=FakeSession(response))

    with pytest.raises(ClassifierError):
        client.classify("prompt")


def test_gemini_close_closes_session() -> None:
    session = FakeSession(FakeResponse({}))
    client = classifier.GeminiClassifier("secret", session=session)

    client.close()

    assert session.closed
