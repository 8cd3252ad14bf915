from __future__ import annotations

import json

import pytest
import requests

from harvest.scraper import retry_policy, trending_client
from harvest.scraper.error_codes import ErrorCode


def _response(status: int, body: object) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = "https://api.example/trending"
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    return response


class FakeHttp:
    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, int]] = []

    def get(self, url: str, timeout: int):
        self.calls.append((url, timeout))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def _quiet(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(trending_client, "_scraper_event", lambda *a, **k: None)
    monkeypatch.setattr(trending_client, "log_line", lambda msg: None)
    monkeypatch.setattr(retry_policy, "_scraper_event", lambda *a, **k: None)


def test_strips_nfts_section() -> None:
    body = {"coins": [{"item": {"id": "bitcoin"}}], "nfts": [{"id": "x"}], "categories": []}
    http = FakeHttp([_response(200, body)])

    payload = trending_client.fetch_trending("https://api.example/trending", session=http, sleep=lambda s: None)

    assert payload == {"coins": [{"item": {"id": "bitcoin"}}], "categories": []}
    assert http.calls == [("https://api.example/trending", trending_client.config.TRENDING_TIMEOUT_SECONDS)]


def test_retries_with_linear_backoff() -> None:
    slept: list[float] = []
    http = FakeHttp(
        [
            requests.ConnectionError("reset"),
            _response(503, {"error": "busy"}),
            _response(200, {"coins": []}),
        ]
    )

    payload = trending_client.fetch_trending(
        "https://api.example/trending", retries=3, session=http, backoff_step=2, sleep=slept.append
    )

    assert payload == {"coins": []}
    assert slept == [2.0, 4.0]


def test_exhaustion_raises_with_attempt_count() -> None:
    slept: list[float] = []
    http = FakeHttp([_response(500, {}), _response(500, {}), _response(502, {})])

    with pytest.raises(trending_client.TrendingFetchError) as excinfo:
        trending_client.fetch_trending(
            "https://api.example/trending", retries=3, session=http, backoff_step=2, sleep=slept.append
        )

    error = excinfo.value
    assert error.error_code == ErrorCode.API_EXHAUSTED
    assert error.http_status == 502
    assert str(error).startswith("Failed after 3 attempts:")
    assert slept == [2.0, 4.0]


def test_invalid_json_is_retried_then_fails() -> None:
    http = FakeHttp([_response(200, b"<html>"), _response(200, [1, 2])])

    with pytest.raises(trending_client.TrendingFetchError) as excinfo:
        trending_client.fetch_trending(
            "https://api.example/trending", retries=2, session=http, sleep=lambda s: None
        )

    assert "Expected a JSON object" in str(excinfo.value)


def test_build_http_session_sends_json_headers() -> None:
    session = trending_client.build_http_session()
    assert session.headers["Accept"] == "application/json"
    assert "Chrome/122" in session.headers["User-Agent"]
