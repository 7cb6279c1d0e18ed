from __future__ import annotations

import asyncio

import httpx
import pytest

from efficy_gateway.client.errors import HttpError
from efficy_gateway.client.http import HttpClient, resolve_api_base_url


@pytest.mark.parametrize(
    ("api_base_path", "context_path", "expected"),
    [
        ("/api/efficy/v1", "/portal", "/portal/api/efficy/v1"),
        ("api/efficy/v1", "/portal", "/portal/api/efficy/v1"),
        ("/portal/api/efficy/v1", "/portal", "/portal/api/efficy/v1"),
        ("/api/efficy/v1", None, "/api/efficy/v1"),
        ("/api/efficy/v1", "  ", "/api/efficy/v1"),
        ("https://gw.example.test/api/efficy/v1", "/portal", "https://gw.example.test/api/efficy/v1"),
    ],
)
def test_resolve_api_base_url(api_base_path: str, context_path: str | None, expected: str) -> None:
    assert resolve_api_base_url(api_base_path, context_path) == expected


def _client(handler) -> HttpClient:  # type: ignore[no-untyped-def]
    return HttpClient(
        "http://portal.test/api/efficy/v1/",
        headers={"X-User-Email": "jane@example.com"},
        cookies={"efficy_session": "token"},
        transport=httpx.MockTransport(handler),
    )


def test_success_returns_parsed_json_and_sends_credentials() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"data": {"ok": True}})

    result = asyncio.run(_client(handler).post("base/Demande", {"a": 1}))

    assert result == {"data": {"ok": True}}
    sent = captured[0]
    assert str(sent.url) == "http://portal.test/api/efficy/v1/base/Demande"
    assert sent.headers["Accept"] == "application/json"
    assert sent.headers["Content-Type"] == "application/json"
    assert sent.headers["X-User-Email"] == "jane@example.com"
    assert "efficy_session=token" in sent.headers["Cookie"]
    assert sent.content == b'{"a": 1}'


def test_empty_and_text_bodies() -> None:
    responses = iter(
        [
            httpx.Response(204),
            httpx.Response(200, text="plain answer"),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    client = _client(handler)

    assert asyncio.run(client.get("/health")) is None
    assert asyncio.run(client.get("/health")) == "plain answer"


@pytest.mark.parametrize(
    ("payload", "expected_message"),
    [
        ({"message": "Unknown endpoint", "error": "ignored"}, "Unknown endpoint"),
        ({"error": "denied"}, "denied"),
        ({"code": "x"}, "HTTP 403"),
    ],
)
def test_error_status_raises_http_error(payload: dict[str, str], expected_message: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json=payload)

    with pytest.raises(HttpError) as exc_info:
        asyncio.run(_client(handler).get("/base/Person/1"))

    assert exc_info.value.status == 403
    assert exc_info.value.message == expected_message
    assert exc_info.value.payload == payload
