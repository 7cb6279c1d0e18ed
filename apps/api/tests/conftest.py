from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from efficy_gateway.client.http import HttpClient


GATEWAY_BASE_URL = "http://portal.test/api/efficy/v1"

Responder = Callable[[httpx.Request], httpx.Response]


class FakeGateway:
    """Answers client calls by method and path, recording every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, payload: Any = None, *, status: int = 200) -> None:
        self.routes[(method, path)] = lambda request: httpx.Response(status, json=payload)

    def on_request(self, method: str, path: str, responder: Responder) -> None:
        self.routes[(method, path)] = responder

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == method and self._path(request) == path]

    def body(self, request: httpx.Request) -> Any:
        return json.loads(request.content)

    def http_client(self) -> HttpClient:
        return HttpClient(GATEWAY_BASE_URL, transport=httpx.MockTransport(self))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, self._path(request)))
        if responder is None:
            return httpx.Response(404, json={"message": f"no fake route for {request.method} {request.url.path}"})
        return responder(request)

    @staticmethod
    def _path(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/api/efficy/v1")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


def query_rows(*beans: dict[str, Any]) -> dict[str, Any]:
    return {"data": {"query_results": [{"bean_data": bean} for bean in beans]}}


@pytest.fixture
def rows() -> Callable[..., dict[str, Any]]:
    return query_rows
