from __future__ import annotations

import os
from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

os.environ.setdefault("OTEL_ENABLED", "true")

from efficy_gateway.core.config import get_settings
from efficy_gateway.gateway.service import GatewayService, get_gateway_service
from efficy_gateway.main import app
from efficy_gateway.otel import setup_inmemory_otel


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("EFFICY_SERVER", "https://crm.example.test")
    monkeypatch.setenv("EFFICY_APP_CONTEXT", "crm")
    monkeypatch.setenv("EFFICY_VERSION", "v16")
    monkeypatch.setenv("EFFICY_TOKEN", "static-token")
    monkeypatch.setenv("EFFICY_ADVANCED_RESOURCE", "advanced")
    monkeypatch.setenv("EFFICY_BASE_RESOURCE", "base")
    monkeypatch.setenv("EFFICY_SERVICE_RESOURCE", "service")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


def _upstream(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/Person"):
        return httpx.Response(200, json={"data": {"query_results": [{"bean_data": {"PerID": "42"}}]}})
    return httpx.Response(200, json={"data": {"query_results": []}})


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_gateway_service] = lambda: GatewayService(transport=httpx.MockTransport(_upstream))
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.get("/api/efficy/v1/health", headers={"X-Correlation-Id": "otel-corr-1"})
    assert response.status_code == 200

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_forward_span_records_resource_and_status(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.get("/api/efficy/v1/base/Person/42", headers={"X-Correlation-Id": "otel-fwd-1"})
    assert response.status_code == 200

    forward_spans = [span for span in span_exporter.get_finished_spans() if span.name == "gateway.forward"]
    assert forward_spans
    assert any(
        span.attributes.get("efficy.resource_type") == "base"
        and span.attributes.get("http.method") == "GET"
        and span.attributes.get("http.status_code") == 200
        and span.attributes.get("correlation_id") == "otel-fwd-1"
        for span in forward_spans
    )


def test_identity_chain_spans(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.get(
        "/api/efficy/v1/me/demandes?pageSize=5",
        headers={"X-User-Email": "jane@example.com", "X-Correlation-Id": "otel-chain-1"},
    )
    assert response.status_code == 200

    spans = span_exporter.get_finished_spans()
    names = [span.name for span in spans]
    assert "identity.resolve_person" in names
    assert "identity.fetch_demandes" in names
    assert any(
        span.name == "identity.fetch_demandes" and span.attributes.get("efficy.page_size") == 5 for span in spans
    )
    assert sum(1 for name in names if name == "gateway.forward") >= 2
