from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from efficy_gateway.core.config import Settings
from efficy_gateway.errors import ConfigurationError, GatewayValidationError, UpstreamTransportError
from efficy_gateway.gateway.models import JSON_CONTENT_TYPE, GatewayRequest, ResourceType
from efficy_gateway.gateway.service import GatewayService


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "efficy_server": "https://crm.example.test/",
        "efficy_app_context": "/crm/",
        "efficy_version": "v16",
        "efficy_token": "static-token",
        "efficy_advanced_resource": "advanced",
        "efficy_base_resource": "base",
        "efficy_service_resource": "service",
        "efficy_connect_timeout_ms": 1000,
        "efficy_read_timeout_ms": 2500,
    }
    values.update(overrides)
    return Settings(**values)


def _service(handler: Callable[[httpx.Request], httpx.Response], **overrides: object) -> GatewayService:
    return GatewayService(settings=_settings(**overrides), transport=httpx.MockTransport(handler))


def _request(path: str = "Person/1", method: str = "GET", **kwargs: object) -> GatewayRequest:
    return GatewayRequest(
        resource_type=kwargs.pop("resource_type", ResourceType.BASE),  # type: ignore[arg-type]
        path=path,
        method=method,
        authorization="static-token",
        **kwargs,  # type: ignore[arg-type]
    )


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected upstream call to {request.url}")


@pytest.mark.parametrize(
    ("resource_type", "expected_segment"),
    [
        (ResourceType.ADVANCED, "query"),
        (ResourceType.BASE, "base"),
        (ResourceType.SERVICE, "svc"),
    ],
)
def test_build_target_url_maps_resource_types(resource_type: ResourceType, expected_segment: str) -> None:
    service = _service(
        _unreachable,
        efficy_advanced_resource="query",
        efficy_service_resource="/svc/",
    )

    url = service.build_target_url(resource_type, "/Person/123/", "a=1&b=2")

    assert url == f"https://crm.example.test/crm/api/{expected_segment}/v16/Person/123?a=1&b=2"


def test_build_target_url_encodes_each_segment_and_omits_empty_query() -> None:
    service = _service(_unreachable)

    url = service.build_target_url(ResourceType.BASE, "Person/Jean Dupont/a%b", None)

    assert url == "https://crm.example.test/crm/api/base/v16/Person/Jean%20Dupont/a%25b"
    assert "?" not in service.build_target_url(ResourceType.BASE, "Person", "")


@pytest.mark.parametrize("path", [None, "", "   ", "///"])
def test_missing_path_is_rejected(path: str | None) -> None:
    service = _service(_unreachable)

    with pytest.raises(GatewayValidationError) as exc_info:
        service.build_target_url(ResourceType.BASE, path)

    assert exc_info.value.message == "Missing Efficy path"


@pytest.mark.parametrize("resource_type", list(ResourceType))
@pytest.mark.parametrize("path", ["../secret", "Person/../../etc", "a..b"])
def test_parent_segments_are_rejected_without_calling_upstream(resource_type: ResourceType, path: str) -> None:
    service = _service(_unreachable)

    with pytest.raises(GatewayValidationError) as exc_info:
        service.forward(_request(path, resource_type=resource_type))

    assert exc_info.value.message == "Efficy path contains invalid segments"
    assert exc_info.value.http_status == 400


def test_missing_configuration_raises_configuration_error() -> None:
    service = _service(_unreachable, efficy_server="", efficy_version="  ")

    with pytest.raises(ConfigurationError) as exc_info:
        service.forward(_request())

    assert exc_info.value.message == "Missing Efficy configuration"


def test_unsupported_method_is_rejected() -> None:
    service = _service(_unreachable)

    with pytest.raises(GatewayValidationError):
        service.forward(_request(method="PATCH"))


@pytest.mark.parametrize("status_code", [200, 201, 400, 401, 404, 418, 500, 503])
def test_upstream_status_body_and_content_type_pass_through(status_code: int) -> None:
    body = '{"error":"teapot","detail":"café"}'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            content=body.encode("utf-8"),
            headers={"content-type": "application/problem+json"},
        )

    response = _service(handler).forward(_request())

    assert response.status == status_code
    assert response.body == body
    assert response.content_type == "application/problem+json"
    assert response.is_error is (status_code >= 400)


def test_missing_upstream_content_type_defaults_to_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'{"data":{}}')

    response = _service(handler).forward(_request())

    assert response.content_type == JSON_CONTENT_TYPE
    assert response.body == '{"data":{}}'


@pytest.mark.parametrize("status_code", [204, 304])
def test_bodyless_statuses_normalize_to_empty_json(status_code: int) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code)

    response = _service(handler).forward(_request())

    assert response.status == status_code
    assert response.body == "{}"


def test_get_forward_sends_expected_headers_without_body() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True})

    _service(handler).forward(_request(query="filter=x", body='{"ignored":true}', user_email="jane@example.com"))

    sent = captured[0]
    assert str(sent.url) == "https://crm.example.test/crm/api/base/v16/Person/1?filter=x"
    assert sent.method == "GET"
    assert sent.headers["Authorization"] == "static-token"
    assert sent.headers["Accept"] == "application/json"
    assert sent.headers["Accept-Charset"] == "utf-8"
    assert sent.headers["Accept-Encoding"] == "identity"
    assert sent.headers["X-User-Email"] == "jane@example.com"
    assert "Content-Type" not in sent.headers
    assert sent.content == b""


def test_post_forward_sends_utf8_json_body() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json={"data": {"DmdID": "9"}})

    body = '{"data":{"bean_data":{"DmdDescription":"Réclamation"}}}'
    response = _service(handler).forward(_request("Demande", method="post", body=body))

    sent = captured[0]
    assert sent.method == "POST"
    assert sent.headers["Content-Type"] == "application/json"
    assert sent.content == body.encode("utf-8")
    assert "X-User-Email" not in sent.headers
    assert response.status == 201


def test_forward_applies_configured_timeouts() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    _service(handler).forward(_request())

    timeout = captured[0].extensions["timeout"]
    assert timeout["connect"] == pytest.approx(1.0)
    assert timeout["read"] == pytest.approx(2.5)


@pytest.mark.parametrize("error_type", [httpx.ConnectError, httpx.ReadTimeout])
def test_transport_failures_raise_upstream_transport_error(error_type: type[httpx.TransportError]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error_type("boom", request=request)

    with pytest.raises(UpstreamTransportError) as exc_info:
        _service(handler).forward(_request())

    assert exc_info.value.message == "Efficy API communication failed"
    assert exc_info.value.http_status == 502
    assert isinstance(exc_info.value.__cause__, error_type)
