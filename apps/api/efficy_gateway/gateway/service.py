from __future__ import annotations

import logging
import time
from urllib.parse import quote

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from efficy_gateway.context import get_correlation_id
from efficy_gateway.core.auth import USER_EMAIL_HEADER
from efficy_gateway.core.config import Settings, get_settings
from efficy_gateway.errors import ConfigurationError, GatewayValidationError, UpstreamTransportError
from efficy_gateway.gateway.models import (
    JSON_CONTENT_TYPE,
    SUPPORTED_METHODS,
    GatewayRequest,
    GatewayResponse,
    ResourceType,
    supports_body,
)
from efficy_gateway.metrics import observe_upstream_request, observe_upstream_transport_failure


logger = logging.getLogger("efficy_gateway.gateway")
tracer = trace.get_tracer("efficy_gateway.gateway")

# RFC 3986 sub-delims plus ":" and "@" stay literal inside a path segment.
_PATH_SAFE_CHARS = "!$&'()*+,;=:@-._~"
_NO_BODY_STATUSES = frozenset({204, 304})
_RESOURCE_SETTINGS = {
    ResourceType.ADVANCED: "efficy_advanced_resource",
    ResourceType.BASE: "efficy_base_resource",
    ResourceType.SERVICE: "efficy_service_resource",
}


class GatewayService:
    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def forward(self, request: GatewayRequest) -> GatewayResponse:
        method = request.method.upper()
        if method not in SUPPORTED_METHODS:
            raise GatewayValidationError("Unsupported HTTP method")

        target_url = self.build_target_url(request.resource_type, request.path, request.query)
        content = request.body.encode("utf-8") if supports_body(method) and request.body is not None else None
        headers = self._build_headers(request, has_body=content is not None)

        settings = self.settings
        timeout = httpx.Timeout(
            settings.efficy_read_timeout_ms / 1000,
            connect=settings.efficy_connect_timeout_ms / 1000,
        )
        resource_label = request.resource_type.value

        with tracer.start_as_current_span("gateway.forward") as span:
            span.set_attribute("efficy.resource_type", resource_label)
            span.set_attribute("http.method", method)
            span.set_attribute("correlation_id", get_correlation_id() or "")

            started = time.perf_counter()
            try:
                with httpx.Client(timeout=timeout, transport=self._transport) as client:
                    upstream = client.request(method, target_url, headers=headers, content=content)
            except httpx.TransportError as exc:
                reason = "timeout" if isinstance(exc, httpx.TimeoutException) else "transport"
                duration_ms = round((time.perf_counter() - started) * 1000, 2)
                observe_upstream_transport_failure(resource_label, reason)
                span.set_status(Status(StatusCode.ERROR, reason))
                logger.warning(
                    "gateway.transport_error",
                    extra={
                        "resource_type": resource_label,
                        "method": method,
                        "upstream_path": request.path,
                        "duration_ms": duration_ms,
                        "error": f"{reason}: {exc}",
                    },
                )
                raise UpstreamTransportError("Efficy API communication failed") from exc

            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            span.set_attribute("http.status_code", upstream.status_code)

        observe_upstream_request(resource_label, method, upstream.status_code, duration_ms / 1000)
        logger.info(
            "gateway.forward",
            extra={
                "resource_type": resource_label,
                "method": method,
                "upstream_path": request.path,
                "status_code": upstream.status_code,
                "duration_ms": duration_ms,
            },
        )

        if upstream.status_code in _NO_BODY_STATUSES:
            body = "{}"
        else:
            body = upstream.content.decode("utf-8", errors="replace")

        return GatewayResponse(
            status=upstream.status_code,
            content_type=upstream.headers.get("content-type") or JSON_CONTENT_TYPE,
            body=body,
        )

    def build_target_url(self, resource_type: ResourceType, path: str | None, query: str | None = None) -> str:
        encoded_path = _encode_path(_normalize_path(path))

        settings = self.settings
        missing = settings.missing_upstream_keys()
        if missing:
            logger.error("gateway.misconfigured", extra={"config_key": ",".join(missing)})
            raise ConfigurationError("Missing Efficy configuration")

        server = settings.efficy_server.rstrip("/")
        app_context = settings.efficy_app_context.strip("/")
        version = settings.efficy_version.strip("/")
        resource = getattr(settings, _RESOURCE_SETTINGS[resource_type]).strip("/")

        target = f"{server}/{app_context}/api/{resource}/{version}/{encoded_path}"
        if not query:
            return target
        return f"{target}?{query}"

    def _build_headers(self, request: GatewayRequest, *, has_body: bool) -> dict[str, str]:
        headers = {
            "Authorization": request.authorization,
            "Accept": "application/json",
            "Accept-Charset": "utf-8",
            "Accept-Encoding": "identity",
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        if request.user_email:
            headers[USER_EMAIL_HEADER] = request.user_email
        return headers


def _normalize_path(path: str | None) -> str:
    if path is None or not path.strip():
        raise GatewayValidationError("Missing Efficy path")

    normalized = path.strip("/")
    if not normalized:
        raise GatewayValidationError("Missing Efficy path")
    if ".." in normalized:
        raise GatewayValidationError("Efficy path contains invalid segments")
    return normalized


def _encode_path(path: str) -> str:
    return "/".join(quote(segment, safe=_PATH_SAFE_CHARS) for segment in path.split("/"))


gateway_service = GatewayService()


def get_gateway_service() -> GatewayService:
    return gateway_service
