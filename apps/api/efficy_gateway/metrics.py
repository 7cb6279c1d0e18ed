from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

efficy_upstream_requests_total = Counter(
    "efficy_upstream_requests_total",
    "Total requests forwarded to Efficy by resource type and upstream status",
    ["resource_type", "method", "status"],
)

efficy_upstream_duration_seconds = Histogram(
    "efficy_upstream_duration_seconds",
    "Efficy round trip duration in seconds",
    ["resource_type", "method"],
)

efficy_upstream_transport_failures_total = Counter(
    "efficy_upstream_transport_failures_total",
    "Forwards that failed before Efficy answered",
    ["resource_type", "reason"],
)

efficy_identity_not_found_total = Counter(
    "efficy_identity_not_found_total",
    "Caller emails without a matching Efficy person",
)

efficy_reference_cache_hits_total = Counter(
    "efficy_reference_cache_hits_total",
    "Reference lookups answered from the per-instance cache",
    ["cache"],
)

efficy_reference_cache_misses_total = Counter(
    "efficy_reference_cache_misses_total",
    "Reference lookups that required an upstream fetch",
    ["cache"],
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
    return _INT_RE.sub("/{id}", request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_upstream_request(resource_type: str, method: str, status: int, duration: float) -> None:
    efficy_upstream_requests_total.labels(resource_type=resource_type, method=method, status=str(status)).inc()
    efficy_upstream_duration_seconds.labels(resource_type=resource_type, method=method).observe(duration)


def observe_upstream_transport_failure(resource_type: str, reason: str) -> None:
    efficy_upstream_transport_failures_total.labels(resource_type=resource_type, reason=reason).inc()


def observe_identity_not_found() -> None:
    efficy_identity_not_found_total.inc()


def observe_reference_cache(cache: str, hit: bool) -> None:
    if hit:
        efficy_reference_cache_hits_total.labels(cache=cache).inc()
    else:
        efficy_reference_cache_misses_total.labels(cache=cache).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
