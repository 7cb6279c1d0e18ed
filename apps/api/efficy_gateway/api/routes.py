from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from efficy_gateway.context import get_correlation_id
from efficy_gateway.core.auth import resolve_caller
from efficy_gateway.core.config import Settings, get_settings
from efficy_gateway.errors import ConfigurationError, ErrorCode, GatewayError, GatewayValidationError
from efficy_gateway.gateway.models import SUPPORTED_METHODS, GatewayRequest, GatewayResponse, ResourceType, supports_body
from efficy_gateway.gateway.service import GatewayService, get_gateway_service
from efficy_gateway.identity.service import IdentityResolver, get_identity_resolver, resolve_page_size
from efficy_gateway.metrics import generate_metrics_payload, metrics_content_type


logger = logging.getLogger("efficy_gateway.api")

API_ROOT = "/api/efficy/v1"

router = APIRouter()
efficy_router = APIRouter(prefix=API_ROOT, tags=["efficy"])

_PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
_BODYLESS_STATUSES = frozenset({204, 304})


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(code=code, message=message, details=details, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=asdict(payload))


def write_gateway_response(gateway_response: GatewayResponse) -> Response:
    if gateway_response.status in _BODYLESS_STATUSES:
        return Response(status_code=gateway_response.status)
    return Response(
        content=gateway_response.body.encode("utf-8"),
        status_code=gateway_response.status,
        headers={"content-type": gateway_response.content_type},
    )


def _execute(request: Request, operation: Callable[[], GatewayResponse]) -> Response:
    try:
        return write_gateway_response(operation())
    except ConfigurationError as exc:
        logger.error("gateway.configuration_error", extra={"error": exc.message})
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=ErrorCode.INTERNAL_ERROR.value,
            message="Unexpected server error",
        )
    except GatewayError as exc:
        return error_response(request, status_code=exc.http_status, code=exc.code.value, message=exc.message)
    except Exception:
        logger.exception("gateway.unexpected_error")
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=ErrorCode.INTERNAL_ERROR.value,
            message="Unexpected server error",
        )


@efficy_router.get("/health")
def health() -> dict[str, str]:
    return {"status": "UP"}


@efficy_router.get("/me/person")
def current_person(
    request: Request,
    settings: Settings = Depends(get_settings),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Response:
    def operation() -> GatewayResponse:
        caller = resolve_caller(request, settings)
        return resolver.fetch_current_user_person(caller.authorization, caller.user_email)

    return _execute(request, operation)


@efficy_router.get("/me/demandes")
def current_demandes(
    request: Request,
    page_size: str | None = Query(default=None, alias="pageSize"),
    settings: Settings = Depends(get_settings),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Response:
    def operation() -> GatewayResponse:
        resolved_page_size = resolve_page_size(page_size, settings)
        caller = resolve_caller(request, settings)
        return resolver.fetch_demandes_for_current_user(resolved_page_size, caller.authorization, caller.user_email)

    return _execute(request, operation)


@efficy_router.api_route("/{resource_segment}/{crm_path:path}", methods=_PROXY_METHODS)
async def proxy(
    request: Request,
    resource_segment: str,
    crm_path: str,
    settings: Settings = Depends(get_settings),
    gateway: GatewayService = Depends(get_gateway_service),
) -> Response:
    method = request.method.upper()
    if method not in SUPPORTED_METHODS:
        return error_response(
            request,
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            code=ErrorCode.METHOD_NOT_ALLOWED.value,
            message="Unsupported HTTP method",
        )

    body = (await request.body()).decode("utf-8", errors="replace") if supports_body(method) else None

    def operation() -> GatewayResponse:
        resource_type = ResourceType.from_path_segment(resource_segment)
        if resource_type is None:
            raise GatewayValidationError("Unsupported resource type")

        caller = resolve_caller(request, settings)
        return gateway.forward(
            GatewayRequest(
                resource_type=resource_type,
                path=crm_path,
                method=method,
                authorization=caller.authorization,
                query=request.url.query or None,
                body=body,
                user_email=caller.user_email,
            )
        )

    return await run_in_threadpool(_execute, request, operation)


@router.get("/metrics", tags=["system"])
def metrics(request: Request, settings: Settings = Depends(get_settings)) -> Response:
    if not settings.metrics_enabled:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code=ErrorCode.NOT_FOUND.value,
            message="Unknown endpoint",
        )
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())


router.include_router(efficy_router)
