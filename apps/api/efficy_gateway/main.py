from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from efficy_gateway.api.routes import error_response, router as api_router
from efficy_gateway.core.config import get_settings
from efficy_gateway.errors import ErrorCode
from efficy_gateway.logging import configure_logging
from efficy_gateway.middleware.correlation_id import CorrelationIdMiddleware
from efficy_gateway.middleware.request_logging import RequestLoggingMiddleware
from efficy_gateway.otel import SERVICE_NAME, get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("efficy_gateway.lifecycle")

_HTTP_ERROR_CODES = {
    404: (ErrorCode.NOT_FOUND, "Unknown endpoint"),
    405: (ErrorCode.METHOD_NOT_ALLOWED, "Unsupported HTTP method"),
}


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message = _HTTP_ERROR_CODES.get(exc.status_code, (ErrorCode.INVALID_REQUEST, str(exc.detail)))
    return error_response(request, status_code=exc.status_code, code=code.value, message=message)


def create_app() -> FastAPI:
    settings = get_settings()

    application = FastAPI(title=settings.app_name, version="0.1.0")
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    application.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    application.include_router(api_router)

    if settings.otel_enabled:
        setup_otel(SERVICE_NAME, True)

    if not getattr(application, "_is_instrumented_by_opentelemetry", False):
        FastAPIInstrumentor().instrument_app(application, server_request_hook=get_fastapi_server_request_hook())

    missing = settings.missing_upstream_keys()
    if missing:
        logger.warning("efficy.configuration_incomplete", extra={"config_key": ",".join(missing)})

    return application


app = create_app()
