from __future__ import annotations

import logging
from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from efficy_gateway.core.config import Settings
from efficy_gateway.errors import ConfigurationError


logger = logging.getLogger("efficy_gateway.auth")

USER_EMAIL_HEADER = "X-User-Email"


@dataclass(frozen=True)
class CallerContext:
    authorization: str
    user_email: str | None


def resolve_authorization_header(request: Request, settings: Settings) -> str:
    if settings.efficy_forward_client_authorization:
        incoming = request.headers.get("authorization", "").strip()
        if incoming:
            return incoming

    # Sent verbatim: some Efficy environments expect a raw token, others a scheme prefix.
    token = settings.efficy_token.strip()
    if not token:
        raise ConfigurationError("Missing Efficy token configuration")
    return token


def _read_session_email(request: Request, settings: Settings) -> str | None:
    token = request.cookies.get(settings.session_cookie_name, "")
    if not token:
        return None

    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[settings.session_algorithm])
    except JWTError as exc:
        logger.info("auth.session_rejected", extra={"error": str(exc)})
        return None

    email = payload.get("email")
    if not isinstance(email, str):
        return None
    return email.strip() or None


def resolve_user_email(request: Request, settings: Settings) -> str | None:
    session_email = _read_session_email(request, settings)
    if session_email is not None:
        return session_email

    header_value = request.headers.get(USER_EMAIL_HEADER, "").strip()
    return header_value or None


def resolve_caller(request: Request, settings: Settings) -> CallerContext:
    return CallerContext(
        authorization=resolve_authorization_header(request, settings),
        user_email=resolve_user_email(request, settings),
    )
