from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from efficy_gateway.client.errors import HttpError


logger = logging.getLogger("efficy_gateway.client.http")

DEFAULT_TIMEOUT_SECONDS = 30.0

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _with_leading_slash(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


def resolve_api_base_url(api_base_path: str, context_path: str | None = None) -> str:
    """Prefix a relative API base path with the hosting application's context path."""
    if _ABSOLUTE_URL_RE.match(api_base_path):
        return api_base_path

    prefix = (context_path or "").strip()
    if not prefix or api_base_path.startswith(prefix):
        return api_base_path
    return f"{prefix}{_with_leading_slash(api_base_path)}"


def _extract_error_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error"):
            candidate = payload.get(key)
            if isinstance(candidate, str) and candidate:
                return candidate
    return f"HTTP {status}"


def _read_payload(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        if "application/json" in response.headers.get("content-type", ""):
            raise
        return text


class HttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._cookies = dict(cookies or {})
        self._timeout = timeout
        self._transport = transport

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, body: Any) -> Any:
        return await self.request("POST", path, body)

    async def put(self, path: str, body: Any) -> Any:
        return await self.request("PUT", path, body)

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        headers = {"Accept": "application/json", **self._headers}
        content = None
        if body is not None:
            content = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            cookies=self._cookies,
        ) as client:
            response = await client.request(
                method,
                f"{self.base_url}{_with_leading_slash(path)}",
                headers=headers,
                content=content,
            )

        payload = _read_payload(response)
        if response.is_success:
            return payload

        message = _extract_error_message(payload, response.status_code)
        logger.info(
            "client.http_error",
            extra={"method": method, "path": path, "status_code": response.status_code, "error": message},
        )
        raise HttpError(message, response.status_code, payload)
