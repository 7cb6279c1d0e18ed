"""Conversion between attachment wire payloads and bytes.

Efficy ships ``AttFile`` either as a base64 string or as an array of byte
values. Decoding never fails on an unknown size: the size is estimated from the
payload instead.
"""

from __future__ import annotations

import base64
import binascii
import math
import os
import re
from typing import Any

from efficy_gateway.beans import ListValue, Scalar, read_field, read_raw_text, read_text
from efficy_gateway.client.models import (
    DEFAULT_ATTACHMENT_NAME,
    DEFAULT_MIME_TYPE,
    Attachment,
    AttachmentFile,
    AttachmentUpload,
    DownloadedFile,
)

BASE64_EXPANSION = 0.75

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


def normalize_attachment_file(resolved: Scalar | ListValue | None) -> AttachmentFile | None:
    if isinstance(resolved, Scalar):
        return resolved.value if isinstance(resolved.value, str) else None
    if isinstance(resolved, ListValue):
        if all(isinstance(item, int) for item in resolved.items):
            return [int(item) for item in resolved.items]
    return None


def estimate_size(file: AttachmentFile | None) -> int | None:
    if isinstance(file, list):
        return len(file)
    if isinstance(file, str) and file:
        return math.ceil(len(file) * BASE64_EXPANSION)
    return None


def _declared_size(bean: Any) -> int | None:
    resolved = read_field(bean, "AttSize", include_label=False)
    if not isinstance(resolved, Scalar):
        return None
    value = resolved.value
    if isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if match is None:
            return None
        value = int(match.group(1))
    if not math.isfinite(value) or value <= 0:
        return None
    return int(value)


def to_attachment(bean: Any) -> Attachment:
    file = normalize_attachment_file(read_field(bean, "AttFile", include_label=False))
    size = _declared_size(bean)
    return Attachment(
        id=read_raw_text(bean, "AttID") or read_text(bean, "AttID"),
        name=read_text(bean, "AttFileName") or read_text(bean, "AttName"),
        date_created=read_text(bean, "AttCrDt"),
        mime_type=read_text(bean, "AttContentType") or None,
        file=file,
        size=size if size is not None else estimate_size(file),
    )


def decode_attachment_file(file: AttachmentFile | None) -> bytes | None:
    if isinstance(file, list):
        return bytes(value & 0xFF for value in file)
    if not isinstance(file, str) or not file:
        return None

    payload = file
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload)
    except (binascii.Error, ValueError):
        return None


def encode_attachment_file(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def build_upload_payload(upload: AttachmentUpload) -> dict[str, Any]:
    stem, _extension = os.path.splitext(upload.name)
    return {
        "data": {
            "bean_data": {
                "AttFile": encode_attachment_file(upload.content),
                "AttContentType": upload.mime_type or DEFAULT_MIME_TYPE,
                "AttFileName": upload.name,
                "AttDesc": f"[{stem or upload.name}]",
            }
        }
    }


def to_downloaded_file(content: Attachment | None, listed: Attachment) -> DownloadedFile | None:
    """Merge a freshly fetched attachment with its listed version into bytes."""
    file = content.file if content is not None and content.file is not None else listed.file
    data = decode_attachment_file(file)
    if data is None:
        return None

    fresh_name = content.name if content is not None else ""
    fresh_type = content.mime_type if content is not None else None
    return DownloadedFile(
        name=fresh_name or listed.name or DEFAULT_ATTACHMENT_NAME,
        mime_type=fresh_type or listed.mime_type or DEFAULT_MIME_TYPE,
        content=data,
    )
