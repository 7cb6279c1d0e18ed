"""Typed extraction of values from Efficy beans.

A bean maps field names to one of three shapes: a plain scalar, a list, or a
descriptor object carrying up to three representations (``raw_value``,
``value``, ``label``). Every accessor here parses the field into a
:data:`FieldValue` first and never raises: missing or malformed fields degrade
to an empty string, an empty list or zero.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

Primitive = Union[str, int, float]


@dataclass(frozen=True)
class Scalar:
    value: Primitive


@dataclass(frozen=True)
class ListValue:
    items: tuple[Primitive, ...]


@dataclass(frozen=True)
class Descriptor:
    raw_value: Scalar | ListValue | None = None
    value: Scalar | ListValue | None = None
    label: Scalar | ListValue | None = None

    def representations(self, *, include_label: bool = True) -> list[Scalar | ListValue]:
        candidates = [self.raw_value, self.value]
        if include_label:
            candidates.append(self.label)
        return [candidate for candidate in candidates if candidate is not None]

    def resolve(self, *, include_label: bool = True) -> Scalar | ListValue | None:
        representations = self.representations(include_label=include_label)
        return representations[0] if representations else None


FieldValue = Union[Scalar, ListValue, Descriptor]


_ID_SEPARATOR_RE = re.compile(r"[;,]")
_ENTITY_RE = re.compile(r"&(#[xX][0-9a-fA-F]+|#[0-9]+|[a-zA-Z]+);")
_NAMED_ENTITIES = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": " ",
}
_NUMBER_NOISE_RE = re.compile(r"[\u00a0\u202f\s']")
_NON_NUMERIC_RE = re.compile(r"[^0-9,.\-+]")
_NUMBER_PREFIX_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")


def _parse_plain(raw: Any) -> Scalar | ListValue | None:
    if isinstance(raw, bool):
        return Scalar("true" if raw else "false")
    if isinstance(raw, (str, int, float)):
        return Scalar(raw)
    if isinstance(raw, (list, tuple)):
        return ListValue(
            tuple(item for item in raw if isinstance(item, (str, int, float)) and not isinstance(item, bool))
        )
    return None


def parse_field(raw: Any) -> FieldValue | None:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return Descriptor(
            raw_value=_parse_plain(raw.get("raw_value")),
            value=_parse_plain(raw.get("value")),
            label=_parse_plain(raw.get("label")),
        )
    return _parse_plain(raw)


def read_field(bean: Any, key: str, *, include_label: bool = True) -> Scalar | ListValue | None:
    """Resolve a field by ``raw_value > value > label`` priority."""
    if not isinstance(bean, Mapping):
        return None
    parsed = parse_field(bean.get(key))
    if isinstance(parsed, Descriptor):
        return parsed.resolve(include_label=include_label)
    return parsed


def _stringify(value: Primitive) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _first_text(resolved: Scalar | ListValue | None) -> str:
    if isinstance(resolved, Scalar):
        return _stringify(resolved.value)
    if isinstance(resolved, ListValue):
        for item in resolved.items:
            if isinstance(item, str):
                return item
    return ""


def read_scalar(bean: Any, key: str) -> str | list[str] | None:
    resolved = read_field(bean, key)
    if isinstance(resolved, Scalar):
        return _stringify(resolved.value)
    if isinstance(resolved, ListValue):
        return [_stringify(item) for item in resolved.items]
    return None


def read_text(bean: Any, key: str) -> str:
    return decode_html_entities(_first_text(read_field(bean, key)))


def read_raw_text(bean: Any, key: str) -> str:
    """Like :func:`read_text` without the ``label`` fallback, for internal ids."""
    return _first_text(read_field(bean, key, include_label=False))


def read_label(bean: Any, key: str) -> str:
    if not isinstance(bean, Mapping):
        return ""
    parsed = parse_field(bean.get(key))
    if not isinstance(parsed, Descriptor):
        return ""
    return decode_html_entities(_first_text(parsed.label))


def read_display_text(bean: Any, key: str) -> str:
    """Human-facing text: ``label > raw_value > value``, lists joined."""
    if not isinstance(bean, Mapping):
        return ""
    parsed = parse_field(bean.get(key))
    if isinstance(parsed, Descriptor):
        parsed = next(
            (candidate for candidate in (parsed.label, parsed.raw_value, parsed.value) if candidate is not None),
            None,
        )
    if isinstance(parsed, ListValue):
        return decode_html_entities(", ".join(_stringify(item) for item in parsed.items))
    return decode_html_entities(_first_text(parsed))


def read_identifier(source: Any, key: str) -> str:
    """First non-blank representation of an id field, trimmed."""
    if not isinstance(source, Mapping):
        return ""
    parsed = parse_field(source.get(key))
    if isinstance(parsed, Descriptor):
        for representation in parsed.representations():
            text = _first_text(representation).strip()
            if text:
                return text
        return ""
    return _first_text(parsed).strip()


def split_ids(text: str) -> list[str]:
    trimmed = text.strip()
    if not trimmed:
        return []

    if (trimmed[0], trimmed[-1]) in {("[", "]"), ("{", "}")} and len(trimmed) >= 2:
        trimmed = trimmed[1:-1].strip()

    entries = (entry.strip().strip("\"'").strip() for entry in _ID_SEPARATOR_RE.split(trimmed))
    return [entry for entry in entries if entry]


def normalize_ids(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        for entry in split_ids(value):
            seen.setdefault(entry, None)
    return list(seen)


def read_id_list(bean: Any, key: str) -> list[str]:
    resolved = read_field(bean, key)
    if isinstance(resolved, Scalar):
        return normalize_ids([_stringify(resolved.value)])
    if isinstance(resolved, ListValue):
        return normalize_ids([item for item in resolved.items if isinstance(item, str)])
    return []


def parse_number(text: str) -> float | None:
    compact = _NON_NUMERIC_RE.sub("", _NUMBER_NOISE_RE.sub("", text.strip()))
    if not compact:
        return None

    has_comma = "," in compact
    has_dot = "." in compact
    if has_comma and has_dot:
        if compact.rfind(",") > compact.rfind("."):
            compact = compact.replace(".", "").replace(",", ".")
        else:
            compact = compact.replace(",", "")
    elif has_comma:
        compact = compact.replace(",", ".")

    match = _NUMBER_PREFIX_RE.match(compact)
    if match is None:
        return None
    number = float(match.group())
    return number if math.isfinite(number) else None


def _number_from(candidate: Scalar | ListValue | None) -> float | None:
    if isinstance(candidate, Scalar):
        if isinstance(candidate.value, str):
            return parse_number(candidate.value)
        try:
            number = float(candidate.value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(candidate, ListValue):
        for item in candidate.items:
            parsed = _number_from(Scalar(item))
            if parsed is not None:
                return parsed
    return None


def read_number(bean: Any, key: str) -> float:
    if not isinstance(bean, Mapping):
        return 0.0
    parsed = parse_field(bean.get(key))
    candidates = parsed.representations() if isinstance(parsed, Descriptor) else [parsed]
    for candidate in candidates:
        number = _number_from(candidate)
        if number is not None:
            return number
    return 0.0


def _replace_entity(match: re.Match[str]) -> str:
    entity = match.group(1)
    if entity[0] != "#":
        return _NAMED_ENTITIES.get(entity, match.group(0))

    digits, base = (entity[2:], 16) if entity[1] in "xX" else (entity[1:], 10)
    # Codes past seven significant digits are beyond U+10FFFF.
    if len(digits.lstrip("0")) > 7:
        return match.group(0)
    code = int(digits, base)
    if code > 0x10FFFF:
        return match.group(0)
    return chr(code)


def decode_html_entities(text: str) -> str:
    """Decode the HTML entities the CRM emits until the text is stable."""
    if not text or "&" not in text:
        return text

    decoded = _ENTITY_RE.sub(_replace_entity, text)
    while decoded != text and "&" in decoded:
        text, decoded = decoded, _ENTITY_RE.sub(_replace_entity, decoded)
    return decoded


def read_bean(row: Any) -> dict[str, Any]:
    if not isinstance(row, Mapping):
        return {}
    bean_data = row.get("bean_data")
    if isinstance(bean_data, Mapping):
        return dict(bean_data)
    return dict(row)


def read_query_rows(payload: Any) -> list[Any]:
    if not isinstance(payload, Mapping):
        return []
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return []
    rows = data.get("query_results")
    return list(rows) if isinstance(rows, list) else []


def read_single_bean(payload: Any) -> dict[str, Any] | None:
    if not isinstance(payload, Mapping):
        return None
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return None
    return read_bean(data)
