from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from efficy_gateway.beans import decode_html_entities, parse_number, read_raw_text, read_text
from efficy_gateway.client.api_client import EfficyApiClient
from efficy_gateway.client.models import PersonInfo, ReferentialOption
from efficy_gateway.metrics import observe_reference_cache


logger = logging.getLogger("efficy_gateway.client.referentials")

V = TypeVar("V")


class AsyncMemo(Generic[V]):
    """Per-instance memo of an async loader keyed by string.

    Concurrent misses for one key share a single in-flight load. Entries live
    as long as the memo; a load that fails is forgotten so the next caller
    retries it.
    """

    def __init__(self, name: str, loader: Callable[[str], Awaitable[V]]) -> None:
        self.name = name
        self._loader = loader
        self._entries: dict[str, asyncio.Future[V]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get(self, key: str) -> V:
        entry = self._entries.get(key)
        if entry is None:
            observe_reference_cache(self.name, hit=False)
            entry = asyncio.ensure_future(self._loader(key))
            self._entries[key] = entry
            entry.add_done_callback(lambda done: self._forget_failure(key, done))
        else:
            observe_reference_cache(self.name, hit=True)
        # One waiter being cancelled must not cancel the shared load.
        return await asyncio.shield(entry)

    def _forget_failure(self, key: str, done: asyncio.Future[V]) -> None:
        if done.cancelled() or done.exception() is not None:
            if self._entries.get(key) is done:
                del self._entries[key]


@dataclass(frozen=True)
class ReferentialEntry:
    id: str
    te1: str | None = None
    nu1: float | str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ReferentialEntry:
        text = row.get("te1")
        number = row.get("nu1")
        if isinstance(number, bool) or not isinstance(number, (int, float, str)):
            number = None
        return cls(id=str(row["id"]), te1=text if isinstance(text, str) else None, nu1=number)

    @property
    def label(self) -> str:
        return decode_html_entities(self.te1) if self.te1 else ""

    @property
    def number(self) -> float:
        if isinstance(self.nu1, (int, float)):
            return float(self.nu1)
        if isinstance(self.nu1, str):
            parsed = parse_number(self.nu1)
            return parsed if parsed is not None else 0.0
        return 0.0

    def option_text(self, label_field: str) -> str:
        value = self.nu1 if label_field == "nu1" else self.te1
        if value is None:
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)


_EMPTY_PERSON = PersonInfo(name="", function_id="")


class ReferentialCache:
    """Reference-table and single-entity lookups cached for the instance lifetime."""

    def __init__(self, api_client: EfficyApiClient) -> None:
        self._api = api_client
        self._referentials: AsyncMemo[dict[str, ReferentialEntry]] = AsyncMemo("referential", self._load_referential)
        self._enterprises: AsyncMemo[str] = AsyncMemo("enterprise", self._load_enterprise_name)
        self._persons: AsyncMemo[PersonInfo] = AsyncMemo("person", self._load_person_info)

    async def get_referential_map(self, field: str) -> dict[str, ReferentialEntry]:
        return await self._referentials.get(field)

    async def get_label(self, field: str, entry_id: str) -> str:
        if not entry_id:
            return ""
        entry = (await self.get_referential_map(field)).get(entry_id)
        return entry.label if entry is not None else ""

    async def get_numeric_value(self, field: str, entry_id: str) -> float:
        if not entry_id:
            return 0.0
        entry = (await self.get_referential_map(field)).get(entry_id)
        return entry.number if entry is not None else 0.0

    async def to_options(self, field: str, label_field: str = "te1") -> list[ReferentialOption]:
        options = []
        for entry_id, entry in (await self.get_referential_map(field)).items():
            label = entry.option_text(label_field)
            if entry_id and label:
                options.append(ReferentialOption(id=entry_id, label=label))
        return options

    async def get_enterprise_name(self, enterprise_id: str) -> str:
        if not enterprise_id:
            return ""
        return await self._enterprises.get(enterprise_id)

    async def get_person_info(self, person_id: str) -> PersonInfo:
        if not person_id:
            return _EMPTY_PERSON
        return await self._persons.get(person_id)

    async def _load_referential(self, field: str) -> dict[str, ReferentialEntry]:
        rows = await self._api.fetch_referential_rows(field)
        entries: dict[str, ReferentialEntry] = {}
        for row in rows:
            if row.get("id"):
                entry = ReferentialEntry.from_row(row)
                entries[entry.id] = entry
        logger.debug("referential.loaded", extra={"field": field})
        return entries

    async def _load_enterprise_name(self, enterprise_id: str) -> str:
        bean = await self._api.get_enterprise_by_id(enterprise_id)
        return read_text(bean, "EntCorpName") if bean is not None else ""

    async def _load_person_info(self, person_id: str) -> PersonInfo:
        bean = await self._api.get_person_by_id(person_id)
        if bean is None:
            return _EMPTY_PERSON
        name_parts = (read_text(bean, "PerFstName"), read_text(bean, "PerName"))
        return PersonInfo(
            name=" ".join(part for part in name_parts if part),
            function_id=read_raw_text(bean, "PerFctID"),
        )
