from __future__ import annotations

import asyncio

import pytest

from efficy_gateway.client.api_client import EfficyApiClient
from efficy_gateway.client.models import PersonInfo, ReferentialOption
from efficy_gateway.client.referentials import AsyncMemo, ReferentialCache, ReferentialEntry


def test_concurrent_misses_share_one_load() -> None:
    calls: list[str] = []

    async def loader(key: str) -> str:
        calls.append(key)
        await asyncio.sleep(0)
        return key.upper()

    async def scenario() -> list[str]:
        memo: AsyncMemo[str] = AsyncMemo("test", loader)
        results = await asyncio.gather(*(memo.get("abc") for _ in range(5)))
        results.append(await memo.get("abc"))
        return results

    assert asyncio.run(scenario()) == ["ABC"] * 6
    assert calls == ["abc"]


def test_failed_load_is_not_cached() -> None:
    calls: list[str] = []

    async def loader(key: str) -> str:
        calls.append(key)
        if len(calls) == 1:
            raise RuntimeError("upstream down")
        return "ok"

    async def scenario() -> str:
        memo: AsyncMemo[str] = AsyncMemo("test", loader)
        with pytest.raises(RuntimeError):
            await memo.get("k")
        assert "k" not in memo
        return await memo.get("k")

    assert asyncio.run(scenario()) == "ok"
    assert len(calls) == 2


def test_referential_entry_values() -> None:
    entry = ReferentialEntry.from_row({"id": "P1", "te1": "Tr&egrave;s &amp; probable", "nu1": "75,5"})

    assert entry.label == "Tr&egrave;s & probable"
    assert entry.number == 75.5
    assert entry.option_text("nu1") == "75,5"
    assert ReferentialEntry.from_row({"id": 3, "nu1": 50.0}).option_text("nu1") == "50"
    assert ReferentialEntry.from_row({"id": "x", "nu1": True}).number == 0.0


def test_referential_lookups_are_cached_per_field(gateway) -> None:  # type: ignore[no-untyped-def]
    gateway.on(
        "GET",
        "/service/referential_for",
        {"data": [{"id": "P1", "te1": "Likely &amp; soon", "nu1": 75}, {"id": "P2", "te1": ""}, {"te1": "no id"}]},
    )

    async def scenario() -> tuple[str, float, list[ReferentialOption], str, float]:
        cache = ReferentialCache(EfficyApiClient(gateway.http_client()))
        label = await cache.get_label("OppOpbID", "P1")
        number = await cache.get_numeric_value("OppOpbID", "P1")
        options = await cache.to_options("OppOpbID", label_field="nu1")
        missing = await cache.get_label("OppOpbID", "unknown")
        empty = await cache.get_numeric_value("OppOpbID", "")
        return label, number, options, missing, empty

    label, number, options, missing, empty = asyncio.run(scenario())

    assert label == "Likely & soon"
    assert number == 75.0
    assert options == [ReferentialOption(id="P1", label="75")]
    assert missing == ""
    assert empty == 0.0

    calls = gateway.calls("GET", "/service/referential_for")
    assert len(calls) == 1
    assert calls[0].url.params["field"] == "OppOpbID"


def test_entity_lookups_are_cached(gateway) -> None:  # type: ignore[no-untyped-def]
    gateway.on("GET", "/base/Enterprise/E1", {"data": {"bean_data": {"EntCorpName": "Acme &amp; Co"}}})
    gateway.on("GET", "/base/Person/P1", {"data": {"bean_data": {"PerFstName": "Jane", "PerName": "Doe", "PerFctID": "F1"}}})
    gateway.on("GET", "/base/Person/P2", {})

    async def scenario() -> tuple[list[str], list[PersonInfo]]:
        cache = ReferentialCache(EfficyApiClient(gateway.http_client()))
        names = [await cache.get_enterprise_name("E1"), await cache.get_enterprise_name("E1"), await cache.get_enterprise_name("")]
        persons = [await cache.get_person_info("P1"), await cache.get_person_info("P2"), await cache.get_person_info("P2")]
        return names, persons

    names, persons = asyncio.run(scenario())

    assert names == ["Acme & Co", "Acme & Co", ""]
    assert persons == [PersonInfo(name="Jane Doe", function_id="F1"), PersonInfo("", ""), PersonInfo("", "")]
    assert len(gateway.calls("GET", "/base/Enterprise/E1")) == 1
    assert len(gateway.calls("GET", "/base/Person/P2")) == 1
