from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

import httpx

from efficy_gateway.beans import read_bean, read_query_rows, read_raw_text, read_text
from efficy_gateway.client.api_client import EfficyApiClient, encode_component
from efficy_gateway.client.errors import HttpError
from efficy_gateway.client.http import HttpClient
from efficy_gateway.client.models import Faq
from efficy_gateway.gateway.models import ResourceType


logger = logging.getLogger("efficy_gateway.client.knowledge_base")

DEFAULT_AUDIENCE_IDS = ("0000000000028c93", "00000000008be92d")
FALLBACK_LANGUAGE_CODE = "fr_FR"


def to_efficy_language_code(language: str) -> str:
    normalized = language.strip().lower()
    if normalized.startswith("fr"):
        return "fr_FR"
    if normalized.startswith("en"):
        return "en_US"
    return FALLBACK_LANGUAGE_CODE


def _faq_filter(language_code: str) -> str:
    audiences = ",".join(DEFAULT_AUDIENCE_IDS)
    return (
        "{{[FaqFahID:FahStatus:RefVal,=,PUBLISHED],"
        f"[FaqFahID:FahAudienceID,in,({audiences})],"
        f"[FaqLngID:RefVal,=,{language_code}]}}}}"
    )


class KnowledgeBaseService:
    def __init__(self, http: HttpClient) -> None:
        self.api = EfficyApiClient(http)

    async def list_faqs_for_language(self, language: str) -> list[Faq]:
        language_code = to_efficy_language_code(language)
        faqs = await self._fetch_faqs(language_code)
        if not faqs and language_code != FALLBACK_LANGUAGE_CODE:
            faqs = await self._fetch_faqs(FALLBACK_LANGUAGE_CODE)
        if not faqs:
            return []
        return await self._with_tags(faqs)

    async def _fetch_faqs(self, language_code: str) -> list[Faq]:
        response = await self.api.proxy_get(
            ResourceType.BASE, f"FAQ?filter={encode_component(_faq_filter(language_code))}"
        )
        faqs = []
        for index, row in enumerate(read_query_rows(response)):
            bean = read_bean(row)
            faq = Faq(
                id=read_raw_text(bean, "FaqID") or read_text(bean, "FaqID") or f"faq-{language_code}-{index}",
                header_id=read_raw_text(bean, "FaqFahID") or read_text(bean, "FaqFahID"),
                title=read_text(bean, "FaqTitle"),
                response=read_text(bean, "FaqResponse"),
            )
            if faq.title or faq.response:
                faqs.append(faq)
        return faqs

    async def _with_tags(self, faqs: list[Faq]) -> list[Faq]:
        header_ids = list(dict.fromkeys(faq.header_id.strip() for faq in faqs if faq.header_id.strip()))
        if not header_ids:
            return faqs

        code_lists = await asyncio.gather(*(self._fetch_tag_codes(header_id) for header_id in header_ids))
        header_codes = dict(zip(header_ids, code_lists))

        unique_codes = list(dict.fromkeys(code for codes in code_lists for code in codes))
        if not unique_codes:
            return faqs

        labels = await asyncio.gather(*(self._fetch_tag_label(code) for code in unique_codes))
        code_to_label = {code: label for code, label in zip(unique_codes, labels) if label}

        tagged = []
        for faq in faqs:
            codes = header_codes.get(faq.header_id.strip(), [])
            tags = list(dict.fromkeys(code_to_label[code] for code in codes if code in code_to_label))
            tagged.append(replace(faq, tags=tags))
        return tagged

    async def _fetch_tag_codes(self, header_id: str) -> list[str]:
        tag_filter = encode_component("{{[FhtFahID,=," + header_id + "]}}")
        response = await self.api.proxy_get(ResourceType.BASE, f"FAQHeaderTagCode?filter={tag_filter}")
        codes = []
        for row in read_query_rows(response):
            bean = read_bean(row)
            code = read_raw_text(bean, "FhtTagCode") or read_text(bean, "FhtTagCode")
            if code:
                codes.append(code)
        return list(dict.fromkeys(codes))

    async def _fetch_tag_label(self, code: str) -> str:
        tag_filter = encode_component("{{[TagCode,=," + code + "]}}")
        try:
            response = await self.api.proxy_get(ResourceType.BASE, f"Tag?filter={tag_filter}")
        except (HttpError, httpx.HTTPError) as exc:
            logger.warning("client.tag_label_unavailable", extra={"item_id": code, "error": str(exc)})
            return ""

        rows = read_query_rows(response)
        if not rows:
            return ""
        return read_text(read_bean(rows[0]), "TagText")
