from __future__ import annotations

import asyncio
from typing import Any

from efficy_gateway.beans import read_id_list, read_identifier, read_label, read_text, split_ids
from efficy_gateway.client.api_client import EfficyApiClient
from efficy_gateway.client.errors import ServiceError, ServiceErrorKind
from efficy_gateway.client.http import HttpClient
from efficy_gateway.client.models import UserPreferenceOptions, UserPreferences, UserProfile

NEWSLETTER_FIELD = "PerNltID"
CONSENT_FIELD = "PerConsent_"
PREFERRED_MEDIA_FIELD = "PerPreferedMedia"

_PREFERRED_MEDIA_KEYS = (PREFERRED_MEDIA_FIELD, "PerPrefered.Media")


def _optional(*candidates: str) -> str | None:
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def read_preferred_media_id(bean: dict[str, Any]) -> str:
    for key in _PREFERRED_MEDIA_KEYS:
        direct = read_text(bean, key)
        if direct:
            return next(iter(split_ids(direct)), direct)

    # Some instances nest the field as ``PerPrefered: {Media: ...}``.
    nested = bean.get("PerPrefered")
    if isinstance(nested, dict):
        media = read_identifier(nested, "Media")
        if media:
            return next(iter(split_ids(media)), media)
    return ""


def to_user_profile(person_id: str, bean: dict[str, Any]) -> UserProfile:
    return UserProfile(
        person_id=person_id,
        first_name=read_text(bean, "PerFstName"),
        last_name=read_text(bean, "PerName"),
        email=read_text(bean, "PerMail") or read_text(bean, "PerEmail"),
        civility=_optional(read_label(bean, "PerCivID"), read_text(bean, "PerCivility")),
        title=_optional(read_text(bean, "PerTitle")),
        status=_optional(read_label(bean, "PerDataPrivStatus"), read_text(bean, "PerStatus")),
        phone=_optional(read_text(bean, "PerPhone")),
        mobile=_optional(read_text(bean, "PerMobile")),
        fax=_optional(read_text(bean, "PerFax")),
        address1=_optional(read_text(bean, "PerAd1")),
        address2=_optional(read_text(bean, "PerAd2")),
        address3=_optional(read_text(bean, "PerAd3")),
        city=_optional(read_text(bean, "PerCity")),
        postal_code=_optional(read_text(bean, "PerZip")),
        country=_optional(read_label(bean, "PerCtrID"), read_text(bean, "PerCountry")),
        company=_optional(read_label(bean, "PerEntID"), read_text(bean, "PerCompany")),
        birth_date=_optional(read_text(bean, "PerBirthDate"), read_text(bean, "PerBirthdayDate_")),
        client_number=_optional(read_text(bean, "PerNumClient")),
        loyalty_score=_optional(read_text(bean, "PerLoyaltyScore")),
        newsletter_ids=read_id_list(bean, NEWSLETTER_FIELD),
        consent_ids=read_id_list(bean, CONSENT_FIELD),
        preferred_media_id=read_preferred_media_id(bean),
    )


class ProfileService:
    def __init__(self, http: HttpClient) -> None:
        self.api = EfficyApiClient(http)

    async def fetch_current_user_profile(self) -> UserProfile:
        person_id = await self.api.get_current_user_person_id()
        if not person_id:
            raise ServiceError(ServiceErrorKind.PERSON_UNRESOLVED)

        bean = await self.api.get_person_by_id(person_id)
        if bean is None:
            raise ServiceError(ServiceErrorKind.PROFILE_UNAVAILABLE, person_id=person_id)
        return to_user_profile(person_id, bean)

    async def fetch_preference_options(self) -> UserPreferenceOptions:
        newsletters, consents, media = await asyncio.gather(
            self.api.fetch_referential_options(NEWSLETTER_FIELD),
            self.api.fetch_referential_options(CONSENT_FIELD),
            self.api.fetch_referential_options(PREFERRED_MEDIA_FIELD),
        )
        return UserPreferenceOptions(newsletter_options=newsletters, consent_options=consents, media_options=media)

    async def update_current_user_preferences(self, person_id: str, preferences: UserPreferences) -> None:
        await self.api.update_person_fields(
            person_id,
            {
                NEWSLETTER_FIELD: preferences.newsletter_ids,
                CONSENT_FIELD: preferences.consent_ids,
                PREFERRED_MEDIA_FIELD: preferences.preferred_media_id or "",
            },
        )
