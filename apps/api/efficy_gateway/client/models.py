from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

AttachmentFile = Union[str, list[int]]

DEFAULT_ATTACHMENT_NAME = "attachment"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class Demande:
    id: str
    dmd_id: str
    description: str
    status: str
    date_created: str
    priority: str
    type: str | None = None
    assigned_to: str | None = None
    att_ids: list[str] | None = None


@dataclass
class Attachment:
    id: str
    name: str
    date_created: str
    mime_type: str | None = None
    file: AttachmentFile | None = None
    size: int | None = None


@dataclass(frozen=True)
class AttachmentUpload:
    name: str
    content: bytes
    mime_type: str = ""


@dataclass(frozen=True)
class DownloadedFile:
    name: str
    mime_type: str
    content: bytes


@dataclass
class Faq:
    id: str
    header_id: str
    title: str
    response: str
    tags: list[str] = field(default_factory=list)


@dataclass
class UserProfile:
    person_id: str
    first_name: str
    last_name: str
    email: str
    civility: str | None = None
    title: str | None = None
    status: str | None = None
    phone: str | None = None
    mobile: str | None = None
    fax: str | None = None
    address1: str | None = None
    address2: str | None = None
    address3: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None
    company: str | None = None
    birth_date: str | None = None
    client_number: str | None = None
    loyalty_score: str | None = None
    newsletter_ids: list[str] = field(default_factory=list)
    consent_ids: list[str] = field(default_factory=list)
    preferred_media_id: str = ""


@dataclass(frozen=True)
class UserPreferences:
    newsletter_ids: list[str]
    consent_ids: list[str]
    preferred_media_id: str


@dataclass(frozen=True)
class Qualification:
    id: str
    label: str
    description: str | None = None


@dataclass(frozen=True)
class ReferentialOption:
    id: str
    label: str


@dataclass(frozen=True)
class UserPreferenceOptions:
    newsletter_options: list[ReferentialOption]
    consent_options: list[ReferentialOption]
    media_options: list[ReferentialOption]


@dataclass(frozen=True)
class DemandeCreationOptions:
    qualifications: list[Qualification]
    priorities: list[ReferentialOption]


@dataclass(frozen=True)
class CreateDemandeInput:
    qualification_id: str
    description: str
    priority_id: str | None = None
    attachment: AttachmentUpload | None = None


class UploadTarget(str, Enum):
    PROFILE = "profile"
    DEMANDE = "demande"


@dataclass(frozen=True)
class UserDocuments:
    person_id: str
    documents: list[Attachment]


@dataclass(frozen=True)
class PersonInfo:
    name: str
    function_id: str


@dataclass
class BrokerOpportunity:
    enterprise_id: str
    person_id: str
    status_id: str
    state_id: str
    title: str
    date: str
    reference: str
    range_ids: list[str]
    probability_id: str
    protection_level_id: str
    insurance_scheme_id: str
    stake: float
    detail: str


@dataclass
class BrokerOpportunityWithDisplay(BrokerOpportunity):
    enterprise_name: str = ""
    person_name: str = ""
    person_position: str = ""
    status_label: str = ""
    state_label: str = ""
    range_labels: list[str] = field(default_factory=list)
    probability: float = 0.0
    protection_level_label: str = ""
    insurance_scheme_label: str = ""


@dataclass(frozen=True)
class BrokerEnterprise:
    id: str
    name: str


@dataclass(frozen=True)
class BrokerPerson:
    id: str
    name: str
    function_label: str


@dataclass(frozen=True)
class BrokerOpportunityFormOptions:
    states: list[ReferentialOption]
    probabilities: list[ReferentialOption]
    ranges: list[ReferentialOption]


@dataclass(frozen=True)
class BrokerCreateOpportunityInput:
    title: str
    detail: str
    enterprise_id: str
    person_id: str
    state_id: str
    probability_id: str
    sign_date: str
    amount: float
    range_ids: list[str]
    broker_enterprise_id: str
