"""
Event kinds, the inbound envelope and typed payloads.

Every inbound record is a JSON envelope:

    {
        "topic": "terms.notification.user.agreed",
        "originator": "terms-api",
        "timestamp": "2026-10-17T08:00:00.000Z",
        "mime-type": "application/json",
        "payload": {"userId": 42, "termsOfUseId": 5001}
    }

The topic selects one of nine EventKinds; once its contract has been checked
the payload is turned into the frozen dataclass for that kind.

Invariants:
    - EventKind is closed; a topic with no kind is ignored, not an error
    - Typed payloads are built only from contract-normalized dicts
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from .config import TopicsConfig


class ReportGroup(Enum):
    """Failure report families; each has its own mail subject."""

    TERMS_OF_USE = "terms_of_use"
    RESOURCE_TERMS = "resource_terms"
    USER_TERMS_OF_USE = "user_terms_of_use"
    DOCUSIGN_ENVELOPE = "docusign_envelope"


class EventKind(Enum):
    """The nine event kinds the processor handles."""

    TERMS_CREATED = "terms_created"
    TERMS_UPDATED = "terms_updated"
    TERMS_DELETED = "terms_deleted"
    RESOURCE_TERMS_CREATED = "resource_terms_created"
    RESOURCE_TERMS_UPDATED = "resource_terms_updated"
    RESOURCE_TERMS_DELETED = "resource_terms_deleted"
    USER_AGREED = "user_agreed"
    ENVELOPE_CREATED = "envelope_created"
    ENVELOPE_UPDATED = "envelope_updated"

    @property
    def report_group(self) -> ReportGroup:
        if self in (EventKind.TERMS_CREATED, EventKind.TERMS_UPDATED, EventKind.TERMS_DELETED):
            return ReportGroup.TERMS_OF_USE
        if self in (
            EventKind.RESOURCE_TERMS_CREATED,
            EventKind.RESOURCE_TERMS_UPDATED,
            EventKind.RESOURCE_TERMS_DELETED,
        ):
            return ReportGroup.RESOURCE_TERMS
        if self == EventKind.USER_AGREED:
            return ReportGroup.USER_TERMS_OF_USE
        return ReportGroup.DOCUSIGN_ENVELOPE


def topic_map(topics: TopicsConfig) -> dict[str, EventKind]:
    """Map each configured inbound topic to its event kind."""
    return {
        topics.terms_created: EventKind.TERMS_CREATED,
        topics.terms_updated: EventKind.TERMS_UPDATED,
        topics.terms_deleted: EventKind.TERMS_DELETED,
        topics.resource_terms_created: EventKind.RESOURCE_TERMS_CREATED,
        topics.resource_terms_updated: EventKind.RESOURCE_TERMS_UPDATED,
        topics.resource_terms_deleted: EventKind.RESOURCE_TERMS_DELETED,
        topics.user_agreed: EventKind.USER_AGREED,
        topics.envelope_created: EventKind.ENVELOPE_CREATED,
        topics.envelope_updated: EventKind.ENVELOPE_UPDATED,
    }


@dataclass(frozen=True)
class Envelope:
    """The outer message wrapper.

    Attributes:
        topic: Declared topic; must equal the topic the record arrived on
        originator: Producing service
        timestamp: When the event was produced (UTC)
        mime_type: Payload encoding
        payload: Raw payload, unknown keys included
    """

    topic: str
    originator: str
    timestamp: datetime
    mime_type: str
    payload: dict[str, Any]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Envelope:
        return cls(
            topic=data["topic"],
            originator=data["originator"],
            timestamp=data["timestamp"],
            mime_type=data["mime-type"],
            payload=data["payload"],
        )


@dataclass(frozen=True)
class TermsOfUsePayload:
    """Terms of use create/update payload."""

    id: int
    type_id: int
    agreeability_type_id: int
    title: str
    text: str | None = None
    url: str | None = None
    docusign_template_id: str | None = None
    created: datetime | None = None
    updated: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TermsOfUsePayload:
        return cls(
            id=data["id"],
            type_id=data["typeId"],
            agreeability_type_id=data["agreeabilityTypeId"],
            title=data["title"],
            text=data.get("text"),
            url=data.get("url"),
            docusign_template_id=data.get("docusignTemplateId"),
            created=data.get("created"),
            updated=data.get("updated"),
        )


@dataclass(frozen=True)
class TermsDeletePayload:
    terms_of_use_id: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TermsDeletePayload:
        return cls(terms_of_use_id=data["termsOfUseId"])


@dataclass(frozen=True)
class ResourceTermsPayload:
    """Resource terms create/update/delete payload.

    Attributes:
        project_id: The referenced project (``referenceId``)
        tag: Resource role name
        terms_of_use_ids: Desired terms ids, duplicates already rejected
        reference: Kind of reference, informational
        created: Creation time (create/update)
        updated: Modification time (update)
    """

    project_id: int
    tag: str
    terms_of_use_ids: tuple[int, ...]
    reference: str | None = None
    created: datetime | None = None
    updated: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceTermsPayload:
        return cls(
            project_id=int(data["referenceId"]),
            tag=data["tag"],
            terms_of_use_ids=tuple(data["termsOfUseIds"]),
            reference=data.get("reference"),
            created=data.get("created"),
            updated=data.get("updated"),
        )


@dataclass(frozen=True)
class UserAgreementPayload:
    user_id: int
    terms_of_use_id: int
    created: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserAgreementPayload:
        return cls(
            user_id=data["userId"],
            terms_of_use_id=data["termsOfUseId"],
            created=data.get("created"),
        )


@dataclass(frozen=True)
class EnvelopeCreatePayload:
    envelope_id: str
    docusign_template_id: str
    user_id: int
    is_completed: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnvelopeCreatePayload:
        return cls(
            envelope_id=data["id"],
            docusign_template_id=data["docusignTemplateId"],
            user_id=data["userId"],
            is_completed=data["isCompleted"],
        )


@dataclass(frozen=True)
class EnvelopeUpdatePayload:
    """Envelope status change; only "Completed" has an effect."""

    envelope_id: str
    status: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnvelopeUpdatePayload:
        return cls(envelope_id=data["id"], status=data["envelope"]["status"])


Payload = Union[
    TermsOfUsePayload,
    TermsDeletePayload,
    ResourceTermsPayload,
    UserAgreementPayload,
    EnvelopeCreatePayload,
    EnvelopeUpdatePayload,
]

PAYLOAD_TYPES: dict[EventKind, type] = {
    EventKind.TERMS_CREATED: TermsOfUsePayload,
    EventKind.TERMS_UPDATED: TermsOfUsePayload,
    EventKind.TERMS_DELETED: TermsDeletePayload,
    EventKind.RESOURCE_TERMS_CREATED: ResourceTermsPayload,
    EventKind.RESOURCE_TERMS_UPDATED: ResourceTermsPayload,
    EventKind.RESOURCE_TERMS_DELETED: ResourceTermsPayload,
    EventKind.USER_AGREED: UserAgreementPayload,
    EventKind.ENVELOPE_CREATED: EnvelopeCreatePayload,
    EventKind.ENVELOPE_UPDATED: EnvelopeUpdatePayload,
}
