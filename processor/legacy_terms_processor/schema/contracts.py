"""
Structural contracts of the nine inbound event kinds.

Each kind has one contract for the whole envelope, with the kind's payload
contract nested under "payload". validate_event() checks a decoded record
against it before any store access and returns the envelope plus the typed
payload.

Invariants:
    - Every EventKind has exactly one contract
    - The envelope keeps the raw payload, so failure reports carry every
      original field including ones no contract names

How to change safely:
    - Adding an optional field is always safe
    - Making a field required rejects events producers already send
"""

from __future__ import annotations

from typing import Any

from ..errors import ContractViolation
from ..events import PAYLOAD_TYPES, Envelope, EventKind, Payload
from ..store.tables import AgreeabilityType
from .types import Contract, FieldKind, field

JSON_MIME_TYPE = "application/json"

TERMS_OF_USE = Contract(
    "terms_of_use",
    (
        field("id", FieldKind.ID, required=True),
        field("text", FieldKind.STRING),
        field("typeId", FieldKind.ID, required=True),
        field("created", FieldKind.DATE),
        field("updated", FieldKind.DATE),
        field("title", FieldKind.STRING, required=True),
        field("url", FieldKind.STRING),
        field("agreeabilityTypeId", FieldKind.ID, required=True),
        field(
            "docusignTemplateId",
            FieldKind.STRING,
            required_when=("agreeabilityTypeId", int(AgreeabilityType.DOCUSIGNABLE)),
        ),
    ),
)

TERMS_DELETE = Contract(
    "terms_of_use_delete",
    (field("termsOfUseId", FieldKind.ID, required=True),),
)

_RESOURCE_TERMS_KEYS = (
    field("reference", FieldKind.STRING),
    field("referenceId", FieldKind.DIGITS, required=True),
    field("tag", FieldKind.STRING, required=True),
    field("termsOfUseIds", FieldKind.ID_LIST, required=True),
)

RESOURCE_TERMS_CREATE = Contract(
    "resource_terms_create",
    _RESOURCE_TERMS_KEYS + (field("created", FieldKind.DATE, required=True),),
)

RESOURCE_TERMS_UPDATE = Contract(
    "resource_terms_update",
    _RESOURCE_TERMS_KEYS
    + (
        field("created", FieldKind.DATE, required=True),
        field("updated", FieldKind.DATE, required=True),
    ),
)

RESOURCE_TERMS_DELETE = Contract("resource_terms_delete", _RESOURCE_TERMS_KEYS)

USER_AGREEMENT = Contract(
    "user_terms_of_use",
    (
        field("userId", FieldKind.ID, required=True),
        field("termsOfUseId", FieldKind.ID, required=True),
        field("created", FieldKind.DATE),
    ),
)

ENVELOPE_CREATE = Contract(
    "docusign_envelope_create",
    (
        field("id", FieldKind.STRING, required=True),
        field("docusignTemplateId", FieldKind.STRING, required=True),
        field("userId", FieldKind.ID, required=True),
        field("isCompleted", FieldKind.FLAG, required=True),
    ),
)

ENVELOPE_UPDATE = Contract(
    "docusign_envelope_update",
    (
        field("id", FieldKind.STRING, required=True),
        field(
            "envelope",
            FieldKind.OBJECT,
            required=True,
            contract=Contract("envelope", (field("status", FieldKind.STRING, required=True),)),
        ),
    ),
)

PAYLOAD_CONTRACTS: dict[EventKind, Contract] = {
    EventKind.TERMS_CREATED: TERMS_OF_USE,
    EventKind.TERMS_UPDATED: TERMS_OF_USE,
    EventKind.TERMS_DELETED: TERMS_DELETE,
    EventKind.RESOURCE_TERMS_CREATED: RESOURCE_TERMS_CREATE,
    EventKind.RESOURCE_TERMS_UPDATED: RESOURCE_TERMS_UPDATE,
    EventKind.RESOURCE_TERMS_DELETED: RESOURCE_TERMS_DELETE,
    EventKind.USER_AGREED: USER_AGREEMENT,
    EventKind.ENVELOPE_CREATED: ENVELOPE_CREATE,
    EventKind.ENVELOPE_UPDATED: ENVELOPE_UPDATE,
}


def envelope_contract(payload: Contract) -> Contract:
    """Wrap a payload contract in the common envelope fields."""
    return Contract(
        "envelope",
        (
            field("topic", FieldKind.STRING, required=True),
            field("originator", FieldKind.STRING, required=True),
            field("timestamp", FieldKind.DATE, required=True),
            field("mime-type", FieldKind.STRING, required=True, enum_values=(JSON_MIME_TYPE,)),
            field("payload", FieldKind.OBJECT, required=True, contract=payload),
        ),
    )


ENVELOPE_CONTRACTS: dict[EventKind, Contract] = {
    kind: envelope_contract(contract) for kind, contract in PAYLOAD_CONTRACTS.items()
}


def validate_event(kind: EventKind, data: Any) -> tuple[Envelope, Payload]:
    """Check a decoded record against the contract of its kind.

    Args:
        kind: Event kind selected by the record's topic
        data: Decoded JSON record

    Returns:
        Tuple of (envelope, typed_payload)

    Raises:
        ContractViolation: With every violation found
    """
    normalized, errors = ENVELOPE_CONTRACTS[kind].validate(data)
    if errors:
        raise ContractViolation(f"Invalid {kind.value} event: {'; '.join(errors)}", errors)

    envelope = Envelope.from_dict({**normalized, "payload": data["payload"]})
    return envelope, PAYLOAD_TYPES[kind].from_dict(normalized["payload"])
