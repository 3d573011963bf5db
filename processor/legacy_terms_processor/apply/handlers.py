"""
Domain handlers, one per event kind.

Every handler is an async function (gateway, payload) -> None that runs
inside the transaction the coordinator opened. A handler raises to abort;
the coordinator rolls back and reports. Handlers never commit, never catch
their own failures, and re-read every referenced row (there is no cache
shared between events).

Invariants:
    - Referenced rows are checked before any write of the same handler
    - Terms of use deletion removes dependent rows first, in a fixed order
    - Resource terms update leaves rows present in both sets untouched
    - A user agreement is written only after every eligibility gate passes

How to change safely:
    - A new event kind needs a handler here and an entry in HANDLERS
    - Keep checks ahead of writes; a partial write is rolled back but
      still costs a round trip per statement
"""

from __future__ import annotations

import logging

from ..errors import DomainError, DuplicateRecord
from ..events import (
    EnvelopeCreatePayload,
    EnvelopeUpdatePayload,
    EventKind,
    ResourceTermsPayload,
    TermsDeletePayload,
    TermsOfUsePayload,
    UserAgreementPayload,
)
from ..notify import summarize
from ..store import AgreeabilityType, RecordGateway, Tables, legacy_timestamp
from .coordinator import Handler
from .eligibility import EligibilityChecker
from .reconcile import reconcile

logger = logging.getLogger(__name__)

COMPLETED_STATUS = "Completed"


# Terms of use


async def _check_terms_lookups(gateway: RecordGateway, terms: TermsOfUsePayload) -> None:
    await gateway.ensure_exists(
        Tables.TERMS_OF_USE_AGREEABILITY_TYPE,
        {"terms_of_use_agreeability_type_id": terms.agreeability_type_id},
    )
    await gateway.ensure_exists(
        Tables.TERMS_OF_USE_TYPE,
        {"terms_of_use_type_id": terms.type_id},
    )


def _wants_template(terms: TermsOfUsePayload) -> bool:
    return (
        terms.docusign_template_id is not None
        and terms.agreeability_type_id == AgreeabilityType.DOCUSIGNABLE
    )


async def create_terms_of_use(gateway: RecordGateway, terms: TermsOfUsePayload) -> None:
    """Insert a terms of use and, for docusignable terms, its template link."""
    await _check_terms_lookups(gateway, terms)

    created = legacy_timestamp(terms.created)
    await gateway.insert(
        Tables.TERMS_OF_USE,
        {
            "terms_of_use_id": terms.id,
            "terms_text": terms.text,
            "terms_of_use_type_id": terms.type_id,
            "create_date": created,
            "modify_date": created,
            "title": terms.title,
            "url": terms.url,
            "terms_of_use_agreeability_type_id": terms.agreeability_type_id,
        },
    )

    if _wants_template(terms):
        await gateway.insert(
            Tables.TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF,
            {"terms_of_use_id": terms.id, "docusign_template_id": terms.docusign_template_id},
        )

    logger.info("Created terms of use", extra={"terms_of_use_id": terms.id})


async def update_terms_of_use(gateway: RecordGateway, terms: TermsOfUsePayload) -> None:
    """Update a terms of use and bring its template link in line with the payload."""
    where = {"terms_of_use_id": terms.id}
    await gateway.ensure_exists(Tables.TERMS_OF_USE, where)
    await _check_terms_lookups(gateway, terms)

    links = await gateway.search(Tables.TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF, where)
    if _wants_template(terms):
        if links:
            await gateway.update(
                Tables.TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF,
                {"docusign_template_id": terms.docusign_template_id},
                where,
            )
        else:
            await gateway.insert(
                Tables.TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF,
                {"terms_of_use_id": terms.id, "docusign_template_id": terms.docusign_template_id},
            )
    elif links:
        await gateway.delete(Tables.TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF, where)

    values = {
        "terms_text": terms.text,
        "terms_of_use_type_id": terms.type_id,
        "title": terms.title,
        "url": terms.url,
        "terms_of_use_agreeability_type_id": terms.agreeability_type_id,
        "modify_date": legacy_timestamp(terms.updated),
    }
    if terms.created is not None:
        values["create_date"] = legacy_timestamp(terms.created)
    await gateway.update(Tables.TERMS_OF_USE, values, where)

    logger.info("Updated terms of use", extra={"terms_of_use_id": terms.id})


async def delete_terms_of_use(gateway: RecordGateway, payload: TermsDeletePayload) -> None:
    """Delete a terms of use together with every row that references it."""
    terms_id = payload.terms_of_use_id
    where = {"terms_of_use_id": terms_id}
    await gateway.ensure_exists(Tables.TERMS_OF_USE, where)

    await gateway.delete(Tables.TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF, where)
    await gateway.delete(Tables.TERMS_OF_USE_DEPENDENCY, {"dependency_terms_of_use_id": terms_id})
    await gateway.delete(Tables.TERMS_OF_USE_DEPENDENCY, {"dependent_terms_of_use_id": terms_id})
    await gateway.delete(Tables.PROJECT_ROLE_TERMS_OF_USE_XREF, where)
    await gateway.delete(Tables.USER_TERMS_OF_USE_XREF, where)
    await gateway.delete(Tables.USER_TERMS_OF_USE_BAN_XREF, where)
    await gateway.delete(Tables.TERMS_OF_USE, where)

    logger.info("Deleted terms of use", extra={"terms_of_use_id": terms_id})


# Resource terms


async def _check_terms_ids(gateway: RecordGateway, terms_ids: tuple[int, ...]) -> None:
    missing = await gateway.missing_terms_ids(terms_ids)
    if missing:
        raise DomainError(
            f"The following terms doesn't exist: {summarize(missing)}",
            details={"missing": missing},
        )


async def _resolve_role(gateway: RecordGateway, tag: str) -> int:
    role = await gateway.ensure_exists(Tables.RESOURCE_ROLE, {"name": tag})
    return int(role["resource_role_id"])


async def create_resource_terms(gateway: RecordGateway, payload: ResourceTermsPayload) -> None:
    """Assign terms to a (project, role) pair; none of them may be assigned yet."""
    await _check_terms_ids(gateway, payload.terms_of_use_ids)
    role_id = await _resolve_role(gateway, payload.tag)

    existing = await gateway.resource_terms(payload.project_id, role_id, payload.terms_of_use_ids)
    if existing:
        raise DuplicateRecord(
            f"The following resource terms already exist {summarize(existing)}",
            details={"terms_of_use_ids": [int(row["terms_of_use_id"]) for row in existing]},
        )

    created = legacy_timestamp(payload.created)
    for terms_id in payload.terms_of_use_ids:
        await gateway.insert(
            Tables.PROJECT_ROLE_TERMS_OF_USE_XREF,
            {
                "project_id": payload.project_id,
                "resource_role_id": role_id,
                "terms_of_use_id": terms_id,
                "create_date": created,
                "modify_date": created,
            },
        )

    logger.info(
        "Created resource terms",
        extra={
            "project_id": payload.project_id,
            "resource_role_id": role_id,
            "count": len(payload.terms_of_use_ids),
        },
    )


async def update_resource_terms(gateway: RecordGateway, payload: ResourceTermsPayload) -> None:
    """Reconcile the stored terms of a (project, role) pair with the payload's set."""
    await _check_terms_ids(gateway, payload.terms_of_use_ids)
    role_id = await _resolve_role(gateway, payload.tag)

    stored = await gateway.resource_terms(payload.project_id, role_id)
    plan = reconcile(payload.terms_of_use_ids, (int(row["terms_of_use_id"]) for row in stored))

    for terms_id in plan.to_remove:
        await gateway.delete(
            Tables.PROJECT_ROLE_TERMS_OF_USE_XREF,
            {
                "project_id": payload.project_id,
                "resource_role_id": role_id,
                "terms_of_use_id": terms_id,
            },
        )

    created = legacy_timestamp(payload.created)
    updated = legacy_timestamp(payload.updated)
    for terms_id in plan.to_add:
        await gateway.insert(
            Tables.PROJECT_ROLE_TERMS_OF_USE_XREF,
            {
                "project_id": payload.project_id,
                "resource_role_id": role_id,
                "terms_of_use_id": terms_id,
                "create_date": created,
                "modify_date": updated,
            },
        )

    logger.info(
        "Updated resource terms",
        extra={
            "project_id": payload.project_id,
            "resource_role_id": role_id,
            "added": list(plan.to_add),
            "removed": list(plan.to_remove),
        },
    )


async def delete_resource_terms(gateway: RecordGateway, payload: ResourceTermsPayload) -> None:
    """Remove exactly the requested terms from a (project, role) pair."""
    await _check_terms_ids(gateway, payload.terms_of_use_ids)
    role_id = await _resolve_role(gateway, payload.tag)

    for terms_id in payload.terms_of_use_ids:
        await gateway.delete(
            Tables.PROJECT_ROLE_TERMS_OF_USE_XREF,
            {
                "project_id": payload.project_id,
                "resource_role_id": role_id,
                "terms_of_use_id": terms_id,
            },
        )

    logger.info(
        "Deleted resource terms",
        extra={"project_id": payload.project_id, "resource_role_id": role_id},
    )


# User agreements


async def agree_terms_of_use(gateway: RecordGateway, payload: UserAgreementPayload) -> None:
    """Record a user's agreement once every eligibility gate has passed."""
    await EligibilityChecker(gateway).check(payload.user_id, payload.terms_of_use_id)

    created = legacy_timestamp(payload.created)
    await gateway.insert(
        Tables.USER_TERMS_OF_USE_XREF,
        {
            "user_id": payload.user_id,
            "terms_of_use_id": payload.terms_of_use_id,
            "create_date": created,
            "modify_date": created,
        },
    )

    logger.info(
        "User agreed to terms of use",
        extra={"user_id": payload.user_id, "terms_of_use_id": payload.terms_of_use_id},
    )


# Docusign envelopes


async def create_docusign_envelope(gateway: RecordGateway, payload: EnvelopeCreatePayload) -> None:
    await gateway.insert(
        Tables.DOCUSIGN_ENVELOPE,
        {
            "docusign_envelope_id": payload.envelope_id,
            "docusign_template_id": payload.docusign_template_id,
            "user_id": payload.user_id,
            "is_completed": int(payload.is_completed),
        },
    )
    logger.info("Created docusign envelope", extra={"envelope_id": payload.envelope_id})


async def update_docusign_envelope(gateway: RecordGateway, payload: EnvelopeUpdatePayload) -> None:
    """Mark an envelope completed; any other status is a no-op."""
    if payload.status != COMPLETED_STATUS:
        logger.debug(
            "Ignoring envelope status",
            extra={"envelope_id": payload.envelope_id, "status": payload.status},
        )
        return

    where = {"docusign_envelope_id": payload.envelope_id}
    await gateway.ensure_exists(Tables.DOCUSIGN_ENVELOPE, where)
    await gateway.update(Tables.DOCUSIGN_ENVELOPE, {"is_completed": 1}, where)
    logger.info("Completed docusign envelope", extra={"envelope_id": payload.envelope_id})


HANDLERS: dict[EventKind, Handler] = {
    EventKind.TERMS_CREATED: create_terms_of_use,
    EventKind.TERMS_UPDATED: update_terms_of_use,
    EventKind.TERMS_DELETED: delete_terms_of_use,
    EventKind.RESOURCE_TERMS_CREATED: create_resource_terms,
    EventKind.RESOURCE_TERMS_UPDATED: update_resource_terms,
    EventKind.RESOURCE_TERMS_DELETED: delete_resource_terms,
    EventKind.USER_AGREED: agree_terms_of_use,
    EventKind.ENVELOPE_CREATED: create_docusign_envelope,
    EventKind.ENVELOPE_UPDATED: update_docusign_envelope,
}
