"""
Eligibility gates for user agreements.

A user may record agreement to a terms of use only when every gate passes,
checked in this order:

    1. type        the terms of use is electronically agreeable
    2. duplicate   the user has not already agreed
    3. dependency  the user has agreed to every direct dependency
    4. ban         the user is not banned from these terms

The first failing gate raises its IneligibleAgreement subclass; later gates
are not evaluated.

Invariants:
    - The dependency gate is one hop: only direct dependency edges are read,
      never their own dependencies
    - All reads go through the caller's gateway, inside its transaction
"""

from __future__ import annotations

import logging

from ..errors import (
    AlreadyAgreed,
    DependenciesNotMet,
    NotElectronicallyAgreeable,
    UserBanned,
)
from ..store import AgreeabilityType, RecordGateway, Tables

logger = logging.getLogger(__name__)


class EligibilityChecker:
    """Evaluates the agreement gates against one transaction's gateway."""

    def __init__(self, gateway: RecordGateway) -> None:
        self.gateway = gateway

    async def check(self, user_id: int, terms_of_use_id: int) -> None:
        """Run every gate in order.

        Raises:
            RecordNotFound: If the terms of use does not exist
            IneligibleAgreement: The subclass of the first failing gate
        """
        terms = await self.gateway.ensure_exists(
            Tables.TERMS_OF_USE, {"terms_of_use_id": terms_of_use_id}
        )
        self.check_type(terms, user_id, terms_of_use_id)
        await self.check_duplicate(user_id, terms_of_use_id)
        await self.check_dependencies(user_id, terms_of_use_id)
        await self.check_ban(user_id, terms_of_use_id)
        logger.debug(
            "Agreement eligible",
            extra={"user_id": user_id, "terms_of_use_id": terms_of_use_id},
        )

    @staticmethod
    def check_type(terms: dict, user_id: int, terms_of_use_id: int) -> None:
        agreeability = int(terms["terms_of_use_agreeability_type_id"])
        if agreeability != AgreeabilityType.ELECTRONICALLY_AGREEABLE:
            raise NotElectronicallyAgreeable(
                f"The term with id {terms_of_use_id} is not electronically agreeable.",
                user_id,
                terms_of_use_id,
            )

    async def check_duplicate(self, user_id: int, terms_of_use_id: int) -> None:
        agreed = await self.gateway.search(
            Tables.USER_TERMS_OF_USE_XREF,
            {"terms_of_use_id": terms_of_use_id, "user_id": user_id},
        )
        if agreed:
            raise AlreadyAgreed(
                f"User with id {user_id} has already agreed to terms with id {terms_of_use_id}",
                user_id,
                terms_of_use_id,
            )

    async def check_dependencies(self, user_id: int, terms_of_use_id: int) -> None:
        rows = await self.gateway.dependency_agreements(terms_of_use_id, user_id)
        missing = [int(row["dependency_terms_of_use_id"]) for row in rows if row["user_id"] is None]
        if missing:
            raise DependenciesNotMet(
                "You can't agree to this terms of use before you have agreed to all "
                "the dependencies terms of use.",
                user_id,
                terms_of_use_id,
                missing,
            )

    async def check_ban(self, user_id: int, terms_of_use_id: int) -> None:
        bans = await self.gateway.search(
            Tables.USER_TERMS_OF_USE_BAN_XREF,
            {"terms_of_use_id": terms_of_use_id, "user_id": user_id},
        )
        if bans:
            raise UserBanned(
                f"User with id {user_id} is banned from agreeing to terms with id {terms_of_use_id}",
                user_id,
                terms_of_use_id,
            )
