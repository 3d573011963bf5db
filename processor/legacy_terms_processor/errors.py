"""
Error types for the legacy terms processor.

Hierarchy:
    ProcessorError
    ├── MalformedEnvelope        (unparseable record or topic mismatch)
    ├── ContractViolation        (payload failed its structural contract)
    ├── DomainError              (rolled back + reported)
    │   ├── RecordNotFound
    │   ├── DuplicateRecord
    │   └── IneligibleAgreement
    │       ├── NotElectronicallyAgreeable
    │       ├── AlreadyAgreed
    │       ├── DependenciesNotMet
    │       └── UserBanned
    └── HandlerFailed            (raised by the coordinator after rollback)

Invariants:
    - Malformed and contract errors never reach a transaction
    - Domain and infrastructure errors are always wrapped in HandlerFailed
      once they cross the coordinator
"""

from __future__ import annotations

from typing import Any


class ProcessorError(Exception):
    """Base exception for all processor errors.

    Attributes:
        message: Error message
        details: Additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MalformedEnvelope(ProcessorError):
    """Record could not be decoded or arrived on the wrong topic."""

    pass


class ContractViolation(ProcessorError):
    """Payload does not satisfy the structural contract of its event kind.

    Attributes:
        errors: Every violation found, in field order
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class DomainError(ProcessorError):
    """An invariant the legacy store cannot enforce was violated."""

    pass


class RecordNotFound(DomainError):
    """A referenced row does not exist."""

    def __init__(self, table: str, conditions: dict[str, Any]) -> None:
        super().__init__(
            f"{table} records matching conditions {conditions} does not exist",
            details={"table": table, "conditions": conditions},
        )
        self.table = table
        self.conditions = conditions


class DuplicateRecord(DomainError):
    """A row that must be unique already exists."""

    pass


class IneligibleAgreement(DomainError):
    """User may not agree to the terms of use."""

    def __init__(self, message: str, user_id: int, terms_of_use_id: int) -> None:
        super().__init__(message, details={"user_id": user_id, "terms_of_use_id": terms_of_use_id})
        self.user_id = user_id
        self.terms_of_use_id = terms_of_use_id


class NotElectronicallyAgreeable(IneligibleAgreement):
    pass


class AlreadyAgreed(IneligibleAgreement):
    pass


class DependenciesNotMet(IneligibleAgreement):
    """At least one direct dependency has not been agreed to.

    Attributes:
        missing: Dependency terms ids the user has not agreed to
    """

    def __init__(self, message: str, user_id: int, terms_of_use_id: int, missing: list[int]) -> None:
        super().__init__(message, user_id, terms_of_use_id)
        self.missing = missing
        self.details["missing"] = missing


class UserBanned(IneligibleAgreement):
    pass


class HandlerFailed(ProcessorError):
    """A domain handler failed and its transaction was rolled back."""

    pass
