"""
Event payload contracts.

This module provides:
- Field kinds and contract building blocks (types.py)
- One contract per event kind and validate_event() (contracts.py)
"""

from .contracts import ENVELOPE_CONTRACTS, PAYLOAD_CONTRACTS, validate_event
from .types import Contract, FieldDef, FieldKind, field

__all__ = [
    "ENVELOPE_CONTRACTS",
    "PAYLOAD_CONTRACTS",
    "validate_event",
    "Contract",
    "FieldDef",
    "FieldKind",
    "field",
]
