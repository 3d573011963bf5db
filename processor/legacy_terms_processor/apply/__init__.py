"""
Apply module - from inbound records to legacy store transactions.

This module handles:
- Routing records to handlers and the per-partition applier loop
- One transaction per event, with rollback and failure reporting
- The nine domain handlers
- Resource terms set reconciliation
- User agreement eligibility gates

Invariants:
    - One event, one connection, one transaction
    - Offsets are committed whatever the outcome (at-most-once)
    - Handlers enforce existence, uniqueness and eligibility themselves;
      the store enforces none of them

How to change safely:
    - New event kinds need a topic, a contract, a payload type and a handler
    - Verify rollback leaves no partial writes for every new handler
"""

from .applier import Applier, EventRouter, RouteOutcome, RouteResult
from .coordinator import Handler, TransactionCoordinator
from .eligibility import EligibilityChecker
from .handlers import HANDLERS
from .reconcile import ReconcilePlan, reconcile

__all__ = [
    "Applier",
    "EventRouter",
    "RouteOutcome",
    "RouteResult",
    "Handler",
    "TransactionCoordinator",
    "EligibilityChecker",
    "HANDLERS",
    "ReconcilePlan",
    "reconcile",
]
