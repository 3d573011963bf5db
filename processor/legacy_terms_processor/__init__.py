"""
Legacy Terms Processor - keeps the legacy relational store in step with terms events.

This package consumes domain events about terms of use, their per-resource
assignments, user agreements and DocuSign envelopes, and applies each one to
the legacy relational store inside a single transaction:

Architecture:
    ┌──────────────────┐     ┌─────────────┐     ┌──────────────────────┐
    │  Kafka topics    │────▶│   Applier   │────▶│     EventRouter      │
    │  (9 event kinds) │     │ (per-part.) │     │ envelope + contract  │
    └──────────────────┘     └─────────────┘     └──────────┬───────────┘
                                                            │
                                                            ▼
                                              ┌──────────────────────────┐
                                              │  TransactionCoordinator  │
                                              │  BEGIN / handler / COMMIT│
                                              └────┬───────────────┬─────┘
                                                   │               │ failure
                                                   ▼               ▼
                                            ┌────────────┐  ┌──────────────┐
                                            │ Legacy SQL │  │ Support topic│
                                            │   store    │  │ (failure rpt)│
                                            └────────────┘  └──────────────┘

Invariants:
    - Every consumed record is acknowledged once its handler returns,
      whatever the outcome (at-most-once processing)
    - One event never spans more than one connection or transaction
    - Consistency rules the store cannot express (existence, uniqueness,
      eligibility, bans) are checked inside the handler's transaction
    - No cross-event cache: every handler re-reads what it needs

How to change safely:
    - New event kinds need a topic, a contract and a handler
    - Keep check order inside handlers stable; it is observable in reports
    - Test rollback paths by asserting on follow-up reads

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
