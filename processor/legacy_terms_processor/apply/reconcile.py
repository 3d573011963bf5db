"""
Set reconciliation for resource role terms assignments.

A resource terms update carries the complete desired set of terms ids for
one (project, resource role) pair. The stored set is brought to it by
deleting what is no longer wanted and inserting what is missing; rows in
both sets are left untouched.

Invariants:
    - Inputs are treated as sets; duplicates collapse and order is irrelevant
    - Reconciling a desired set against a store already in that state yields
      an empty plan
    - to_add and to_remove never intersect
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class ReconcilePlan:
    """Writes needed to move a stored set to a desired set.

    Attributes:
        to_add: Ids wanted but not stored, ascending
        to_remove: Ids stored but no longer wanted, ascending
        unchanged: Ids in both sets, ascending
    """

    to_add: tuple[int, ...]
    to_remove: tuple[int, ...]
    unchanged: tuple[int, ...]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def reconcile(desired: Iterable[int], stored: Iterable[int]) -> ReconcilePlan:
    """Compute the difference between desired and stored membership.

    Example:
        >>> plan = reconcile([11, 12], [10, 11])
        >>> plan.to_add, plan.to_remove, plan.unchanged
        ((12,), (10,), (11,))
    """
    wanted = set(desired)
    present = set(stored)
    return ReconcilePlan(
        to_add=tuple(sorted(wanted - present)),
        to_remove=tuple(sorted(present - wanted)),
        unchanged=tuple(sorted(wanted & present)),
    )
