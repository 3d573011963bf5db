"""
Record store gateway for the legacy relational store.

The gateway wraps one borrowed connection that already has a transaction
open (the coordinator owns BEGIN/COMMIT/ROLLBACK) and offers the generic
operations the handlers are written in: insert, update, delete, search and
ensure-exists, plus the handful of domain queries that need joins or IN
lists.

Invariants:
    - Values are always bound, never interpolated into SQL
    - Rows come back as plain dicts keyed by column name
    - The gateway never commits; it only runs statements

How to change safely:
    - Keep every statement inside query.py builders or bound SQL constants
    - Log statements at DEBUG only; payload text can be large
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from typing import Any

from ..errors import RecordNotFound
from . import query as q
from .tables import Tables

logger = logging.getLogger(__name__)

# One-hop dependency lookup: every direct dependency of a terms of use,
# with the user's agreement row if there is one.
_DEPENDENCY_AGREEMENTS_SQL = f"""
    SELECT d.dependency_terms_of_use_id AS dependency_terms_of_use_id,
           u.user_id AS user_id
    FROM {Tables.TERMS_OF_USE_DEPENDENCY} d
    LEFT OUTER JOIN {Tables.USER_TERMS_OF_USE_XREF} u
        ON u.terms_of_use_id = d.dependency_terms_of_use_id
        AND u.user_id = ?
    WHERE d.dependent_terms_of_use_id = ?
"""


class RecordGateway:
    """Generic parametrized operations over one transaction's connection.

    Example:
        >>> async with pool.acquire() as conn:
        ...     gateway = RecordGateway(conn)
        ...     await gateway.begin()
        ...     row = await gateway.ensure_exists(Tables.TERMS_OF_USE, {"terms_of_use_id": 7})
        ...     await gateway.commit()
    """

    def __init__(self, connection: Any) -> None:
        self.connection = connection

    # Transaction control (used by the coordinator only)

    async def begin(self) -> None:
        self.connection.execute("BEGIN")

    async def commit(self) -> None:
        self.connection.execute("COMMIT")

    async def rollback(self) -> None:
        self.connection.execute("ROLLBACK")

    # Generic operations

    async def execute(self, query: q.Query) -> Any:
        """Run a built query and return the cursor."""
        logger.debug("Executing statement", extra={"sql": query.sql})
        return self.connection.execute(query.sql, query.params)

    async def insert(self, table: str, values: Mapping[str, Any]) -> None:
        await self.execute(q.insert(table, values))

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> int:
        """Update matching rows and return how many were changed."""
        cursor = await self.execute(q.update(table, values, where))
        return cursor.rowcount

    async def delete(self, table: str, where: Mapping[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""
        cursor = await self.execute(q.delete(table, where))
        return cursor.rowcount

    async def search(self, table: str, where: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Return every row of table matching all conditions."""
        cursor = await self.execute(q.select(table, where))
        return _rows(cursor)

    async def ensure_exists(self, table: str, where: Mapping[str, Any]) -> dict[str, Any]:
        """Return the first matching row.

        Raises:
            RecordNotFound: If no row matches
        """
        rows = await self.search(table, where)
        if not rows:
            raise RecordNotFound(table, dict(where))
        return rows[0]

    # Domain queries

    async def missing_terms_ids(self, terms_ids: Collection[int]) -> list[int]:
        """Return the requested terms ids that have no terms_of_use row, in request order."""
        cursor = await self.execute(
            q.select(
                Tables.TERMS_OF_USE,
                {"terms_of_use_id": q.In(terms_ids)},
                columns=("terms_of_use_id",),
            )
        )
        found = {int(row["terms_of_use_id"]) for row in _rows(cursor)}
        return [terms_id for terms_id in terms_ids if terms_id not in found]

    async def resource_terms(
        self,
        project_id: int,
        resource_role_id: int,
        terms_ids: Collection[int] | None = None,
    ) -> list[dict[str, Any]]:
        """Assignment rows of a (project, role) pair, optionally narrowed to terms_ids."""
        where: dict[str, Any] = {"project_id": project_id, "resource_role_id": resource_role_id}
        if terms_ids:
            where["terms_of_use_id"] = q.In(terms_ids)
        return await self.search(Tables.PROJECT_ROLE_TERMS_OF_USE_XREF, where)

    async def dependency_agreements(self, terms_of_use_id: int, user_id: int) -> list[dict[str, Any]]:
        """Direct dependencies of terms_of_use_id joined with user_id's agreements.

        A row whose user_id is None is a dependency the user has not agreed to.
        """
        cursor = await self.execute(q.Query(_DEPENDENCY_AGREEMENTS_SQL, (user_id, terms_of_use_id)))
        return _rows(cursor)


def _rows(cursor: Any) -> list[dict[str, Any]]:
    """Materialize a cursor as dicts using its column description."""
    if cursor.description is None:
        return []
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]
