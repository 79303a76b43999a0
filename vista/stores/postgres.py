"""
Document store on Postgres: one JSONB row per (collection, id).

Predicates map onto JSONB operators (=, >=, <=, @>) so filtering happens in the
database; top-level merges use the || operator, so concurrent updates to disjoint
fields of one document both survive.
"""

import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from vista.errors import StoreError
from vista.stores.base import Operator, Predicate

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COMPARISONS = {
    Operator.EQ: "=",
    Operator.GTE: ">=",
    Operator.LTE: "<=",
}


async def create_pool(database_url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(database_url, min_size=1, max_size=10)


class PostgresDocumentStore:
    """Wraps either a pool or a connection that is inside a transaction."""

    def __init__(self, executor, table: str = "catalog_documents"):
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name '{table}'")
        self._executor = executor
        self._table = table

    async def ensure_schema(self) -> None:
        await self._run(
            "execute",
            f"""CREATE TABLE IF NOT EXISTS {self._table} (
                   collection TEXT NOT NULL,
                   id TEXT NOT NULL,
                   data JSONB NOT NULL,
                   PRIMARY KEY (collection, id)
               )""",
        )
        await self._run(
            "execute",
            f"CREATE INDEX IF NOT EXISTS {self._table}_data_gin ON {self._table} USING GIN (data)",
        )

    async def create(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        await self._run(
            "execute",
            f"INSERT INTO {self._table} (collection, id, data) VALUES ($1, $2, $3::jsonb)",
            collection, doc_id, json.dumps(fields),
        )

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        row = await self._run(
            "fetchrow",
            f"SELECT data FROM {self._table} WHERE collection = $1 AND id = $2",
            collection, doc_id,
        )
        return json.loads(row["data"]) if row else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> bool:
        row = await self._run(
            "fetchrow",
            f"""UPDATE {self._table} SET data = data || $3::jsonb
                WHERE collection = $1 AND id = $2
                RETURNING id""",
            collection, doc_id, json.dumps(fields),
        )
        return row is not None

    async def delete(self, collection: str, doc_id: str) -> bool:
        row = await self._run(
            "fetchrow",
            f"DELETE FROM {self._table} WHERE collection = $1 AND id = $2 RETURNING id",
            collection, doc_id,
        )
        return row is not None

    async def query(
        self,
        collection: str,
        predicates: list[Predicate],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        sql, params = build_query(self._table, collection, predicates, order_by, descending, limit)
        rows = await self._run("fetch", sql, *params)
        return [json.loads(r["data"]) for r in rows]

    @asynccontextmanager
    async def transaction(self):
        if isinstance(self._executor, asyncpg.pool.Pool):
            async with self._executor.acquire() as conn:
                async with conn.transaction(isolation="serializable"):
                    yield PostgresDocumentStore(conn, self._table)
        else:
            # already bound to a connection: nest as a savepoint
            async with self._executor.transaction():
                yield self

    async def _run(self, method: str, sql: str, *params):
        try:
            return await getattr(self._executor, method)(sql, *params)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Document store call failed: %s", e)
            raise StoreError(f"Document store error: {e}") from e


def build_query(
    table: str,
    collection: str,
    predicates: list[Predicate],
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> tuple[str, list[Any]]:
    """Translate predicates into a parameterized SELECT."""
    clauses = ["collection = $1"]
    params: list[Any] = [collection]

    for predicate in predicates:
        params.append(predicate.field)
        field_ref = f"data -> ${len(params)}::text"
        params.append(json.dumps(predicate.value))
        value_ref = f"${len(params)}::jsonb"
        if predicate.op is Operator.ARRAY_CONTAINS:
            clauses.append(f"{field_ref} @> jsonb_build_array({value_ref})")
        elif predicate.op in (Operator.GTE, Operator.LTE):
            # jsonb orders across types (string < number < boolean); keep ranges within one type
            clauses.append(
                f"jsonb_typeof({field_ref}) = jsonb_typeof({value_ref}) "
                f"AND {field_ref} {_COMPARISONS[predicate.op]} {value_ref}"
            )
        else:
            clauses.append(f"{field_ref} {_COMPARISONS[predicate.op]} {value_ref}")

    sql = f"SELECT data FROM {table} WHERE {' AND '.join(clauses)}"

    if order_by:
        params.append(order_by)
        order_ref = f"data -> ${len(params)}::text"
        direction = "DESC" if descending else "ASC"
        # documents without the field are left out, as in the in-memory store
        sql += f" AND jsonb_typeof({order_ref}) <> 'null' ORDER BY {order_ref} {direction}"
    if limit is not None:
        params.append(limit)
        sql += f" LIMIT ${len(params)}"
    return sql, params
