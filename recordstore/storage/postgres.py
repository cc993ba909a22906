from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from psycopg import errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from recordstore.logging import get_logger, mask_url_password
from recordstore.storage.common import (
    GROUPS_COLLECTION,
    IDENTIFIER_FIELD,
    PERMISSIONS_COLLECTION,
    ROLES_COLLECTION,
    assign_identifier,
    flatten_ids,
    identifier_constraint,
    quote_collection,
    record_already_exists,
    record_not_found,
    require_document,
    require_identifier,
)
from recordstore.storage.errors import ArgumentError
from recordstore.storage.models import GroupRef, UserData

# Two sessions racing through CREATE TABLE IF NOT EXISTS collide on the
# pg_type row (23505) or on the unique constraint's index (42P07).
_CREATE_RACE_ERRORS = (errors.UniqueViolation, errors.DuplicateTable)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


def _quote_catalog_name(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class PostgresRecordStore:
    """JSON document collections kept in lazily created Postgres tables.

    Every collection maps to one table with the columns ``sequential_id``,
    ``identifier`` and ``document``. Tables are never declared up front: reads
    treat a missing table as an empty collection, and writes create the table
    and retry the statement once.
    """

    def __init__(
        self,
        connection_string: str,
        *,
        pool: Optional[AsyncConnectionPool] = None,
        min_size: int = 1,
        max_size: int = 10,
    ) -> None:
        if connection_string is None:
            raise ArgumentError("Must provide a connection string")
        if not isinstance(connection_string, str) or not connection_string.strip():
            raise ArgumentError(
                f"The provided connection string is invalid: {connection_string!r}"
            )
        self.dsn = connection_string
        self.logger = get_logger(__name__)
        self.pool = pool if pool is not None else AsyncConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            open=False,
            kwargs={"row_factory": dict_row},
        )
        self._closed = False
        self.logger.info(
            "record_store_initialized",
            backend="postgres",
            dsn=mask_url_password(self.dsn),
        )

    async def __aenter__(self) -> "PostgresRecordStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> None:
        """Start the connection pool; a no-op when it is already running."""

        if self._closed:
            raise RuntimeError("record store is closed")
        await self.pool.open()

    async def close(self) -> None:
        """Close the pool. The store cannot be used afterwards."""

        self._closed = True
        await self.pool.close()

    async def _ensure_open(self) -> None:
        if self.pool.closed:
            await self.open()

    async def _execute(
        self, query: str, params: Optional[Sequence[Any]] = None
    ) -> QueryResult:
        await self._ensure_open()
        async with self.pool.connection() as conn:
            cur = await conn.execute(query, params)
            rows = await cur.fetchall() if cur.description else []
            return QueryResult(rows=list(rows), rowcount=cur.rowcount)

    async def _empty_on_missing_table(
        self, query: str, params: Optional[Sequence[Any]] = None
    ) -> QueryResult:
        try:
            return await self._execute(query, params)
        except errors.UndefinedTable:
            return QueryResult()

    async def _create_on_missing_table(
        self, collection: str, query: str, params: Optional[Sequence[Any]] = None
    ) -> QueryResult:
        """Run ``query``; if its table is missing, create it and run it once more."""

        try:
            return await self._execute(query, params)
        except errors.UndefinedTable:
            pass
        await self._provision_collection(collection)
        return await self._execute(query, params)

    async def _provision_collection(self, collection: str) -> None:
        table = quote_collection(collection)
        try:
            await self._execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    sequential_id BIGSERIAL PRIMARY KEY,
                    identifier TEXT NOT NULL,
                    document JSONB NOT NULL,
                    CONSTRAINT {identifier_constraint(collection)} UNIQUE (identifier)
                )
                """
            )
        except _CREATE_RACE_ERRORS as exc:
            self.logger.warning(
                "collection_create_race",
                collection=collection,
                error=str(exc),
                message="Table was created concurrently; continuing",
            )
            return
        self.logger.info("collection_provisioned", collection=collection)

    # records
    async def get_all(self, collection: str) -> List[Any]:
        table = quote_collection(collection)
        result = await self._empty_on_missing_table(f"SELECT document FROM {table}")
        return [row["document"] for row in result.rows]

    async def get(self, collection: str, identifier: str) -> Any:
        table = quote_collection(collection)
        require_identifier(identifier)
        result = await self._empty_on_missing_table(
            f"SELECT document FROM {table} WHERE identifier = %s", (identifier,)
        )
        if not result.rows:
            raise record_not_found(collection, identifier)
        return result.rows[0]["document"]

    async def create(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert ``record``, assigning a uuid4 ``_id`` when it has none."""

        table = quote_collection(collection)
        require_document(record)
        identifier = assign_identifier(record)
        try:
            await self._create_on_missing_table(
                collection,
                f"INSERT INTO {table} (document, identifier) VALUES (%s, %s)",
                (Jsonb(record), identifier),
            )
        except errors.UniqueViolation:
            raise record_already_exists(collection, identifier)
        return record

    async def update(
        self,
        collection: str,
        identifier: str,
        record: Dict[str, Any],
        upsert: bool = False,
    ) -> Dict[str, Any]:
        """Replace the document stored under ``identifier``.

        With ``upsert`` the record is inserted when absent; otherwise a missing
        record raises ``NotFoundError``.
        """

        table = quote_collection(collection)
        require_identifier(identifier)
        require_document(record)
        record[IDENTIFIER_FIELD] = identifier
        params = (Jsonb(record), identifier)

        if upsert:
            await self._create_on_missing_table(
                collection,
                f"""
                INSERT INTO {table} (document, identifier) VALUES (%s, %s)
                ON CONFLICT ON CONSTRAINT {identifier_constraint(collection)}
                DO UPDATE SET document = EXCLUDED.document
                """,
                params,
            )
        else:
            result = await self._empty_on_missing_table(
                f"UPDATE {table} SET document = %s WHERE identifier = %s", params
            )
            if result.rowcount == 0:
                raise record_not_found(collection, identifier)
        return record

    async def delete(self, collection: str, identifier: str) -> None:
        table = quote_collection(collection)
        require_identifier(identifier)
        await self._empty_on_missing_table(
            f"DELETE FROM {table} WHERE identifier = %s", (identifier,)
        )

    async def delete_all(self) -> None:
        """Drop every table in the current schema.

        Runs on a single connection checkout so the sweep commits as a whole or
        not at all.
        """

        await self._ensure_open()
        async with self.pool.connection() as conn:
            cur = await conn.execute(
                "SELECT schemaname, tablename FROM pg_tables WHERE schemaname = current_schema()"
            )
            tables = await cur.fetchall()
            for row in tables:
                await conn.execute(
                    "DROP TABLE IF EXISTS {}.{} CASCADE".format(
                        _quote_catalog_name(row["schemaname"]),
                        _quote_catalog_name(row["tablename"]),
                    )
                )
        self.logger.info("collections_dropped", count=len(tables))

    # authorization
    async def get_user_data(self, user_id: str) -> UserData:
        """Resolve the groups, roles and permissions reachable from ``user_id``.

        Roles come from the user's groups or from direct membership in the
        role's ``users`` array. Nothing is deduplicated: every reference path
        yields its own entry, so a role listed by two of the user's groups is
        returned twice and its permissions twice. Direct membership is a path
        of its own: a role the user holds directly and through a group is also
        returned twice. Group-referenced roles come first in group order, then
        directly assigned roles. The auth collections are expected to exist; a
        missing table is not recovered here.
        """

        require_identifier(user_id)
        member = Jsonb(user_id)

        groups = await self._execute(
            f"""
            SELECT identifier, document ->> 'name' AS name, document -> 'roles' AS roles
            FROM {quote_collection(GROUPS_COLLECTION)}
            WHERE document -> 'members' @> %s
            ORDER BY sequential_id
            """,
            (member,),
        )
        role_ids = flatten_ids(row["roles"] for row in groups.rows)

        roles_table = quote_collection(ROLES_COLLECTION)
        roles = await self._execute(
            f"""
            SELECT name, permissions FROM (
                SELECT r.document ->> 'name' AS name,
                       r.document -> 'permissions' AS permissions,
                       0 AS via, ref.ord AS ord
                FROM unnest(%s::text[]) WITH ORDINALITY AS ref(id, ord)
                JOIN {roles_table} r ON r.identifier = ref.id
                UNION ALL
                SELECT document ->> 'name', document -> 'permissions',
                       1, sequential_id
                FROM {roles_table}
                WHERE document -> 'users' @> %s
            ) matched
            ORDER BY via, ord
            """,
            (role_ids, member),
        )
        permission_ids = flatten_ids(row["permissions"] for row in roles.rows)

        permissions = await self._execute(
            f"""
            SELECT p.document ->> 'name' AS name
            FROM unnest(%s::text[]) WITH ORDINALITY AS ref(id, ord)
            JOIN {quote_collection(PERMISSIONS_COLLECTION)} p ON p.identifier = ref.id
            ORDER BY ref.ord
            """,
            (permission_ids,),
        )

        return UserData(
            groups=[GroupRef(id=row["identifier"], name=row["name"]) for row in groups.rows],
            roles=[row["name"] for row in roles.rows],
            permissions=[row["name"] for row in permissions.rows],
        )
