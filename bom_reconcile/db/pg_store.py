from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .record_store import (
    DuplicateIdentityError,
    RecordHandle,
    RecordNotFoundError,
    RecordStoreError,
    _check_field_id,
    family_of,
)

"""PostgreSQL record store (psycopg2).

All records live in one table with JSONB field and sublist columns. External
ids are unique per family through a unique constraint, which is what resolves
two workers racing to create the same identity: the loser gets
DuplicateIdentityError and the row is counted as a soft failure.

Each operation borrows its own connection from a ThreadedConnectionPool and
runs in autocommit mode. There is no cross-operation transaction: a run that
stops half way leaves its completed records in place and the next run
carries on from them.
"""

try:  # pragma: no cover - optional until psycopg2 present at runtime
    import psycopg2
    from psycopg2 import errors as pg_errors
    from psycopg2.extras import Json
    from psycopg2.pool import ThreadedConnectionPool
except Exception:  # pragma: no cover
    psycopg2 = None  # type: ignore
    pg_errors = None  # type: ignore
    Json = None  # type: ignore
    ThreadedConnectionPool = None  # type: ignore

logger = logging.getLogger(__name__)


def _jsonb(value: Any) -> Any:
    # Decimal quantities / prices are stored as strings
    return Json(value, dumps=lambda o: json.dumps(o, default=str))

TABLE = "bom_records"

DDL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    ref         BIGSERIAL PRIMARY KEY,
    family      TEXT NOT NULL,
    kind        TEXT NOT NULL,
    external_id TEXT,
    fields      JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    sublists    JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (family, external_id)
)
"""


class PostgresRecordStore:
    """RecordStore on a psycopg2 connection pool."""

    def __init__(self, dsn: str, min_conn: int = 1, max_conn: int = 8) -> None:
        if ThreadedConnectionPool is None:
            raise RecordStoreError("psycopg2 not available")
        try:
            self._pool = ThreadedConnectionPool(min_conn, max_conn, dsn)
        except psycopg2.Error as e:
            raise RecordStoreError(f"connection failed: {e}") from e

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        conn = self._pool.getconn()
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                yield cur
        finally:
            self._pool.putconn(conn)

    def ensure_schema(self) -> None:
        try:
            with self._cursor() as cur:
                cur.execute(DDL)
        except psycopg2.Error as e:
            raise RecordStoreError(f"schema setup failed: {e}") from e
        logger.debug("record table ensured: %s", TABLE)

    def close(self) -> None:
        self._pool.closeall()

    def find_by_external_id(self, kind: str, external_id: str) -> int | None:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT ref FROM {TABLE} WHERE family = %s AND external_id = %s LIMIT 1",
                (family_of(kind), external_id),
            )
            row = cur.fetchone()
        return row[0] if row else None

    def create(
        self, kind: str, fields: dict[str, Any], sublists: dict[str, list[dict[str, Any]]] | None = None
    ) -> int:
        for key in fields:
            _check_field_id(key)
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"INSERT INTO {TABLE} (family, kind, external_id, fields, sublists) "
                    "VALUES (%s, %s, %s, %s, %s) RETURNING ref",
                    (
                        family_of(kind),
                        kind,
                        fields.get("externalid"),
                        _jsonb(fields),
                        _jsonb(sublists or {}),
                    ),
                )
                return cur.fetchone()[0]
        except pg_errors.UniqueViolation as e:
            raise DuplicateIdentityError(
                f"{family_of(kind)} with external id {fields.get('externalid')!r} already exists"
            ) from e
        except psycopg2.Error as e:
            raise RecordStoreError(str(e)) from e

    def load(self, kind: str, ref: Any) -> RecordHandle:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT kind, fields, sublists FROM {TABLE} WHERE ref = %s AND family = %s",
                (ref, family_of(kind)),
            )
            row = cur.fetchone()
        if row is None:
            raise RecordNotFoundError(f"{kind} {ref} not found")
        stored_kind, fields, sublists = row
        return RecordHandle(kind=stored_kind, ref=ref, fields=dict(fields), sublists=dict(sublists))

    def save(self, handle: RecordHandle) -> int:
        if handle.ref is None:
            handle.ref = self.create(handle.kind, handle.fields, handle.sublists)
            return handle.ref
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"UPDATE {TABLE} SET external_id = %s, fields = %s, sublists = %s, updated_at = now() "
                    "WHERE ref = %s",
                    (handle.external_id, _jsonb(handle.fields), _jsonb(handle.sublists), handle.ref),
                )
                if cur.rowcount == 0:
                    raise RecordNotFoundError(f"{handle.kind} {handle.ref} not found")
        except pg_errors.UniqueViolation as e:
            raise DuplicateIdentityError(str(e)) from e
        except psycopg2.Error as e:
            raise RecordStoreError(str(e)) from e
        return handle.ref
