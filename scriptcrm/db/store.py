"""
Document Store - the persistence collaborator for the script service.

Records are plain JSON-safe dicts grouped into named collections and keyed by
opaque string ids. Two implementations share one contract:

  PostgresDocumentStore : JSONB rows in a single `documents` table
  InMemoryDocumentStore : dicts in process memory (tests, local runs)

Returned records always carry their id under the 'id' key.
"""

import copy
import logging
import re
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Protocol

import psycopg2
from psycopg2.extras import Json

from scriptcrm.db.connection import get_db_cursor
from scriptcrm.engine.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_DIRECTIONS = {'asc': 'ASC', 'desc': 'DESC'}


def _check_field(name: str) -> str:
    """Raise ValueError unless name is a plain identifier."""
    if not isinstance(name, str) or not _FIELD_RE.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return name


def _check_direction(direction: str) -> str:
    """Raise ValueError unless direction is asc or desc (any case)."""
    key = (direction or '').lower()
    if key not in _DIRECTIONS:
        raise ValueError(f"Invalid order direction: {direction!r}")
    return _DIRECTIONS[key]


class DocumentStore(Protocol):
    """Minimal contract the script service relies on."""

    def create(self, collection: str, record: Dict[str, Any]) -> str: ...

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]: ...

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        direction: str = 'asc',
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Dict[str, Any]]: ...


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemoryDocumentStore:
    """Dict-backed store. Records are deep-copied on the way in and out."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def create(self, collection: str, record: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        data = copy.deepcopy(record)
        data.pop('id', None)
        self._docs(collection)[doc_id] = data
        logger.debug(f"Created {collection}/{doc_id}")
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._docs(collection).get(doc_id)
        if data is None:
            return None
        return {**copy.deepcopy(data), 'id': doc_id}

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        docs = self._docs(collection)
        if doc_id not in docs:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        changes = copy.deepcopy(partial)
        changes.pop('id', None)
        docs[doc_id].update(changes)
        logger.debug(f"Updated {collection}/{doc_id}: {sorted(changes)}")

    def delete(self, collection: str, doc_id: str) -> None:
        docs = self._docs(collection)
        if doc_id not in docs:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        del docs[doc_id]
        logger.debug(f"Deleted {collection}/{doc_id}")

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        direction: str = 'asc',
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        descending = _check_direction(direction) == 'DESC'
        filters = filters or {}
        for key in filters:
            _check_field(key)

        rows = [
            {**copy.deepcopy(data), 'id': doc_id}
            for doc_id, data in self._docs(collection).items()
            if all(data.get(k) == v for k, v in filters.items())
        ]

        if order_by:
            _check_field(order_by)
            # Missing values sort last ascending, first descending, as SQL NULLs do in Postgres
            rows.sort(
                key=lambda r: (r.get(order_by) is None, r.get(order_by), r['id']),
                reverse=descending,
            )

        if start_after:
            ids = [r['id'] for r in rows]
            if start_after in ids:
                rows = rows[ids.index(start_after) + 1:]

        if limit is not None:
            rows = rows[:limit]
        return rows


# =============================================================================
# POSTGRESQL STORE
# =============================================================================

_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS documents (
        collection  TEXT NOT NULL,
        id          TEXT NOT NULL,
        data        JSONB NOT NULL,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (collection, id)
    );
    CREATE INDEX IF NOT EXISTS documents_data_gin ON documents USING GIN (data);
"""


class PostgresDocumentStore:
    """
    JSONB-backed store. One table, one row per document.
    Any psycopg2 failure surfaces as StorageError.
    """

    @contextmanager
    def _cursor(self):
        try:
            with get_db_cursor() as cur:
                yield cur
        except psycopg2.Error as exc:
            raise StorageError(f"Database error: {exc}") from exc

    def ensure_schema(self) -> None:
        """Create the documents table and its index if missing."""
        with self._cursor() as cur:
            cur.execute(_SCHEMA_SQL)
        logger.info("Document schema ensured")

    def create(self, collection: str, record: Dict[str, Any]) -> str:
        data = {k: v for k, v in record.items() if k != 'id'}
        doc_id = uuid.uuid4().hex
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO documents (collection, id, data, created_at, updated_at)
                VALUES (%s, %s, %s, NOW(), NOW())
                RETURNING id
            """, (collection, doc_id, Json(data)))
            doc_id = cur.fetchone()['id']
        logger.info(f"Created {collection}/{doc_id}")
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute("""
                SELECT id, data FROM documents
                WHERE collection = %s AND id = %s
            """, (collection, doc_id))
            row = cur.fetchone()
        if not row:
            logger.debug(f"get: {collection}/{doc_id} not found")
            return None
        return {**row['data'], 'id': row['id']}

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        data = {k: v for k, v in partial.items() if k != 'id'}
        with self._cursor() as cur:
            cur.execute("""
                UPDATE documents
                SET data = data || %s, updated_at = NOW()
                WHERE collection = %s AND id = %s
            """, (Json(data), collection, doc_id))
            found = cur.rowcount > 0
        if not found:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        logger.info(f"Updated {collection}/{doc_id}: {sorted(data)}")

    def delete(self, collection: str, doc_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("""
                DELETE FROM documents WHERE collection = %s AND id = %s
            """, (collection, doc_id))
            found = cur.rowcount > 0
        if not found:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        logger.info(f"Deleted {collection}/{doc_id}")

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        direction: str = 'asc',
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        sql_direction = _check_direction(direction)
        filters = filters or {}
        for key in filters:
            _check_field(key)

        conditions = ["collection = %(collection)s"]
        params: Dict[str, Any] = {'collection': collection}

        if filters:
            conditions.append("data @> %(filters)s")
            params['filters'] = Json(filters)

        if order_by:
            params['order_by'] = _check_field(order_by)
            sort_expr = "data->%(order_by)s"
        else:
            sort_expr = "created_at"

        if start_after:
            # Unknown cursor ids are ignored rather than returning nothing
            op = '<' if sql_direction == 'DESC' else '>'
            conditions.append(f"""(
                NOT EXISTS (SELECT 1 FROM documents WHERE collection = %(collection)s AND id = %(cursor)s)
                OR ({sort_expr}, id) {op} (
                    SELECT {sort_expr}, id FROM documents
                    WHERE collection = %(collection)s AND id = %(cursor)s
                )
            )""")
            params['cursor'] = start_after

        sql = f"""
            SELECT id, data FROM documents
            WHERE {' AND '.join(conditions)}
            ORDER BY {sort_expr} {sql_direction}, id {sql_direction}
        """
        if limit is not None:
            sql += " LIMIT %(limit)s"
            params['limit'] = int(limit)

        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()

        logger.debug(f"query: {collection} -> {len(rows)} rows (filters={sorted(filters)}, order_by={order_by})")
        return [{**row['data'], 'id': row['id']} for row in rows]
