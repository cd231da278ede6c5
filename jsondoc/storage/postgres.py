from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Sequence

from psycopg import Connection
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from jsondoc.codec import MessageCodec
from jsondoc.storage.common import DocumentStore
from jsondoc.storage.paths import sql_path
from jsondoc.storage.predicates import (
    QueryOptions,
    build_options,
    build_predicate,
    id_predicate,
    json_param,
)
from jsondoc.storage.schema import (
    LOOKUP_COLUMN,
    PAYLOAD_COLUMN,
    CollectionInfo,
    create_table_statements,
)


class PostgresDocumentStore(DocumentStore):
    """Document collections stored as ``JSONB`` rows in PostgreSQL.

    Each collection is a table with a ``data JSONB`` payload and, when
    ``lookup_column`` is on, an indexed ``doc_id`` column generated from
    ``data -> 'id'``.

    The ``*_tx`` methods take the connection yielded by ``transaction()``.
    They resolve unseen collections on a second pooled connection, so the
    pool needs ``max_size >= 2`` when a transaction is the first thing to
    touch a collection.
    """

    def __init__(
        self,
        dsn: str,
        *,
        lookup_column: bool = True,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
        codec: Optional[MessageCodec] = None,
        pool: Optional[ConnectionPool] = None,
    ) -> None:
        super().__init__(codec=codec, lookup_column=lookup_column)
        self.dsn = dsn
        self.pool = pool or ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
            kwargs={"row_factory": dict_row, "autocommit": False},
            open=True,
        )
        self.logger.info("store_init", store_type="postgres", max_size=max_size)

    def _connect(self):
        return self.pool.connection()

    def _create_collection(self, name: str) -> CollectionInfo:
        with self._connect() as conn, conn.transaction():
            for statement in create_table_statements(name, lookup_column=self.lookup_column):
                conn.execute(statement)
            row = conn.execute(
                """
                SELECT column_name
                FROM information_schema.columns
                WHERE table_schema = current_schema() AND table_name = %s AND column_name = %s
                """,
                (name, LOOKUP_COLUMN),
            ).fetchone()
        return CollectionInfo(name, LOOKUP_COLUMN if row else None)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        with self._connect() as conn, conn.transaction():
            yield conn

    @contextmanager
    def _id_guard(self, collection: str, doc_id: Any) -> Iterator[Connection]:
        with self._connect() as conn, conn.transaction():
            # Released at commit/rollback; hashes collide rarely and only over-serialize
            conn.execute(
                "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))",
                (f"{collection}:{json_param(doc_id)}",),
            )
            yield conn

    def _id_where(self, collection: str, doc_id: Any) -> tuple[str, List[Any]]:
        info = self.ensure_collection(collection)
        return build_predicate(id_predicate(doc_id), lookup_column=info.lookup_column)

    # ------------------------------------------------------------------
    # writes

    def insert_tx(self, tx: Connection, collection: str, message: Any) -> None:
        self.ensure_collection(collection)
        payload = self.codec.encode(message).decode("utf-8")
        tx.execute(
            f'INSERT INTO "{collection}" ({PAYLOAD_COLUMN}) VALUES (%s::jsonb)',
            (payload,),
        )

    def update_tx(
        self, tx: Connection, collection: str, doc_id: Any, message: Any
    ) -> int:
        where, params = self._id_where(collection, doc_id)
        payload = self.codec.encode(message).decode("utf-8")
        cur = tx.execute(
            f'UPDATE "{collection}" SET {PAYLOAD_COLUMN} = %s::jsonb WHERE {where}',
            (payload, *params),
        )
        return cur.rowcount

    def delete_tx(self, tx: Connection, collection: str, doc_id: Any) -> int:
        where, params = self._id_where(collection, doc_id)
        cur = tx.execute(f'DELETE FROM "{collection}" WHERE {where}', tuple(params))
        return cur.rowcount

    def patch_fields(
        self, collection: str, doc_id: Any, fields: Mapping[str, Any]
    ) -> int:
        where, where_params = self._id_where(collection, doc_id)
        expression = PAYLOAD_COLUMN
        params: List[Any] = []
        for path, value in fields.items():
            expression = f"jsonb_set({expression}, %s::text[], %s::jsonb, true)"
            params.extend([sql_path(path), json_param(value)])
        if not params:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f'UPDATE "{collection}" SET {PAYLOAD_COLUMN} = {expression} WHERE {where}',
                (*params, *where_params),
            )
            count = cur.rowcount
        self.logger.debug(
            "document_patched",
            collection=collection,
            doc_id=doc_id,
            paths=list(fields),
            count=count,
        )
        return count

    # ------------------------------------------------------------------
    # reads

    def _exists_tx(self, tx: Connection, collection: str, doc_id: Any) -> bool:
        where, params = self._id_where(collection, doc_id)
        row = tx.execute(
            f'SELECT 1 AS present FROM "{collection}" WHERE {where} LIMIT 1',
            tuple(params),
        ).fetchone()
        return row is not None

    def _select_first(self, info: CollectionInfo, pairs: Sequence[tuple]) -> Optional[str]:
        where, params = build_predicate(pairs, lookup_column=info.lookup_column)
        with self._connect() as conn:
            row = conn.execute(
                f'SELECT {PAYLOAD_COLUMN}::text AS data FROM "{info.name}" WHERE {where} LIMIT 1',
                tuple(params),
            ).fetchone()
        return row["data"] if row else None

    def _select_rows(
        self,
        info: CollectionInfo,
        clauses: Sequence[str],
        pairs: Sequence[tuple],
        options: Optional[QueryOptions],
    ) -> List[str]:
        query = f'SELECT {PAYLOAD_COLUMN}::text AS data FROM "{info.name}"'
        params: Optional[List[Any]] = None
        if clauses:
            # Raw tail: sent without parameters so '%' in it is left alone
            query = f"{query} {' '.join(clauses)}"
        else:
            params = []
            where, where_params = build_predicate(pairs, lookup_column=info.lookup_column)
            if where:
                query = f"{query} WHERE {where}"
                params.extend(where_params)
            tail, tail_params = build_options(options)
            if tail:
                query = f"{query} {tail}"
                params.extend(tail_params)
        self.logger.debug("document_list_query", collection=info.name, query=query)
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params) if params else None).fetchall()
        return [row["data"] for row in rows]

    def close(self) -> None:
        super().close()
        self.pool.close()
        self.logger.info("store_closed", store_type="postgres")


__all__ = ["PostgresDocumentStore"]
