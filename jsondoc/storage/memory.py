from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from jsondoc.codec import MessageCodec
from jsondoc.storage.common import DocumentStore
from jsondoc.storage.errors import ContractViolation
from jsondoc.storage.paths import ID_PATH, assign, parse_path, resolve
from jsondoc.storage.predicates import QueryOptions, json_param
from jsondoc.storage.schema import LOOKUP_COLUMN, CollectionInfo

_MISSING = object()

# jsonb sorts null < string < number < boolean < array < object
_TYPE_RANK = {type(None): 0, str: 1, int: 2, float: 2, bool: 3, list: 4, dict: 5}


def _json_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(
            _json_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            _json_equal(value, right[key]) for key, value in left.items()
        )
    return type(left) is type(right) and left == right


def _sort_key(value: Any) -> tuple:
    if value is _MISSING:
        return (1, 0, 0)
    rank = _TYPE_RANK.get(type(value), 5)
    if rank >= 4:
        return (0, rank, json.dumps(value, sort_keys=True))
    if rank == 0:
        return (0, rank, 0)
    return (0, rank, value)


class MemoryTransaction:
    """Handle passed to the ``*_tx`` methods of ``MemoryDocumentStore``."""

    def __init__(self, store: "MemoryDocumentStore") -> None:
        self.store = store


class MemoryDocumentStore(DocumentStore):
    """In-process document store with the same semantics as the postgres one.

    Documents are kept as encoded JSON text in insertion order. Raw SQL
    ``list`` clauses are not interpreted; use ``where``/``options``.
    """

    def __init__(
        self, *, codec: Optional[MessageCodec] = None, lookup_column: bool = True
    ) -> None:
        super().__init__(codec=codec, lookup_column=lookup_column)
        self.documents: Dict[str, List[str]] = {}
        # RLock so *_tx calls can run inside transaction() on the same thread
        self._data_lock = threading.RLock()
        self.logger.info("store_init", store_type="memory")

    def _create_collection(self, name: str) -> CollectionInfo:
        # No data lock here: transactions holding it may create collections
        self.documents.setdefault(name, [])
        return CollectionInfo(name, LOOKUP_COLUMN if self.lookup_column else None)

    @contextmanager
    def transaction(self) -> Iterator[MemoryTransaction]:
        with self._data_lock:
            snapshot = {name: list(rows) for name, rows in self.documents.items()}
            try:
                yield MemoryTransaction(self)
            except BaseException:
                for name in list(self.documents):
                    self.documents[name] = snapshot.get(name, [])
                raise

    def _id_guard(self, collection: str, doc_id: Any):
        return self.transaction()

    # ------------------------------------------------------------------

    @staticmethod
    def _matches(document: Any, pairs: Sequence[tuple]) -> bool:
        for path, value in pairs:
            found = resolve(document, path, _MISSING)
            if found is _MISSING or not _json_equal(found, value):
                return False
        return True

    @staticmethod
    def _normalized(pairs: Sequence[tuple]) -> List[tuple]:
        # Round-trip values through JSON so tuples compare as arrays, etc.
        return [(path, json.loads(json_param(value))) for path, value in pairs]

    def _id_pairs(self, doc_id: Any) -> List[tuple]:
        return self._normalized([(ID_PATH, doc_id)])

    def insert_tx(self, tx: MemoryTransaction, collection: str, message: Any) -> None:
        self.ensure_collection(collection)
        payload = self.codec.encode(message).decode("utf-8")
        with self._data_lock:
            self.documents[collection].append(payload)

    def update_tx(
        self, tx: MemoryTransaction, collection: str, doc_id: Any, message: Any
    ) -> int:
        self.ensure_collection(collection)
        payload = self.codec.encode(message).decode("utf-8")
        pairs = self._id_pairs(doc_id)
        count = 0
        with self._data_lock:
            rows = self.documents[collection]
            for index, raw in enumerate(rows):
                if self._matches(json.loads(raw), pairs):
                    rows[index] = payload
                    count += 1
        return count

    def delete_tx(self, tx: MemoryTransaction, collection: str, doc_id: Any) -> int:
        self.ensure_collection(collection)
        pairs = self._id_pairs(doc_id)
        with self._data_lock:
            rows = self.documents[collection]
            kept = [raw for raw in rows if not self._matches(json.loads(raw), pairs)]
            count = len(rows) - len(kept)
            self.documents[collection] = kept
        return count

    def patch_fields(
        self, collection: str, doc_id: Any, fields: Mapping[str, Any]
    ) -> int:
        self.ensure_collection(collection)
        updates = [(path, json.loads(json_param(value))) for path, value in fields.items()]
        for path, _ in updates:
            parse_path(path)
        if not updates:
            return 0
        pairs = self._id_pairs(doc_id)
        count = 0
        with self._data_lock:
            rows = self.documents[collection]
            for index, raw in enumerate(rows):
                document = json.loads(raw)
                if not self._matches(document, pairs):
                    continue
                for path, value in updates:
                    assign(document, path, value)
                rows[index] = json.dumps(document, ensure_ascii=False)
                count += 1
        self.logger.debug(
            "document_patched",
            collection=collection,
            doc_id=doc_id,
            paths=[path for path, _ in updates],
            count=count,
        )
        return count

    def _exists_tx(self, tx: MemoryTransaction, collection: str, doc_id: Any) -> bool:
        pairs = self._id_pairs(doc_id)
        with self._data_lock:
            return any(
                self._matches(json.loads(raw), pairs)
                for raw in self.documents[collection]
            )

    def _select_first(self, info: CollectionInfo, pairs: Sequence[tuple]) -> Optional[str]:
        pairs = self._normalized(pairs)
        with self._data_lock:
            for raw in self.documents[info.name]:
                if self._matches(json.loads(raw), pairs):
                    return raw
        return None

    def _select_rows(
        self,
        info: CollectionInfo,
        clauses: Sequence[str],
        pairs: Sequence[tuple],
        options: Optional[QueryOptions],
    ) -> List[str]:
        if clauses:
            raise ContractViolation(
                "the memory store does not interpret raw SQL clauses; use where/options",
                {"collection": info.name, "clauses": [*clauses]},
            )
        pairs = self._normalized(pairs)
        with self._data_lock:
            matched = [
                (raw, document)
                for raw, document in ((raw, json.loads(raw)) for raw in self.documents[info.name])
                if self._matches(document, pairs)
            ]
        if options is None:
            return [raw for raw, _ in matched]
        if options.order_by is not None:
            matched.sort(
                key=lambda item: _sort_key(resolve(item[1], options.order_by, _MISSING)),
                reverse=options.descending,
            )
        rows = [raw for raw, _ in matched]
        start = options.offset or 0
        end = start + options.limit if options.limit is not None else None
        return rows[start:end]

    def close(self) -> None:
        super().close()
        with self._data_lock:
            self.documents.clear()
        self.logger.info("store_closed", store_type="memory")


__all__ = ["MemoryDocumentStore", "MemoryTransaction"]
