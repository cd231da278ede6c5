"""Behaviour shared by the memory and postgres document stores.

The public operations live here; backends supply the statements that touch
storage (``_create_collection``, ``_select_first``, ``_select_rows``,
``_exists_tx``, ``_id_guard``, the ``*_tx`` writes, ``patch_fields`` and
``transaction``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import MutableSequence
from contextlib import AbstractContextManager
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar

from jsondoc.codec import JsonCodec, MessageCodec
from jsondoc.logging import get_logger
from jsondoc.storage.errors import CodecError, ContractViolation, DocumentNotFound
from jsondoc.storage.predicates import (
    Predicate,
    QueryOptions,
    id_predicate,
    normalize_predicate,
)
from jsondoc.storage.schema import CollectionInfo, CollectionRegistry

M = TypeVar("M")


class DocumentStore(ABC):
    """JSON document collections addressed by ``$``-rooted paths."""

    def __init__(
        self, *, codec: Optional[MessageCodec] = None, lookup_column: bool = True
    ) -> None:
        self.logger = get_logger(type(self).__module__)
        self.codec: MessageCodec = codec or JsonCodec()
        self.lookup_column = lookup_column
        self.collections = CollectionRegistry(self._create_collection)

    # ------------------------------------------------------------------
    # schema

    def ensure_collection(self, name: str) -> CollectionInfo:
        """Create ``name`` on first use; later calls are answered from the cache."""
        return self.collections.ensure(name)

    def bootstrap(self, names: Iterable[str]) -> List[CollectionInfo]:
        return self.collections.ensure_all(names)

    # ------------------------------------------------------------------
    # writes

    def insert(self, collection: str, message: Any) -> None:
        self.ensure_collection(collection)
        with self.transaction() as tx:
            self.insert_tx(tx, collection, message)
        self.logger.debug("document_inserted", collection=collection)

    def update(self, collection: str, doc_id: Any, message: Any) -> int:
        """Replace the whole payload of every document whose ``$.id`` is ``doc_id``.

        Returns the number of documents replaced; zero is not an error.
        """
        self.ensure_collection(collection)
        with self.transaction() as tx:
            count = self.update_tx(tx, collection, doc_id, message)
        self.logger.debug(
            "document_updated", collection=collection, doc_id=doc_id, count=count
        )
        return count

    def delete(self, collection: str, doc_id: Any) -> int:
        """Delete every document whose ``$.id`` is ``doc_id``; returns the count."""
        self.ensure_collection(collection)
        with self.transaction() as tx:
            count = self.delete_tx(tx, collection, doc_id)
        self.logger.debug(
            "documents_deleted", collection=collection, doc_id=doc_id, count=count
        )
        return count

    def insert_if_not_exist(self, collection: str, doc_id: Any, message: Any) -> bool:
        """Insert ``message`` unless a document with ``doc_id`` exists.

        Probe and insert run under a guard on ``(collection, doc_id)``, so two
        concurrent callers cannot both insert. Returns True if it inserted.
        """
        self.ensure_collection(collection)
        with self._id_guard(collection, doc_id) as tx:
            if self._exists_tx(tx, collection, doc_id):
                return False
            self.insert_tx(tx, collection, message)
        self.logger.debug("document_inserted", collection=collection, doc_id=doc_id)
        return True

    def upsert(self, collection: str, doc_id: Any, message: Any) -> bool:
        """Update the documents with ``doc_id`` or insert ``message`` if there are none.

        Returns True when a new document was inserted.
        """
        self.ensure_collection(collection)
        with self._id_guard(collection, doc_id) as tx:
            if self._exists_tx(tx, collection, doc_id):
                self.update_tx(tx, collection, doc_id, message)
                inserted = False
            else:
                self.insert_tx(tx, collection, message)
                inserted = True
        self.logger.debug(
            "document_upserted", collection=collection, doc_id=doc_id, inserted=inserted
        )
        return inserted

    # ------------------------------------------------------------------
    # reads

    def get_by_id(self, collection: str, doc_id: Any, model: Type[M]) -> M:
        return self.get(collection, id_predicate(doc_id), model)

    def get(self, collection: str, predicate: Predicate, model: Type[M]) -> M:
        """Return the first document matching every ``(path, value)`` pair.

        Raises:
            DocumentNotFound: nothing matches
            CodecError: the stored payload does not validate as ``model``
            ContractViolation: ``predicate`` is empty or has an invalid path
        """
        pairs = normalize_predicate(predicate)
        if not pairs:
            raise ContractViolation(
                "get requires at least one (path, value) pair", {"collection": collection}
            )
        info = self.ensure_collection(collection)
        raw = self._select_first(info, pairs)
        if raw is None:
            raise DocumentNotFound(collection, dict(pairs))
        return self.codec.decode(raw, model)

    def list(
        self,
        collection: str,
        model: Type[M],
        *clauses: str,
        where: Optional[Predicate] = None,
        options: Optional[QueryOptions] = None,
        into: Optional[MutableSequence] = None,
    ) -> MutableSequence:
        """Decode every matching document of ``collection`` into ``model`` instances.

        ``clauses`` is raw SQL appended after ``SELECT ... FROM <collection>``
        (``"ORDER BY data->>'name'"``, ``"LIMIT 10"``). It is not
        parameterized and must never carry untrusted input; prefer ``where``
        and ``options``, which cannot be combined with it.

        Results keep storage order and are appended to ``into`` when given.
        Decoding stops at the first row that fails, raising ``CodecError``
        with that row's index.
        """
        if clauses and (where is not None or options is not None):
            raise ContractViolation(
                "raw clauses cannot be combined with where/options",
                {"collection": collection, "clauses": list(clauses)},
            )
        if any(not isinstance(clause, str) for clause in clauses):
            raise ContractViolation("clauses must be strings", {"collection": collection})
        if into is None:
            into = []
        elif not isinstance(into, MutableSequence):
            raise ContractViolation(
                "into must be a mutable sequence", {"type": type(into).__name__}
            )
        pairs = normalize_predicate(where)
        info = self.ensure_collection(collection)
        for index, raw in enumerate(self._select_rows(info, clauses, pairs, options)):
            try:
                into.append(self.codec.decode(raw, model))
            except CodecError as exc:
                self.logger.warning(
                    "document_decode_failed", collection=collection, row_index=index
                )
                raise CodecError(
                    f"row {index} of {collection}: {exc.message}",
                    {**exc.detail, "collection": collection},
                    row_index=index,
                ) from exc
        return into

    # ------------------------------------------------------------------
    # backend hooks

    @abstractmethod
    def _create_collection(self, name: str) -> CollectionInfo:
        """Create storage for ``name`` if missing and describe it."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Context manager yielding a handle for the ``*_tx`` methods.

        Commits when the block exits normally and rolls back when it raises;
        the exception propagates unchanged.
        """

    @abstractmethod
    def insert_tx(self, tx: Any, collection: str, message: Any) -> None:
        ...

    @abstractmethod
    def update_tx(self, tx: Any, collection: str, doc_id: Any, message: Any) -> int:
        ...

    @abstractmethod
    def delete_tx(self, tx: Any, collection: str, doc_id: Any) -> int:
        ...

    @abstractmethod
    def patch_fields(
        self, collection: str, doc_id: Any, fields: Mapping[str, Any]
    ) -> int:
        """Set each JSON path in ``fields`` on the documents with ``doc_id``.

        Other paths are left alone. Values are written as raw JSON without
        going through the codec.
        """

    @abstractmethod
    def _select_first(self, info: CollectionInfo, pairs: Sequence[tuple]) -> Optional[str]:
        ...

    @abstractmethod
    def _select_rows(
        self,
        info: CollectionInfo,
        clauses: Sequence[str],
        pairs: Sequence[tuple],
        options: Optional[QueryOptions],
    ) -> Iterable[str]:
        ...

    @abstractmethod
    def _id_guard(self, collection: str, doc_id: Any) -> AbstractContextManager:
        """Transaction that excludes other guards on the same ``(collection, doc_id)``."""

    @abstractmethod
    def _exists_tx(self, tx: Any, collection: str, doc_id: Any) -> bool:
        ...

    def close(self) -> None:
        self.collections.clear()


__all__ = ["DocumentStore"]
