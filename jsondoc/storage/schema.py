from __future__ import annotations

import hashlib
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from jsondoc.logging import get_logger
from jsondoc.storage.errors import ContractViolation

PAYLOAD_COLUMN = "data"
LOOKUP_COLUMN = "doc_id"

_COLLECTION_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_MAX_IDENTIFIER = 63

logger = get_logger(__name__)


@dataclass(frozen=True)
class CollectionInfo:
    """What the store learned about a collection when it first touched it."""

    name: str
    lookup_column: Optional[str] = None


def validate_collection_name(name: str) -> str:
    if not isinstance(name, str) or not _COLLECTION_RE.match(name):
        raise ContractViolation(
            "collection names must be SQL identifiers ([A-Za-z_][A-Za-z0-9_]*, max 63 chars)",
            {"collection": name},
        )
    return name


def index_name(name: str) -> str:
    """Name of the ``doc_id`` index, kept within PostgreSQL's 63-byte identifier limit.

    Long collection names are cut and suffixed with a hash of the full name,
    so two names sharing a prefix still get distinct indexes.
    """
    suffix = f"_{LOOKUP_COLUMN}_idx"
    if len(name) + len(suffix) <= _MAX_IDENTIFIER:
        return f"{name}{suffix}"
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    keep = _MAX_IDENTIFIER - len(suffix) - len(digest) - 1
    return f"{name[:keep]}_{digest}{suffix}"


def create_table_statements(name: str, *, lookup_column: bool = True) -> List[str]:
    """DDL for a document table; every statement is safe to re-run."""
    validate_collection_name(name)
    if not lookup_column:
        return [f'CREATE TABLE IF NOT EXISTS "{name}" ({PAYLOAD_COLUMN} JSONB NOT NULL)']
    return [
        f'CREATE TABLE IF NOT EXISTS "{name}" ('
        f"{PAYLOAD_COLUMN} JSONB NOT NULL, "
        f"{LOOKUP_COLUMN} JSONB GENERATED ALWAYS AS ({PAYLOAD_COLUMN} -> 'id') STORED)",
        f'CREATE INDEX IF NOT EXISTS "{index_name(name)}" ON "{name}" ({LOOKUP_COLUMN})',
    ]


class CollectionRegistry:
    """Per-name cache of collections that are known to exist.

    ``creator`` runs at most once per name for the registry's lifetime unless
    it raises, in which case nothing is cached and the next ``ensure`` tries
    again.
    """

    def __init__(self, creator: Callable[[str], CollectionInfo]) -> None:
        self._creator = creator
        self._known: Dict[str, CollectionInfo] = {}
        self._lock = threading.Lock()

    def ensure(self, name: str) -> CollectionInfo:
        info = self._known.get(name)
        if info is not None:
            return info
        validate_collection_name(name)
        with self._lock:
            info = self._known.get(name)
            if info is None:
                try:
                    info = self._creator(name)
                except Exception as exc:
                    logger.error(
                        "collection_create_failed",
                        collection=name,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    raise
                self._known[name] = info
                logger.info(
                    "collection_ready",
                    collection=name,
                    lookup_column=info.lookup_column,
                )
        return info

    def ensure_all(self, names: Iterable[str]) -> List[CollectionInfo]:
        return [self.ensure(name) for name in names]

    def known(self) -> List[str]:
        with self._lock:
            return sorted(self._known)

    def clear(self) -> None:
        with self._lock:
            self._known.clear()


__all__ = [
    "PAYLOAD_COLUMN",
    "LOOKUP_COLUMN",
    "CollectionInfo",
    "CollectionRegistry",
    "create_table_statements",
    "index_name",
    "validate_collection_name",
]
