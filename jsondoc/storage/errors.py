from __future__ import annotations

from typing import Any, Dict, Optional


class StoreError(Exception):
    """Base class for errors raised by the document layer itself.

    Errors coming from the database driver are not wrapped; they reach the
    caller as the driver raised them.
    """

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def __str__(self) -> str:
        return self.message


class DocumentNotFound(StoreError, KeyError):
    """Raised when no document matches a lookup."""

    def __init__(self, collection: str, predicate: Optional[Dict[str, Any]] = None):
        self.collection = collection
        self.predicate = dict(predicate or {})
        super().__init__(
            f"no document in {collection} matching {self.predicate}",
            {"collection": collection, "predicate": self.predicate},
        )


class CodecError(StoreError):
    """Raised when a message cannot be encoded to or decoded from JSON."""

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        *,
        row_index: Optional[int] = None,
    ):
        super().__init__(message, detail)
        self.row_index = row_index
        if row_index is not None:
            self.detail.setdefault("row_index", row_index)


class ContractViolation(StoreError, ValueError):
    """Raised when a caller passes arguments the store cannot act on."""


class InvalidPathError(ContractViolation):
    """Raised for JSON paths outside the supported ``$.key[index]`` subset."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"invalid JSON path {path!r}: {reason}", {"path": path})


__all__ = [
    "StoreError",
    "DocumentNotFound",
    "CodecError",
    "ContractViolation",
    "InvalidPathError",
]
