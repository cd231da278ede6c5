"""Message <-> JSON codec.

Messages are any type pydantic can validate: ``BaseModel`` subclasses,
standard dataclasses and pydantic dataclasses. Encoding honours field aliases
and writes ``None`` as ``null`` so decoding an encoded message gives back an
equal message; decoding fills absent fields from the type's defaults.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Protocol, Type, TypeVar, Union

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from jsondoc.storage.errors import CodecError

M = TypeVar("M")


class MessageCodec(Protocol):
    def encode(self, message: Any) -> bytes: ...

    def decode(self, data: Union[bytes, str], model: Type[M]) -> M: ...


@lru_cache(maxsize=256)
def _adapter(model: type) -> TypeAdapter:
    return TypeAdapter(model)


class JsonCodec:
    """Default codec built on pydantic ``TypeAdapter``."""

    def __init__(self, *, exclude_none: bool = False, by_alias: bool = True) -> None:
        self.exclude_none = exclude_none
        self.by_alias = by_alias

    def encode(self, message: Any) -> bytes:
        if message is None:
            raise CodecError("cannot encode None as a document")
        model = type(message)
        try:
            return _adapter(model).dump_json(
                message, exclude_none=self.exclude_none, by_alias=self.by_alias
            )
        except (PydanticSerializationError, ValidationError, TypeError) as exc:
            raise CodecError(
                f"failed to encode {model.__name__}: {exc}", {"model": model.__name__}
            ) from exc

    def decode(self, data: Union[bytes, str], model: Type[M]) -> M:
        try:
            return _adapter(model).validate_json(data)
        except ValidationError as exc:
            raise CodecError(
                f"failed to decode {getattr(model, '__name__', model)}: {exc}",
                {"model": getattr(model, "__name__", str(model)), "errors": exc.errors()},
            ) from exc


__all__ = ["MessageCodec", "JsonCodec"]
