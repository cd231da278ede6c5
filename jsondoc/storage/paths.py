"""JSON path parsing shared by the predicate builder and the patch operator.

Paths use the MySQL/SQL-standard member syntax rooted at ``$``::

    $.id
    $.profile.name
    $.tags[0]
    $."display name"

Wildcards (``*``, ``**``) and filter expressions are not supported; every
path must address exactly one member below the document root.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, List, Tuple, Union

from jsondoc.storage.errors import InvalidPathError

Segment = Union[str, int]

ID_PATH = "$.id"

_KEY_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_INDEX_RE = re.compile(r"\[(\d+)\]")


@lru_cache(maxsize=1024)
def parse_path(path: str) -> Tuple[Segment, ...]:
    """Split ``path`` into object keys (``str``) and array indexes (``int``)."""
    if not isinstance(path, str) or not path.startswith("$"):
        raise InvalidPathError(str(path), "must start with '$'")
    segments: List[Segment] = []
    pos = 1
    while pos < len(path):
        char = path[pos]
        if char == ".":
            pos += 1
            if path.startswith('"', pos):
                key, pos = _read_quoted(path, pos)
                segments.append(key)
                continue
            match = _KEY_RE.match(path, pos)
            if not match:
                raise InvalidPathError(path, f"expected a member name at offset {pos}")
            segments.append(match.group(0))
            pos = match.end()
        elif char == "[":
            match = _INDEX_RE.match(path, pos)
            if not match:
                raise InvalidPathError(path, f"expected [<index>] at offset {pos}")
            segments.append(int(match.group(1)))
            pos = match.end()
        else:
            raise InvalidPathError(path, f"unexpected {char!r} at offset {pos}")
    if not segments:
        raise InvalidPathError(path, "must address a member below the root")
    return tuple(segments)


def _read_quoted(path: str, pos: int) -> Tuple[str, int]:
    # pos points at the opening quote
    chars: List[str] = []
    pos += 1
    while pos < len(path):
        char = path[pos]
        if char == "\\" and pos + 1 < len(path):
            chars.append(path[pos + 1])
            pos += 2
            continue
        if char == '"':
            if not chars:
                raise InvalidPathError(path, "empty quoted member name")
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise InvalidPathError(path, "unterminated quoted member name")


def sql_path(path: str) -> List[str]:
    """Return ``path`` as the ``text[]`` value PostgreSQL's ``#>`` and ``jsonb_set`` take."""
    return [str(segment) for segment in parse_path(path)]


def is_id_path(path: str) -> bool:
    return parse_path(path) == ("id",)


_MISSING = object()


def resolve(document: Any, path: str, default: Any = _MISSING) -> Any:
    """Read the value at ``path`` from a decoded JSON document.

    Returns ``default`` (or raises ``KeyError`` when none is given) if the
    path does not exist.
    """
    current = document
    for segment in parse_path(path):
        if isinstance(current, list) and isinstance(segment, int):
            if segment < len(current):
                current = current[segment]
                continue
        elif isinstance(current, dict) and str(segment) in current:
            current = current[str(segment)]
            continue
        if default is _MISSING:
            raise KeyError(path)
        return default
    return current


def assign(document: Any, path: str, value: Any) -> None:
    """Set ``value`` at ``path`` in place, with ``jsonb_set(..., true)`` semantics.

    A missing final object key is created; a missing intermediate member or
    an out-of-range index leaves the document unchanged, as PostgreSQL does.
    Array indexes past the end append.
    """
    segments = parse_path(path)
    current = document
    for segment in segments[:-1]:
        if isinstance(current, list) and isinstance(segment, int):
            if segment >= len(current):
                return
            current = current[segment]
        elif isinstance(current, dict) and str(segment) in current:
            current = current[str(segment)]
        else:
            return
    last = segments[-1]
    if isinstance(current, list):
        if not isinstance(last, int):
            return
        index = last
        if index < len(current):
            current[index] = value
        else:
            current.append(value)
    elif isinstance(current, dict):
        current[str(last)] = value


__all__ = ["ID_PATH", "Segment", "parse_path", "sql_path", "is_id_path", "resolve", "assign"]
