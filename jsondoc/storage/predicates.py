from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from jsondoc.storage.errors import ContractViolation
from jsondoc.storage.paths import ID_PATH, is_id_path, parse_path, sql_path

# Either {"$.name": "Alice"} or [("$.name", "Alice"), ...]; pairs keep their order.
Predicate = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


def normalize_predicate(predicate: Optional[Predicate]) -> List[Tuple[str, Any]]:
    """Return ``predicate`` as an ordered list of validated ``(path, value)`` pairs."""
    if predicate is None:
        return []
    if isinstance(predicate, Mapping):
        pairs: Iterable[Any] = predicate.items()
    elif isinstance(predicate, (str, bytes)):
        raise ContractViolation(
            "predicate must be a mapping or a sequence of (path, value) pairs",
            {"predicate": predicate},
        )
    else:
        pairs = predicate
    normalized: List[Tuple[str, Any]] = []
    for pair in pairs:
        try:
            path, value = pair
        except (TypeError, ValueError):
            raise ContractViolation(
                "predicate entries must be (path, value) pairs", {"entry": repr(pair)}
            ) from None
        parse_path(path)
        normalized.append((path, value))
    return normalized


def id_predicate(doc_id: Any) -> List[Tuple[str, Any]]:
    return [(ID_PATH, doc_id)]


def json_param(value: Any) -> str:
    """Encode a comparison or patch value as the text of a ``jsonb`` parameter."""
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ContractViolation(
            f"value is not JSON serializable: {exc}", {"value": repr(value)}
        ) from exc


def build_predicate(
    predicate: Optional[Predicate],
    *,
    column: str = "data",
    lookup_column: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """Turn path/value pairs into an ``AND``-joined equality fragment.

    Each pair becomes ``<column> #> %s::text[] = %s::jsonb`` with the path
    segments and the JSON-encoded value appended to the parameter list in
    input order. When ``lookup_column`` is set, ``$.id`` is compared against
    that generated column instead so the index can serve it.

    Returns ``("", [])`` for an empty predicate.
    """
    fragments: List[str] = []
    params: List[Any] = []
    for path, value in normalize_predicate(predicate):
        if lookup_column and is_id_path(path):
            fragments.append(f"{lookup_column} = %s::jsonb")
            params.append(json_param(value))
        else:
            fragments.append(f"{column} #> %s::text[] = %s::jsonb")
            params.extend([sql_path(path), json_param(value)])
    return " AND ".join(fragments), params


@dataclass(frozen=True)
class QueryOptions:
    """Structured ordering and paging for ``list``.

    ``order_by`` is a JSON path; documents missing it sort last in ascending
    order, as PostgreSQL sorts NULLs.
    """

    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    offset: Optional[int] = None

    def __post_init__(self) -> None:
        if self.order_by is not None:
            parse_path(self.order_by)
        if self.limit is not None and self.limit < 0:
            raise ContractViolation("limit must be >= 0", {"limit": self.limit})
        if self.offset is not None and self.offset < 0:
            raise ContractViolation("offset must be >= 0", {"offset": self.offset})


def build_options(
    options: Optional[QueryOptions], *, column: str = "data"
) -> Tuple[str, List[Any]]:
    """Render ``ORDER BY`` / ``LIMIT`` / ``OFFSET`` with parameters."""
    if options is None:
        return "", []
    clauses: List[str] = []
    params: List[Any] = []
    if options.order_by is not None:
        direction = "DESC" if options.descending else "ASC"
        clauses.append(f"ORDER BY {column} #> %s::text[] {direction}")
        params.append(sql_path(options.order_by))
    if options.limit is not None:
        clauses.append("LIMIT %s")
        params.append(options.limit)
    if options.offset is not None:
        clauses.append("OFFSET %s")
        params.append(options.offset)
    return " ".join(clauses), params


__all__ = [
    "Predicate",
    "QueryOptions",
    "normalize_predicate",
    "id_predicate",
    "json_param",
    "build_predicate",
    "build_options",
]
