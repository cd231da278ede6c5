"""structlog setup for jsondoc.

Configured once on import from ``LOG_LEVEL``, ``LOG_JSON`` and
``LOG_DEV_MODE``. Store events carry the collection they touched; callers
that want to tie several store calls together wrap them in ``log_scope``.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urlparse, urlunparse

import structlog

_URL_KEYS = {"url", "dsn", "database_url", "conninfo"}
_SECRET_WORDS = ("password", "secret", "token")
_CONNINFO_PASSWORD_RE = re.compile(r"(password\s*=\s*)('[^']*'|\S+)", re.IGNORECASE)


def mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password in a connection string with ``***``.

    Handles URLs (postgresql://app:hunter2@db:5432/docs ->
    postgresql://app:***@db:5432/docs) and libpq ``key=value`` strings.
    """
    if not url:
        return url
    if "://" not in url:
        return _CONNINFO_PASSWORD_RE.sub(r"\1***", url)
    try:
        parsed = urlparse(url)
        if not parsed.password:
            return url
        netloc = parsed.hostname or ""
        if parsed.port:
            netloc = f"{netloc}:{parsed.port}"
        netloc = f"{parsed.username or ''}:***@{netloc}"
        return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***url_parse_error***"


def _mask_credentials(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        lower_key = key.lower()
        if lower_key in _URL_KEYS:
            event_dict[key] = mask_url_password(value)
        elif any(word in lower_key for word in _SECRET_WORDS):
            event_dict[key] = "***"
    return event_dict


@contextmanager
def log_scope(correlation_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """Attach ``correlation_id`` and ``fields`` to every entry logged in the block.

    A correlation id is generated when none is given and yielded to the
    caller. Scopes nest; the inner values win until the inner block exits.
    """
    cid = correlation_id or uuid.uuid4().hex
    with structlog.contextvars.bound_contextvars(correlation_id=cid, **fields):
        yield cid


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    development_mode: bool = False,
) -> None:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _mask_credentials,
        structlog.processors.StackInfoRenderer(),
    ]
    if development_mode or not json_output:
        processors.append(structlog.dev.ConsoleRenderer(colors=development_mode))
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


configure_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=_env_flag("LOG_JSON", "true"),
    development_mode=_env_flag("LOG_DEV_MODE", "false"),
)


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Logger whose entries name the emitting module under ``logger``."""
    return structlog.get_logger().bind(logger=name)
