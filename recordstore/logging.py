from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import urlparse, urlunparse

import structlog
from psycopg import ProgrammingError
from psycopg.conninfo import conninfo_to_dict, make_conninfo

_SECRET_KEYS = {"password", "secret", "token", "api_key", "authorization"}
_TRUTHY = {"1", "true", "yes", "on"}


def _redact_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor to keep credentials out of log entries."""
    for key, value in event_dict.items():
        if isinstance(value, str) and len(value) > 4:
            if any(secret in key.lower() for secret in _SECRET_KEYS):
                event_dict[key] = value[:2] + "***" + value[-2:]
    return event_dict


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Route structlog output through JSON or console rendering at ``level``."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
    ]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# LOG_DEV_MODE forces console output even when LOG_JSON is on
configure_logging(
    os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_JSON", "true").lower() in _TRUTHY
    and os.getenv("LOG_DEV_MODE", "false").lower() not in _TRUTHY,
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger."""
    return structlog.get_logger(name)


def _mask_conninfo(conninfo: str) -> str:
    try:
        params = conninfo_to_dict(conninfo)
    except ProgrammingError:
        return "***conninfo_parse_error***"
    if "password" not in params:
        return conninfo
    params["password"] = "***"
    return make_conninfo(**params)


def mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password in a connection string for safe logging.

    Handles both libpq forms:
    postgresql://app:hunter2@db:5432/records -> postgresql://app:***@db:5432/records
    host=db user=app password=hunter2 -> host=db user=app password=***
    """
    if not url:
        return url
    if "://" not in url:
        return _mask_conninfo(url)
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        # libpq also accepts the password as a ?password= query parameter
        return _mask_conninfo(url) if "password" in parsed.query else url
    netloc = parsed.hostname or ""
    if port:
        netloc = f"{netloc}:{port}"
    if parsed.username:
        netloc = f"{parsed.username}:***@{netloc}"
    else:
        netloc = f":***@{netloc}"
    return urlunparse(parsed._replace(netloc=netloc))
