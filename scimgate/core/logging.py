"""Structured logging for scimgate (structlog).

Provisioning credentials must never reach a log sink, so every event passes
through ``redact_credentials`` before it is rendered.
"""

import logging
import re
import sys
from typing import Any

import structlog

from scimgate.core.config import get_settings

# scim_<prefix>_<secret>; the prefix stays visible so operators can correlate
_CREDENTIAL_RE = re.compile(r"\b(scim_[0-9a-f]{12}_)[A-Za-z0-9_\-]+")

_configured = False


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _CREDENTIAL_RE.sub(r"\1***", value)
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def redact_credentials(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """structlog processor: mask the secret half of any provisioning token."""
    return {key: _redact(value) for key, value in event_dict.items()}


def configure_logging(force: bool = False) -> None:
    """Configure structlog once per process (``force`` re-reads settings)."""
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        redact_credentials,
    ]

    if settings.app_debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdlib factory gives loggers the .name add_logger_name needs
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn / sqlalchemy / alembic go through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    _configured = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)
