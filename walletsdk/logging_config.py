"""
Structured logging configuration using structlog.

Produces JSON logs in production, human-readable colored logs in development.
Bundler URLs carry the provider API key in their query string, so every
record passes through ``redact_secrets`` before it is rendered.
"""

import logging
import re
import sys
from typing import Any, MutableMapping, Optional, TextIO

import structlog

from .config import settings

REDACTED = "***"

# apikey=... / api_key=... query parameters, as in Pimlico bundler URLs
_SECRET_PARAM = re.compile(r"((?:api_?key)=)[^&\s\"']+", re.IGNORECASE)

# Chatty at INFO; request lines would also echo bundler URLs
QUIET_LOGGERS = ("httpcore", "httpx")


def redact_text(text: str) -> str:
    return _SECRET_PARAM.sub(rf"\1{REDACTED}", text)


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking API keys in the event and string fields."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact_text(value)
    return event_dict


def setup_logging(
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog and route the stdlib loggers through it.

    Args:
        log_level: Override log level (default: from settings.log_level)
        json_logs: Force JSON or console output (default: settings.log_json,
            falling back to console at DEBUG and JSON otherwise)
        stream: Output stream (default: stdout)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    if json_logs is None:
        json_logs = settings.log_json
    if json_logs is None:
        json_logs = level != logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()
    shared_processors.append(redact_secrets)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib loggers (logging.getLogger(__name__)) share the same pipeline,
    # including the operation context bound by the pipeline
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("walletsdk").setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
