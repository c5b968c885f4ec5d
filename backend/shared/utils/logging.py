"""
Structured logging for the Riftwatch process.
Uses structlog on top of the stdlib logging tree so uvicorn and httpx
records come out in the same format. Upstream credentials never reach the
output: the Riot key and the Discord bot token are masked by a processor.
"""
from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from shared.config import Environment, Settings, get_settings

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")
_SECRET_KEYS = frozenset({"api_key", "riot_api_key", "token", "discord_bot_token", "authorization"})
_RIOT_KEY_RE = re.compile(r"RGAPI-[0-9a-fA-F-]+")
_MASK = "***"


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Mask credential-named fields and Riot keys embedded in string values."""
    for key, value in event_dict.items():
        if key.lower() in _SECRET_KEYS:
            event_dict[key] = _MASK
        elif isinstance(value, str) and "RGAPI-" in value:
            event_dict[key] = _RIOT_KEY_RE.sub(_MASK, value)
    return event_dict


def setup_logging(
    service_name: str,
    settings: Settings | None = None,
    extra_context: dict[str, Any] | None = None,
) -> None:
    """
    Configure structured logging.

    Args:
        service_name: Identifier bound to every record (riftwatch, scheduler).
        settings: Settings to read level/environment from (defaults to the singleton).
        extra_context: Additional static fields bound to every record.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if settings.environment == Environment.DEV:
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    bound: dict[str, Any] = {"service": service_name}
    if settings.instance_id:
        bound["instance_id"] = settings.instance_id
    if extra_context:
        bound.update(extra_context)
    structlog.contextvars.bind_contextvars(**bound)


def cycle_context(cycle_id: int) -> Any:
    """Context manager binding ``cycle`` to every record of one poll cycle (and the tasks it spawns)."""
    return structlog.contextvars.bound_contextvars(cycle=cycle_id)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
