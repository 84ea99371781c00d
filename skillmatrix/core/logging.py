from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from skillmatrix.core.config import get_settings

_CONFIGURED = False


def setup_logging(level: int | str | None = None) -> None:
    """Configure structlog once for the API process and the sweep worker.

    JSON lines everywhere except ``APP_ENV=local`` with ``LOG_FORMAT=console``,
    where the human readable renderer is used instead.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = get_settings()
    resolved = level if level is not None else settings.log_level
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logging.basicConfig(
        level=resolved,
        format="%(message)s",
        stream=sys.stdout,
    )

    renderer: Any = structlog.processors.JSONRenderer()
    if settings.environment == "local" and settings.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.dict_tracebacks,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(resolved),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True
