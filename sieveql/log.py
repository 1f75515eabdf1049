"""Structured logging with structlog.

sieveQL modules log through ``structlog.get_logger(__name__)`` and never
configure logging on import.  Applications that want sieveQL's defaults call
:func:`configure_logging` once at startup.
"""

from __future__ import annotations

import logging
import sys

import structlog

from sieveql.config import get_settings

_configured = False


def configure_logging(
    level: str | None = None,
    format: str | None = None,
    force: bool = False,
) -> None:
    """Configure structlog on top of the standard library root logger.

    Args:
        level: Log level name; defaults to ``Settings.log_level``.
        format: ``"json"`` or ``"console"``; defaults to ``Settings.log_format``.
        force: Reconfigure even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    renderer_name = format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name),
        force=force,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if renderer_name == "json":
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
        )
    else:
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
        )

    for handler in logging.root.handlers:
        handler.setFormatter(formatter)

    _configured = True
