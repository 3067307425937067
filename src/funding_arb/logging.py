"""Structured logging for the sync and scan pipelines.

structlog renders through the stdlib logging tree so that third-party
loggers (aiohttp, aiosqlite, ccxt) share the same handler and format.
Events are snake_case names with key/value context, e.g.

    coin_sync_abandoned exchange=Hyperliquid coin=BTC status=429
"""

import logging
import os
import sys

import structlog

# Third-party loggers that are too chatty at DEBUG
QUIET_LOGGERS = ("aiosqlite", "asyncio", "ccxt")


def _pre_chain() -> list[structlog.types.Processor]:
    # merge_contextvars first: a sync pipeline binds exchange=... per task
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(log_level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one stderr handler.

    LOG_FORMAT=json switches to machine-readable output; the default is the
    development console renderer.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(os.environ.get("LOG_FORMAT", "console").lower()),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
