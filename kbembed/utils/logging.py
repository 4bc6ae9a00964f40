"""Structured logging for kbembed, built on structlog.

Log lines always go to stderr: the CLI prints its chunk and embedding
results as JSON on stdout, and nothing else may end up there.

Two renderings share one processor chain:

* console (coloured when stderr is a terminal) for local runs
* JSON, one object per line, when ``APP_ENV=production`` or when the
  caller forces it; exceptions are rendered as structured tracebacks

Records from the standard-library loggers of our dependencies (httpx,
openai, aiosqlite) are formatted by the same chain.  Their per-request
INFO chatter is capped at WARNING so ingestion events stay readable.

Call-scoped fields such as ``correlation_id`` are bound with
``structlog.contextvars`` and merged into every event.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite")


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {log_level!r}"
        raise ValueError(msg)
    return level


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderer_chain(use_json: bool) -> list[structlog.types.Processor]:
    if use_json:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def _route_stdlib(level: int, processors: list[structlog.types.Processor]) -> None:
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *processors],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON.  Otherwise JSON is used only when
            ``APP_ENV`` is ``"production"``.

    Returns:
        A configured structlog BoundLogger.

    Raises:
        ValueError: If *log_level* is not a known level name.
    """
    level = _resolve_level(log_level)
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    processors = [*_shared_processors(), *_renderer_chain(use_json)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _route_stdlib(level, processors)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with ``logger_name=name``.

    Configures logging with defaults on first use if nothing else has.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
