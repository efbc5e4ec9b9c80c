"""Logging for edgelab: structlog rendered through the stdlib root logger.

Entries go to stderr either as one JSON object per line ("json") or as
colored key=value text ("console"). While a backtest, search or analysis is
running, its short ``run_id`` is attached to every entry so one run can be
filtered out of interleaved output.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar

import structlog

_run_id: ContextVar[str] = ContextVar("run_id", default="")


def set_correlation_id(run_id: str) -> None:
    """Attach ``run_id`` to entries logged from this context ("" clears it)."""
    _run_id.set(run_id)


def get_correlation_id() -> str:
    return _run_id.get()


def new_correlation_id() -> str:
    """Start a new run: make a 12-hex-digit ID, activate it and return it."""
    run_id = uuid.uuid4().hex[:12]
    set_correlation_id(run_id)
    return run_id


def _inject_run_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    run_id = _run_id.get()
    if run_id:
        event_dict["run_id"] = run_id
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog into a single stderr handler on the root logger.

    Replaces any handlers already on the root logger, so calling it again
    switches level or format cleanly.

    Args:
        level: Name of a stdlib level, e.g. "DEBUG" or "WARNING".
        log_format: "json" or "console".
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _inject_run_id,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format),
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))
