"""Structured logging with run, stage and project context.

Context is carried in structlog's context variables, so every event emitted
while a run is in progress is tagged with ``run_id``, ``stage`` and, while a
project is being built, ``project_id``.
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, unbind_contextvars

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def new_run_id(prefix: str = "run") -> str:
    """Generate a run identifier like ``update-20260101-020000-1a2b3c4d``."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8]}"


def set_run_context(run_id: str, stage: str = "") -> None:
    """Start a fresh logging context for one CLI run."""
    clear_contextvars()
    bind_contextvars(run_id=run_id)
    if stage:
        bind_contextvars(stage=stage)


def set_stage(stage: str) -> None:
    bind_contextvars(stage=stage)


def set_project(project_id: Optional[int]) -> None:
    """Tag following events with a project id, or stop tagging with None."""
    if project_id is None:
        unbind_contextvars("project_id")
    else:
        bind_contextvars(project_id=project_id)


def configure_logging(
    level: str = "info",
    format_type: str = "json",
    stream: Any = None,
) -> None:
    """
    Configure structlog for the process.

    Args:
        level: debug, info, warn or error
        format_type: 'json' for one object per line, 'text' for console output
        stream: Output stream (default: sys.stderr)
    """
    if stream is None:
        stream = sys.stderr

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LEVELS.get(level.lower(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(stream),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a logger, optionally tagged with ``logger_name``.

    The logger stays lazy, so module-level loggers pick up a later
    configure_logging() call.
    """
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


def log_stage_timing(stage: str, duration_seconds: float) -> None:
    get_logger("timing").info(
        "stage_completed",
        stage=stage,
        duration_seconds=round(duration_seconds, 3),
    )


# Initialize with defaults on import
configure_logging()
