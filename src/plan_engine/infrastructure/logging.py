"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from plan_engine.domain.entities.operators import Pipeline


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
) -> None:
    """
    Set up structured logging with structlog.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    numeric_level = getattr(logging, level.upper())

    # Plan engine events go to stderr so compiled SQL piped to stdout stays clean
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> Any:
    """
    Get a bound logger instance.

    Args:
        name: Logger name (module name typically)
        **initial_context: Initial context to bind to the logger

    Returns:
        A bound structlog logger
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def plan_log_context(pipeline: Pipeline, **extra: Any) -> AbstractContextManager[Any]:
    """Tag every log event emitted inside the block with the pipeline's shape.

    Binds the source table name, the operator count and whether the
    pipeline is materialized, plus any ``extra`` pairs. The previous
    context is restored on exit.

    Usage:
        with plan_log_context(pipeline, dialect="reference"):
            logger.info("pipeline_compiled")
    """
    return structlog.contextvars.bound_contextvars(
        table=pipeline.source_table.name,
        nodes=len(pipeline.operators()),
        materialized=pipeline.is_terminated,
        **extra,
    )
