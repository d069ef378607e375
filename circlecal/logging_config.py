"""
Structured logging configuration using structlog wrapping stdlib.

Engine modules that emit key/value events (the orchestrator) use
get_logger(); the policy and store modules use plain logging.getLogger().
Both end up in one stderr handler with the same renderer, and both carry
the request id bound by request_context().

Environment:
    CIRCLECAL_LOG_LEVEL: root level name (default INFO)
    CIRCLECAL_LOG_FORMAT: "json" for one JSON object per line, else console

Usage:
    from circlecal.logging_config import get_logger, request_context, setup_logging
    setup_logging()

    logger = get_logger(__name__)
    with request_context("find_common_slots", requester_id):
        logger.info("find_time_complete", slot_count=3)
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

LEVEL_ENV = "CIRCLECAL_LOG_LEVEL"
FORMAT_ENV = "CIRCLECAL_LOG_FORMAT"


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Route structlog and stdlib records through one stderr handler. Safe to call twice."""
    level = level or os.environ.get(LEVEL_ENV, "INFO")
    if json_output is None:
        json_output = os.environ.get(FORMAT_ENV, "").lower() == "json"

    # request_id / operation / requester_id come in through merge_contextvars
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final_chain: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_output:
        # Tracebacks become a string field instead of breaking the line format
        final_chain.append(structlog.processors.format_exc_info)
    final_chain.append(_renderer(json_output))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(foreign_pre_chain=pre_chain, processors=final_chain)
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def request_context(operation: str, requester_id: str) -> Iterator[str]:
    """
    Bind a request id and the requester to every log line emitted inside.

    Context vars are copied into tasks spawned within the block, so the
    per-participant fan-out logs under the same request id.

    Yields:
        The generated request id
    """
    request_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(
        request_id=request_id,
        operation=operation,
        requester_id=requester_id,
    ):
        yield request_id


__all__ = ["get_logger", "request_context", "setup_logging"]
