"""Structured logging setup for the curriculum engine."""
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Optional

import structlog


def setup_logging(log_level: str = "INFO", json_logs: Optional[bool] = None) -> None:
    """Configure structured logging with structlog.

    JSON lines are emitted when stderr is not a terminal, unless ``json_logs``
    forces one renderer or the other.
    """
    if json_logs is None:
        json_logs = not sys.stderr.isatty()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "curriculum_engine") -> structlog.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)


# In-memory per-run log buffer, served by the run logs endpoint
MAX_RUN_LOG_ENTRIES = 500
MAX_RUN_LOG_BUFFERS = 200

_log_buffers: dict[str, list[dict[str, Any]]] = {}
_log_lock = threading.Lock()


def _evict_oldest_runs() -> None:
    # dicts keep insertion order, so the first keys belong to the oldest runs
    while len(_log_buffers) > MAX_RUN_LOG_BUFFERS:
        del _log_buffers[next(iter(_log_buffers))]


def init_run_log_buffer(run_id: str) -> None:
    """Initialize a log buffer for a pipeline run.

    Only the most recent MAX_RUN_LOG_BUFFERS runs are retained.
    """
    with _log_lock:
        _log_buffers.pop(run_id, None)
        _log_buffers[run_id] = []
        _evict_oldest_runs()


def append_run_log(run_id: str, level: str, node: str, message: str, **fields: Any) -> None:
    """Append an entry to the run's log buffer.

    The oldest entries are dropped once the buffer holds MAX_RUN_LOG_ENTRIES.
    """
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "node": node,
        "message": message,
    }
    if fields:
        entry["fields"] = fields
    with _log_lock:
        buffer = _log_buffers.get(run_id)
        if buffer is None:
            buffer = _log_buffers[run_id] = []
            _evict_oldest_runs()
        buffer.append(entry)
        if len(buffer) > MAX_RUN_LOG_ENTRIES:
            del buffer[: len(buffer) - MAX_RUN_LOG_ENTRIES]


def get_run_logs(run_id: str, since_index: int = 0) -> list[dict[str, Any]]:
    """Get log entries for a run since a given index."""
    with _log_lock:
        return list(_log_buffers.get(run_id, [])[since_index:])


def has_run_logs(run_id: str) -> bool:
    with _log_lock:
        return run_id in _log_buffers


def clear_run_log_buffer(run_id: str) -> None:
    """Clear the log buffer for a run."""
    with _log_lock:
        _log_buffers.pop(run_id, None)
