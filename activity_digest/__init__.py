"""activity-digest - Weekly summaries of GitHub repository activity.

Logging lives here so every module can tag its records with the id of
the digest run that produced them, including records written from the
collector's worker threads.
"""

import contextvars
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional, TextIO

LOGGER_NAME = "activity_digest"
TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | run=%(run_id)s | %(message)s"

# "-" outside a digest run (cache commands, startup)
current_run_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "current_run_id", default="-"
)


@contextmanager
def run_scope(run_id: Optional[str] = None) -> Iterator[str]:
    """Tag log records emitted inside the block with a digest run id."""
    token = current_run_id.set(run_id or uuid.uuid4().hex[:8])
    try:
        yield current_run_id.get()
    finally:
        current_run_id.reset(token)


class RunIDFilter(logging.Filter):
    """Copies the current digest run id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = current_run_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for cron and CI log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(
    level: Optional[str] = None,
    log_format: str = "text",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Send activity_digest logs to stderr.

    stdout is reserved for the generated summary, so a digest can be
    piped or redirected without log lines mixed in.

    Args:
        level: Level name such as DEBUG or warning; INFO when omitted.
        log_format: 'text' or 'json'.
        stream: Destination override, mainly for tests.

    Returns:
        The package logger.
    """
    if log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RunIDFilter())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
    return logger


__version__ = "2.0.0"
__all__ = [
    "JSONFormatter",
    "LOGGER_NAME",
    "RunIDFilter",
    "current_run_id",
    "run_scope",
    "setup_logging",
    "__version__",
]
