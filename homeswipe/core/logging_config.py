"""Homeswipe logging configuration.

``configure_logging()`` is called once at process startup by
:mod:`homeswipe.__main__`.  Every other module defines its own logger:

    import logging
    logger = logging.getLogger(__name__)

Each replication or sweep job binds a short job id to :data:`JOB_ID_CTX`
(see :func:`bind_job_id`).  The id is stamped onto every log record emitted
while the job runs, including records from the per-record tasks spawned by
``asyncio.gather`` (they inherit the context).

``LOG_LEVEL`` (default INFO) and ``LOG_FORMAT`` (``text`` or ``json``, default
text) are read from the environment when no explicit value is passed.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "JOB_ID_CTX",
    "JobContextFilter",
    "JsonFormatter",
    "bind_job_id",
    "configure_logging",
]

logger = logging.getLogger(__name__)

#: Identifier of the job currently running in this async context.  ``"-"``
#: outside of any job (startup, teardown, most tests).
JOB_ID_CTX: ContextVar[str] = ContextVar("job_id", default="-")

_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_FORMATS: frozenset[str] = frozenset({"text", "json"})

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(job_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite")


def bind_job_id(kind: str) -> tuple[str, Token[str]]:
    """Bind a fresh ``"<kind>-<hex>"`` id to :data:`JOB_ID_CTX`.

    Args:
        kind: Job label, e.g. ``"replicate"`` or ``"sweep"``.

    Returns:
        The new job id and the token needed to reset the variable.
    """
    job_id = f"{kind}-{uuid.uuid4().hex[:8]}"
    return job_id, JOB_ID_CTX.set(job_id)


class JobContextFilter(logging.Filter):
    """Copy the current :data:`JOB_ID_CTX` value onto ``record.job_id``.

    Installed on the handler (not the logger) so it runs for every record
    that reaches the formatter, whatever logger it was emitted on.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not hasattr(record, "job_id"):
            record.job_id = JOB_ID_CTX.get()
        return True


def _resolve_option(name: str, value: str | None, default: str, allowed: frozenset[str]) -> str:
    """Pick *value*, then ``$<name>``, then *default*; reject unknown choices.

    Matching is case-insensitive; the returned value uses the casing of
    *allowed*.
    """
    raw = value or os.environ.get(name) or default
    resolved = next((choice for choice in allowed if choice.lower() == raw.lower()), None)
    if resolved is None:
        raise ValueError(f"{name}={raw!r} is not one of {sorted(allowed)}")
    return resolved


def _build_handler(level: str, fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(JobContextFilter())
    formatter: logging.Formatter = (
        JsonFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT, _DATE_FORMAT)
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the whole process.

    A second call without *force* only adjusts the root level, so the CLI
    can be invoked from code (or tests) that already installed handlers.

    Args:
        level: Logging level name.  Falls back to ``$LOG_LEVEL``, then INFO.
        fmt: ``"text"`` or ``"json"``.  Falls back to ``$LOG_FORMAT``, then text.
        force: Replace handlers installed by an earlier call (or by pytest).

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve_option("LOG_LEVEL", level, "INFO", _LEVELS)
    resolved_fmt = _resolve_option("LOG_FORMAT", fmt, "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(_build_handler(resolved_level, resolved_fmt))

    quiet = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


# Attributes every LogRecord carries; anything else came in through ``extra=``.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "job_id"}


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON document.

    Shape::

        {"ts": "2026-02-28T12:34:56.789Z", "level": "INFO",
         "logger": "homeswipe.orchestrator.replicator",
         "job_id": "replicate-a3f2b1c0", "message": "Page 3 done ...",
         "extra": {"pages": 3}}

    Tracebacks go under ``exc_info`` and stack dumps under ``stack_info``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        doc: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "job_id": getattr(record, "job_id", None) or JOB_ID_CTX.get(),
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in _STANDARD_ATTRS
            },
        }

        traceback_text = record.exc_text
        if record.exc_info:
            traceback_text = self.formatException(record.exc_info)
        if traceback_text:
            doc["exc_info"] = traceback_text
        if record.stack_info:
            doc["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(doc, default=str)
