"""Logging configuration for tenant-api.

Two output shapes, picked by LOG_JSON:

  _ContainerFormatter: one human-readable line per record, for local
    runs and `docker logs`.  WARNING and above get a [file:line] suffix.

  _JsonFormatter: one JSON object per line, for log aggregation.
    Request context (request_id, user_id, path, ...) becomes top-level
    keys so it can be filtered on.

Both formatters mask anything that looks like a bearer credential.
The service handles session tokens and invitation tokens on almost
every request; a stray f-string must not put one in the log stream.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar

_BEARER_RE = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/=]+")

# Per-request context, set by RequestContextMiddleware and require_principal.
# contextvars rather than thread-locals: concurrent requests share a thread.
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[str] = ContextVar("user_id", default="-")


def redact(text: str) -> str:
    """Replace bearer credentials in *text* with a fixed marker."""
    return _BEARER_RE.sub(r"\1[redacted]", text)


def token_fingerprint(token: str) -> str:
    """Short, non-reversible label for a secret token, safe to log."""
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}…{token[-2:]}"


class _RequestContextFilter(logging.Filter):
    """Copies the context variables onto every LogRecord it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        if not hasattr(record, "user_id"):
            record.user_id = user_id_var.get()  # type: ignore[attr-defined]
        return True


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout."""

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        # splice milliseconds in front of the +HHMM offset
        return f"{base[:-5]}.{int(record.msecs):03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return redact(super().format(record))


class _JsonFormatter(logging.Formatter):
    """JSON-lines formatter; context fields become top-level keys."""

    _CONTEXT_FIELDS = (
        "request_id",
        "user_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "operation",
        "error_code",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger to write to stdout.

    Unknown level names fall back to INFO.  Chatty third-party loggers
    (uvicorn access log, httpx request lines, SQLAlchemy echo) are held
    at WARNING unless the service itself runs quieter than that.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(_RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
