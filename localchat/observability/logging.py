"""
localchat - Structured Logging

Every log call takes its structured fields as keyword arguments:

    logger = get_logger(__name__)
    logger.info("Stream closed", provider="ollama", outcome="completed", deltas=42)

Fields of the current request (request_id, trace_id, provider, model)
live in a ContextVar and are merged into every record, so concurrent
streams never mix their fields.

LOG_FORMAT=json renders one JSON object per line:

    {"timestamp": "...", "level": "INFO", "logger": "localchat.adapters.base",
     "message": "Stream closed", "request_id": "req_xyz", "provider": "ollama", ...}

LOG_FORMAT=text renders the message followed by ``key=value`` pairs.
Fields whose name looks like a credential are redacted in both formats.
"""

import json
import logging
import os
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

_request_context: ContextVar[Optional["LogContext"]] = ContextVar("log_context", default=None)

# Attributes every LogRecord already has; structured fields must not shadow them
RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename",
    "funcName", "levelname", "levelno", "lineno",
    "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info",
    "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "asctime",
})

SENSITIVE_MARKERS = (
    "password", "secret", "token", "api_key", "apikey",
    "authorization", "credential", "private_key",
)

REDACTED = "[REDACTED]"


def is_sensitive(field_name: str) -> bool:
    lowered = field_name.lower()
    return any(marker in lowered for marker in SENSITIVE_MARKERS)


# ============================================================
# Request context
# ============================================================

@dataclass
class LogContext:
    """Correlation fields of the request being served."""
    request_id: str = ""
    trace_id: str = ""
    span_id: str = ""
    provider: str = ""
    model: str = ""
    endpoint: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def get_current(cls) -> Optional["LogContext"]:
        return _request_context.get()

    @classmethod
    def set_current(cls, ctx: "LogContext"):
        _request_context.set(ctx)

    @classmethod
    def clear(cls):
        _request_context.set(None)

    def update(self, **kwargs):
        """Set known fields; anything else goes to ``extra``."""
        names = {f.name for f in fields(self)} - {"extra"}
        for key, value in kwargs.items():
            if key in names:
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty fields, ``extra`` flattened in."""
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name)
        }
        result.update(self.extra)
        return result


def _record_fields(record: logging.LogRecord, redact: bool) -> Dict[str, Any]:
    """Structured fields attached to a record (everything not built in)."""
    result = {}
    for key, value in record.__dict__.items():
        if key in RESERVED_ATTRS or key.startswith("_"):
            continue
        result[key] = REDACTED if redact and is_sensitive(key) else value
    return result


# ============================================================
# Formatters
# ============================================================

class JSONFormatter(logging.Formatter):
    """One JSON object per record, request context merged in."""

    def __init__(
        self,
        include_location: bool = False,
        redact_sensitive: bool = True,
    ):
        super().__init__()
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_location:
            log_data["location"] = f"{record.filename}:{record.lineno}"

        ctx = LogContext.get_current()
        if ctx:
            log_data.update(ctx.to_dict())

        log_data.update(_record_fields(record, self.redact_sensitive))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """``time - logger - LEVEL - message key=value ...`` for local runs."""

    def __init__(self, redact_sensitive: bool = True):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _record_fields(record, self.redact_sensitive)
        if not extra:
            return line

        pairs = " ".join(f"{key}={value}" for key, value in extra.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


# ============================================================
# Logger
# ============================================================

class StructuredLogger:
    """
    Thin wrapper over a stdlib logger.

    Keyword arguments other than ``exc_info``/``stack_info``/``stacklevel``
    become structured fields. A field named like a LogRecord attribute is
    stored as ``field_<name>`` instead of breaking the record.
    """

    PASSTHROUGH = frozenset({"exc_info", "stack_info", "stacklevel"})

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args, **kwargs):
        if not self._logger.isEnabledFor(level):
            return

        extra: Dict[str, Any] = {}
        ctx = LogContext.get_current()
        if ctx:
            extra.update(ctx.to_dict())
        extra.update(kwargs.pop("extra", None) or {})

        for key in list(kwargs):
            if key not in self.PASSTHROUGH:
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = {
            (f"field_{key}" if key in RESERVED_ATTRS else key): value
            for key, value in extra.items()
        }
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)


_logging_configured = False


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
) -> None:
    """
    Install the localchat handler on the root logger.

    Calling again replaces the handler, so level and format can be
    changed at startup after ``get_logger`` auto-configured them.
    """
    global _logging_configured

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        if getattr(handler, "_localchat_handler", False):
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler._localchat_handler = True

    if json_output:
        handler.setFormatter(JSONFormatter(include_location, redact_sensitive))
    else:
        handler.setFormatter(TextFormatter(redact_sensitive))
    root_logger.addHandler(handler)

    # Per-request lines from the HTTP stack duplicate our middleware's
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> StructuredLogger:
    """Structured logger; configures from LOG_LEVEL / LOG_FORMAT on first use."""
    if not _logging_configured:
        setup_logging(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
        )

    return StructuredLogger(logging.getLogger(name))


class TimedOperation:
    """
    Logs an operation's duration when the block exits.

    Usage:
        async with TimedOperation("tool_service_call", logger, extra={"tool": name}):
            response = await client.post(...)
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        log_level: int = logging.DEBUG,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        self.logger = logger or get_logger("timed_operation")
        self.log_level = log_level
        self.extra = extra or {}
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "TimedOperation":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        details = {"operation": self.operation, "duration_ms": round(self.duration_ms, 2), **self.extra}

        if exc_type:
            self.logger.warning(f"{self.operation} failed", error=str(exc_val), **details)
        else:
            self.logger._log(self.log_level, f"{self.operation} completed", **details)

    async def __aenter__(self) -> "TimedOperation":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)
