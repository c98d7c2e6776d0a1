"""
Structured logging for the scoring engine.

Every line can be correlated three ways: by the HTTP request that caused it,
by the user whose score moved, and by the browsing session the interaction
came from. The three ids live in context variables so code deep inside the
orchestrator or a batch worker does not have to thread them through.

JSON lines in production, one readable line per event in development.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_ctx_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
session_id_ctx_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

_CONTEXT_VARS = {
    "request_id": request_id_ctx_var,
    "user_id": user_id_ctx_var,
    "session_id": session_id_ctx_var,
}

# Attributes every LogRecord has; anything else arrived through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_LATENCY_BUCKETS = ((10, "<10ms"), (100, "10-100ms"), (500, "100-500ms"), (1000, "500-1000ms"))


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


@contextmanager
def bound_engagement_context(user_id: Optional[str] = None, session_id: Optional[str] = None) -> Iterator[None]:
    """Attach user and session ids to every log line emitted inside the block."""
    tokens = []
    if user_id:
        tokens.append((user_id_ctx_var, user_id_ctx_var.set(user_id)))
    if session_id:
        tokens.append((session_id_ctx_var, session_id_ctx_var.set(session_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=1000ms"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class EngagementContextFilter(logging.Filter):
    """Fill request/user/session ids the caller did not pass explicitly."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, var in _CONTEXT_VARS.items():
            if getattr(record, name, None) is None:
                setattr(record, name, var.get())
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for name, value in vars(record).items():
            if name in _RECORD_ATTRS or name == "request_id" or value is None:
                continue
            payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = []
        for name, label in (("request_id", "rid"), ("user_id", "user"), ("session_id", "session")):
            value = getattr(record, name, None)
            if value:
                tags.append(f"[{label}={value}]")
        code = getattr(record, "error_code", None)
        if code:
            tags.append(f"[code={code}]")
        prefix = " ".join([_timestamp(record), record.levelname, "[growth]"] + tags)
        line = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Install one stdout handler on the growth logger; idempotent."""
    logger = logging.getLogger("growth")
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(EngagementContextFilter())

    logger.handlers = [handler]
    logger.propagate = True

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _truncate(value, limit: int = 500) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """
    Emit one structured scoring event.

    Explicit ids win over the bound context; extra values are stringified and
    truncated so a large payload cannot blow up a log line.
    """
    logger = logging.getLogger("growth")
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, object] = {
        "request_id": request_id or request_id_ctx_var.get(),
        "user_id": user_id or user_id_ctx_var.get(),
        "session_id": session_id or session_id_ctx_var.get(),
    }
    if event_type:
        fields["event_type"] = event_type
    if error_code:
        fields["error_code"] = error_code
    for key, value in (extra or {}).items():
        if key in _RECORD_ATTRS or key in fields:
            key = f"extra_{key}"
        fields[key] = _truncate(value)

    getattr(logger, level, logger.info)(msg, extra=fields)
