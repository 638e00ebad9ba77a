from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from harmony_planner.config import get_settings


@dataclass(frozen=True)
class RequestContext:
    request_id: str = "-"
    route: str = "-"
    method: str = "-"


_EMPTY_CONTEXT = RequestContext()
_request_context: contextvars.ContextVar[RequestContext] = contextvars.ContextVar(
    "harmony_request_context", default=_EMPTY_CONTEXT
)

# Attributes every LogRecord carries; anything else on a record came in through ``extra``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "taskName"}
_LEADING_FIELDS = ("timestamp", "level", "logger", "event", "request_id", "method", "route")


class RequestContextFilter(logging.Filter):
    """Stamps the active request context and an ``event`` name onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in asdict(_request_context.get()).items():
            if not hasattr(record, name):
                setattr(record, name, value)
        if not hasattr(record, "event"):
            record.event = record.msg if isinstance(record.msg, str) else "log"
        return True


class StructuredFormatter(logging.Formatter):
    def __init__(self, json_output: bool) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RECORD_ATTRS:
                continue
            payload[key] = value
        payload.setdefault("event", "log")
        message = record.getMessage()
        if message and message != payload["event"]:
            payload["message"] = message
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if self.json_output:
            return json.dumps(payload, default=str)
        leading = [f"{name}={payload.pop(name, '-')}" for name in _LEADING_FIELDS]
        return " ".join(leading + [f"{key}={value}" for key, value in payload.items()])


def configure_logging(stream=None) -> None:
    """Install the structured handler on the root logger once per process."""
    root = logging.getLogger()
    if getattr(root, "_harmony_logging_configured", False):
        return

    settings = get_settings()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter(json_output=settings.json_logs))
    handler.addFilter(RequestContextFilter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level)
    root._harmony_logging_configured = True  # type: ignore[attr-defined]


def set_request_context(*, request_id: str, route: str, method: str) -> None:
    _request_context.set(RequestContext(request_id=request_id, route=route, method=method))


def clear_request_context() -> None:
    _request_context.set(_EMPTY_CONTEXT)


def current_request_id() -> str:
    return _request_context.get().request_id


def new_request_id() -> str:
    return str(uuid.uuid4())


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    logger.log(level, event, extra={"event": event, **fields})


def elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)
