"""Structured logging for the federation service."""

from __future__ import annotations

import contextvars
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from .config import LOG_JSON, LOG_LEVEL, SERVICE_NAME

_FLOW_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "flow_id", default=None
)
_CONFIGURED = False

_RESERVED_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    }
)


def mask_state(state: Optional[str]) -> str:
    """Shorten a state token so logs can correlate without exposing it."""

    if not state:
        return ""
    return f"{state[:8]}..."


@contextmanager
def flow_context(state: Optional[str]) -> Iterator[None]:
    """Tag every record logged inside the block with the (masked) flow state."""

    token = _FLOW_ID_CTX.set(mask_state(state) or None)
    try:
        yield
    finally:
        _FLOW_ID_CTX.reset(token)


class FlowContextFilter(logging.Filter):
    """Inject the service name and active flow identifier into records."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self._service_name
        record.flow_id = _FLOW_ID_CTX.get()
        return True


class JsonLogFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "service": getattr(record, "service", self._service_name),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_KEYS or key in payload or value is None:
                continue
            try:
                json.dumps(value)
                payload[key] = value
            except TypeError:
                payload[key] = str(value)
        return json.dumps(payload, default=str)


def configure_logging(
    service_name: str = SERVICE_NAME,
    level: str = LOG_LEVEL,
    json_output: bool = LOG_JSON,
) -> None:
    """Install a single stream handler on the root logger."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JsonLogFormatter(service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(flow_id)s] %(message)s")
        )
    handler.addFilter(FlowContextFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for logger_name in ("httpx", "httpcore"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _CONFIGURED = True


__all__ = [
    "FlowContextFilter",
    "JsonLogFormatter",
    "configure_logging",
    "flow_context",
    "mask_state",
]
