"""Structured JSON logging with per-tick correlation via contextvars."""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone

# Each poller evaluation pass binds its own id; concurrent per-record tasks
# spawned by asyncio.gather inherit it.
_tick_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "tick_id", default="-"
)

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime",
}


class JsonFormatter(logging.Formatter):
    """One compact JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.message,
            "tick_id": _tick_id_var.get(),
        }
        for key, val in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                data[key] = val

        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str, ensure_ascii=False)


def setup_json_logging(level: str = "INFO") -> None:
    """Route the root logger to stdout through JsonFormatter."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def set_tick_id(tick_id: str) -> contextvars.Token:
    return _tick_id_var.set(tick_id)


def reset_tick_id(token: contextvars.Token) -> None:
    _tick_id_var.reset(token)


def get_tick_id() -> str:
    return _tick_id_var.get()
