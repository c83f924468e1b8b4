"""
Structured logging setup.

Every log line is a single JSON object. Security-relevant events (auth,
authorization, mutations) are emitted through `log_event`, which attaches an
`action` plus arbitrary structured fields and masks sensitive values.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

SENSITIVE_KEYS = {"password", "new_password", "token", "secret", "accessToken", "refreshToken", "authorization"}
MASK = "********"


def sanitize(data: Any) -> Any:
    """Return a copy of `data` with sensitive keys masked, recursively."""
    if isinstance(data, dict):
        return {
            key: MASK if key in SENSITIVE_KEYS and value else sanitize(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize(item) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """Render records as one JSON line, merging the `event` extra."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            payload.update(event)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, JSONFormatter):
            return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)


def log_event(logger: logging.Logger, level: int, action: str, **fields: Any) -> None:
    """Emit one structured event, e.g. log_event(logger, logging.WARNING, "AUTH_FAILURE", ip=...)."""
    event = {"action": action, **sanitize(fields)}
    logger.log(level, action, extra={"event": event})
