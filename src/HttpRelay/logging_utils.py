# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.logging_utils",
#   "purpose": "Structured logging helpers shared by relay workers.",
#   "sections": [
#     {
#       "id": "jsonformatter",
#       "name": "JSONFormatter",
#       "anchor": "class-jsonformatter",
#       "kind": "class"
#     },
#     {
#       "id": "structuredlogger",
#       "name": "StructuredLogger",
#       "anchor": "class-structuredlogger",
#       "kind": "class"
#     },
#     {
#       "id": "get-logger",
#       "name": "get_logger",
#       "anchor": "function-get-logger",
#       "kind": "function"
#     },
#     {
#       "id": "log-event",
#       "name": "log_event",
#       "anchor": "function-log-event",
#       "kind": "function"
#     },
#     {
#       "id": "configure-logging",
#       "name": "configure_logging",
#       "anchor": "function-configure-logging",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Structured logging helpers shared by relay workers.

Workers log through a :class:`StructuredLogger` so every record carries the
request context (method, address, request code) in ``extra_fields``. The
:class:`JSONFormatter` renders those fields for machine consumption; console
output keeps the plain ``LEVEL: message`` layout.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .settings import LogFormat, RelaySettings

__all__ = [
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "log_event",
]

ROOT_LOGGER_NAME = "HttpRelay"

_SENSITIVE_KEY = re.compile(r"(?i)(authorization|token|secret|password|api[_-]?key|cookie)")


def _mask_sensitive(payload: Dict[str, Any]) -> Dict[str, Any]:
    masked: Dict[str, Any] = {}
    for key, value in payload.items():
        if _SENSITIVE_KEY.search(str(key)):
            masked[key] = "***REDACTED***"
        elif isinstance(value, dict):
            masked[key] = _mask_sensitive(value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with relay-specific fields."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(_mask_sensitive(payload), default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter that enriches structured logs with shared context."""

    def __init__(
        self, logger: logging.Logger, base_fields: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(logger, {})
        self.base_fields: Dict[str, Any] = dict(base_fields or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        """Merge adapter context into ``extra`` metadata for structured output."""

        extra = kwargs.setdefault("extra", {})
        fields = dict(self.base_fields)
        extra_fields = extra.get("extra_fields")
        if isinstance(extra_fields, dict):
            fields.update(extra_fields)
        extra["extra_fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs

    def child(self, **fields: object) -> "StructuredLogger":
        """Create a new adapter inheriting context with optional overrides."""

        merged = dict(self.base_fields)
        merged.update({k: v for k, v in fields.items() if v is not None})
        return StructuredLogger(self.logger, merged)


def get_logger(
    name: str = ROOT_LOGGER_NAME, *, base_fields: Optional[Dict[str, Any]] = None
) -> StructuredLogger:
    """Return a structured adapter around ``logging.getLogger(name)``.

    Handlers are not attached here; applications (or :func:`configure_logging`)
    decide where records go.
    """

    return StructuredLogger(logging.getLogger(name), base_fields)


def log_event(logger: logging.LoggerAdapter | logging.Logger, level: str, message: str, **fields: object) -> None:
    """Emit a structured log record using the ``extra_fields`` convention."""

    normalised_level = str(level).lower()
    if normalised_level in {"warning", "error"} and "error_code" in fields:
        fields["error_code"] = str(fields["error_code"]).upper()
    emitter = getattr(logger, normalised_level, None)
    if not callable(emitter):
        raise AttributeError(f"Logger has no level '{level}'")
    emitter(message, extra={"extra_fields": fields})


def configure_logging(settings: RelaySettings, *, stream=None) -> logging.Logger:
    """Attach one managed handler to the ``HttpRelay`` logger hierarchy."""

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level_name = settings.log_level.value if settings.log_level else "INFO"
    if settings.debug_requests:
        level_name = "DEBUG"
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_httprelay_managed", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if settings.log_format is LogFormat.JSON:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handler._httprelay_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False
    return logger
