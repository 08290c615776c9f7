"""
Structured logging for the scheduling engine.

Call sites pass a message plus keyword fields; the adapter renders the fields
as ``key=value`` pairs after the message. Verbosity of the ``courtside``
logger tree is driven by SCHEDULE_LOG_LEVEL, never by inline flags.
"""
import logging
from typing import Any, Dict, Optional

from courtside import config

ROOT_LOGGER_NAME = "courtside"

_configured = False


def _render_fields(fields: Dict[str, Any]) -> str:
    parts = []
    for key in sorted(fields):
        value = fields[key]
        if isinstance(value, (list, tuple, set, frozenset)):
            value = ",".join(str(v) for v in value)
        parts.append(f"{key}={value}")
    return " ".join(parts)


class StructuredLogger(logging.LoggerAdapter):
    """LoggerAdapter that accepts arbitrary keyword fields."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        merged = dict(self.extra)
        merged.update(fields)
        return StructuredLogger(self.logger, merged)

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        std_kwargs = {
            key: kwargs.pop(key)
            for key in ("exc_info", "stack_info", "stacklevel")
            if key in kwargs
        }
        fields = dict(self.extra)
        fields.update(kwargs)
        if fields:
            msg = f"{msg} {_render_fields(fields)}"
        self.logger.log(level, msg, *args, extra={"fields": fields}, **std_kwargs)


def get_logger(name: str, **fields: Any) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name), fields)


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a stream handler to the courtside logger tree (idempotent)."""
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel((level or config.SCHEDULE_LOG_LEVEL).upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    _configured = True
