"""Structured logging setup for the service."""

import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

# Attributes present on every LogRecord; anything else came in through ``extra=``.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON line including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def configure_logging(level: str = "INFO", json_output: bool = True, stream: Optional[Any] = None) -> None:
    """Install a single stream handler on the root logger.

    Calling it again replaces the handler installed by the previous call, so
    tests and the app factory can both call it safely.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_ledger_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler._ledger_handler = True
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-5s %(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(level.upper())
