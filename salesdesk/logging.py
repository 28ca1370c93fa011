from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, TextIO

from salesdesk.context import get_correlation_id


_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _with_correlation_id(factory: Any) -> Any:
    def make_record(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = factory(*args, **kwargs)
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return record

    make_record.salesdesk = True  # type: ignore[attr-defined]
    return make_record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line.

    Only whitelisted ``extra`` keys are copied into ``fields`` so request
    bodies, tokens or password hashes passed by mistake never reach the log.
    """

    fields = frozenset(
        {
            "method",
            "path",
            "status_code",
            "duration_ms",
            "user_id",
            "entity_type",
            "entity_id",
            "action",
            "lead_id",
            "customer_id",
            "outcome",
            "environment",
            "reason",
            "error",
        }
    )
    max_error_length = 500

    def __init__(self, extra_fields: Iterable[str] = ()) -> None:
        super().__init__()
        self.allowed = self.fields | frozenset(extra_fields)

    def format(self, record: logging.LogRecord) -> str:
        extras: dict[str, Any] = {
            key: value
            for key, value in record.__dict__.items()
            if key in self.allowed and key not in _STANDARD_ATTRS
        }
        if isinstance(extras.get("error"), str):
            extras["error"] = extras["error"][: self.max_error_length]
        if record.exc_info:
            extras["exception"] = self.formatException(record.exc_info)

        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": extras,
        }
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """Route every logger to a single JSON stdout handler. Later calls are no-ops."""

    root = logging.getLogger()
    if getattr(root, "_salesdesk_configured", False):
        return

    resolved = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root.handlers.clear()
    root.setLevel(resolved)
    root.addHandler(handler)
    if not getattr(logging.getLogRecordFactory(), "salesdesk", False):
        logging.setLogRecordFactory(_with_correlation_id(logging.getLogRecordFactory()))
    root._salesdesk_configured = True  # type: ignore[attr-defined]
