from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_CONTEXT_FIELDS = ("receipt_id", "stage", "status", "outcome", "latency_ms")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.handlers:
        for handler in root.handlers:
            handler.setFormatter(JsonFormatter())
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def log_receipt_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    receipt_id: str,
    stage: str | None = None,
    status: str | None = None,
    outcome: str | None = None,
    latency_ms: int | None = None,
) -> None:
    extra: dict[str, Any] = {"receipt_id": receipt_id}
    if stage is not None:
        extra["stage"] = stage
    if status is not None:
        extra["status"] = status
    if outcome is not None:
        extra["outcome"] = outcome
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    logger.log(level, message, extra=extra)
