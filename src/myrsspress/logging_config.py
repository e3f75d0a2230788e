"""Logging configuration and structured AI-call records.

`configure_logging` sets up the root logger once per process. The AI helpers
emit one JSON object per record so call metrics and failures can be filtered
out of the regular application log.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional

LogFormat = Literal["text", "json"]

_TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | %(message)s"

ai_logger = logging.getLogger("myrsspress.ai")


class AIErrorType(str, Enum):
    API_ERROR = "API_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "file": f"{record.filename}:{record.lineno}",
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    level: str | int | None = None,
    log_format: LogFormat | None = None,
) -> None:
    """Configure the root logger.

    Parameters
    ----------
    level:
        Logging level as a string (e.g., "INFO") or numeric value. Falls back
        to LOG_LEVEL, then INFO.
    log_format:
        "text" or "json". Falls back to LOG_FORMAT, then text.
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if log_format is None:
        log_format = os.environ.get("LOG_FORMAT", "text").lower()  # type: ignore[assignment]

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter() if log_format == "json" else logging.Formatter(_TEXT_FORMAT)
    )
    root_logger.addHandler(handler)

    # botocore logs every credential lookup at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _emit(level: int, entry: Dict[str, Any]) -> None:
    ai_logger.log(level, json.dumps(entry, ensure_ascii=False, default=str))


def log_ai_error(
    message: str,
    *,
    service: str,
    model_id: str | None,
    error_type: AIErrorType,
    error: Optional[BaseException] = None,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Record a failed or degraded AI call."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "ERROR",
        "message": message,
        "service": service,
        "modelId": model_id,
        "errorType": error_type.value,
    }
    if context:
        entry["context"] = context
    if error is not None:
        entry["error"] = str(error)
        entry["stack"] = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
    _emit(logging.ERROR, entry)


def log_ai_metrics(
    *,
    service: str,
    operation: str,
    model_id: str | None,
    response_time_ms: float,
    success: bool,
    tokens: Optional[Dict[str, int]] = None,
    error_type: Optional[AIErrorType] = None,
) -> None:
    """Record timing and token usage for one AI call."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "INFO",
        "message": "AI call metrics",
        "apiCallCount": 1,
        "responseTimeMs": round(response_time_ms, 1),
        "modelId": model_id,
        "service": service,
        "operation": operation,
        "success": success,
    }
    if tokens:
        entry["tokens"] = tokens
    if error_type is not None:
        entry["errorType"] = error_type.value
    _emit(logging.INFO, entry)
