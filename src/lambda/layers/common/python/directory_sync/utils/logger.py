"""Lightweight JSON logger utility for the workflow Lambdas.

Provides a consistent logger adapter that emits structured logs with
environment and correlation_id fields when available. State machine task
events carry the execution id under ``Context.Execution.Id``, which is used as
the correlation id.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        env = getattr(record, "environment", None) or os.environ.get("ENVIRONMENT")
        if env:
            payload["environment"] = env
        corr = getattr(record, "correlation_id", None)
        if corr:
            payload["correlation_id"] = corr
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in payload or key in ("environment", "correlation_id"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload["timestamp"] = record.created
        return json.dumps(payload, ensure_ascii=False, default=str)


class _Adapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: Dict[str, Any]):  # type: ignore[override]
        extra = self.extra.copy() if isinstance(self.extra, dict) else {}
        if "extra" in kwargs and isinstance(kwargs["extra"], dict):
            extra.update(kwargs["extra"])  # merge per-call extras
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, correlation_id: Optional[str] = None) -> logging.LoggerAdapter:
    """Return a JSON-formatted logger adapter with optional correlation_id."""
    base = logging.getLogger(name)
    if not base.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
        base.addHandler(handler)
        base.propagate = False
    base.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    extras = {"environment": os.environ.get("ENVIRONMENT")}
    if correlation_id:
        extras["correlation_id"] = correlation_id
    return _Adapter(base, extras)


def extract_correlation_id(event: Optional[Dict[str, Any]]) -> Optional[str]:
    """Try to extract a correlation id from common event shapes."""
    if not isinstance(event, dict):
        return None
    for key in ("correlation_id", "CorrelationId", "request_id"):
        val = event.get(key)
        if isinstance(val, str) and val:
            return val
    ctx_obj = event.get("Context")
    ctx: Dict[str, Any] = ctx_obj if isinstance(ctx_obj, dict) else {}
    execution = ctx.get("Execution")
    if isinstance(execution, dict):
        exec_id = execution.get("Id")
        if isinstance(exec_id, str) and exec_id:
            return exec_id
    return None
