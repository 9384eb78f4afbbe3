"""JSON helpers for values read back from DynamoDB."""

from __future__ import annotations

from decimal import Decimal
from typing import Any


def to_json_safe(value: Any) -> Any:
    """Convert DynamoDB Decimals (recursively) into int/float."""
    if isinstance(value, Decimal):
        if value % 1 == 0:
            return int(value)
        return float(value)
    if isinstance(value, list):
        return [to_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items()}
    return value
