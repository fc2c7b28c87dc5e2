# packrepo/core/jsonutils.py
from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any

__all__ = ["safeJsonDumps", "tryJSONify"]



def safeJsonDumps(obj: object) -> str:
    """
    Serializes an object to a compact JSON string.
    Uses deterministic separators (",", ":") and disallows NaN/infinity.
    UTF-8 characters are kept as-is.
    If direct JSON encoding fails, falls back to tryJSONify and retries.
    """
    try:
        return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return json.dumps(tryJSONify(obj), ensure_ascii=False, allow_nan=False, separators=(",", ":"))



def tryJSONify(value: Any, *, _depth: int = 0, _maxDepth: int = 32) -> Any:
    """
    Best-effort conversion into plain JSON types.
    Versions, resources and other objects are rendered with str().
    """
    if _depth > _maxDepth:
        return "<max depth>"
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if value == value and value not in (float("inf"), float("-inf")) else str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): tryJSONify(val, _depth=_depth + 1, _maxDepth=_maxDepth) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [tryJSONify(item, _depth=_depth + 1, _maxDepth=_maxDepth) for item in value]
    return str(value)
