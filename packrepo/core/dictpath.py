# packrepo/core/dictpath.py
from __future__ import annotations
from typing import Any
from collections.abc import Mapping

__all__ = ["getByPath"]



def _splitPathWithEscapes(path: str) -> list[str]:
    """
    Splits a dotted/slashed path where '.' and '/' are segment separators,
    and backslash '\\' escapes the next character (including separators).

    Examples:
      - a.b.c   -> ["a", "b", "c"]
      - a\\.b/c -> ["a.b", "c"]
    """
    parts: list[str] = []
    curr: list[str] = []
    esc = False
    for ch in path or "":
        if esc:
            curr.append(ch)
            esc = False
            continue
        if ch == "\\":
            esc = True
            continue
        if ch in (".", "/"):
            parts.append("".join(curr))
            curr = []
            continue
        curr.append(ch)
    if esc:
        raise ValueError("Path ends with a dangling escape (trailing backslash)")
    parts.append("".join(curr))
    return parts



def getByPath(obj: Any, path: str, default: Any | None = None) -> Any:
    """
    Returns the value at `path` from nested mappings, or `default` when the
    chain cannot be resolved. Invalid paths count as "not found".
    """
    if not isinstance(path, str) or not path:
        return default
    try:
        parts = _splitPathWithEscapes(path)
    except ValueError:
        return default
    if any(part == "" for part in parts):
        return default

    current: Any = obj
    for part in parts:
        if isinstance(current, Mapping) and part in current:
            current = current[part]
            continue
        return default
    return current
