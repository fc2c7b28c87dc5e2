# packrepo/core/ids.py
from __future__ import annotations

import uuid6

__all__ = ["uuidv7", "shortId"]



def uuidv7(*, prefix: str = "") -> str:
    """Returns a UUIDv7 string (time-ordered), optionally prefixed."""
    return prefix + str(uuid6.uuid7())



def shortId(prefix: str = "") -> str:
    """Returns the random tail of a UUIDv7 (12 hex chars), handy for log correlation ids."""
    if not isinstance(prefix, str):
        raise TypeError("prefix must be a str")
    return f"{prefix}{uuid6.uuid7().hex[-12:]}"
