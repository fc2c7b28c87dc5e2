# packrepo/core/logging/context.py
from __future__ import annotations

import contextvars
from typing import Any

__all__ = ["LogContext", "setLogContext", "clearLogContext", "getLogContext", "restoreLogContext"]

LogContext = dict[str, Any]

# Correlation ids of the resolve/deploy running in this context
_correlationVar: contextvars.ContextVar[LogContext | None] = contextvars.ContextVar(
    "packrepo.correlation",
    default=None,
)



def getLogContext() -> LogContext | None:
    return _correlationVar.get()



def setLogContext(**ids: Any) -> LogContext | None:
    """
    Merge `ids` (resolveId, deployId, ...) into the current context; None values are skipped.

    Returns the context as it was before, for restoreLogContext().
    """
    previous = _correlationVar.get()
    merged = dict(previous or {})
    merged.update({key: value for key, value in ids.items() if value is not None})
    _correlationVar.set(merged)
    return previous



def restoreLogContext(previous: LogContext | None) -> None:
    """Put back a context captured by setLogContext()."""
    _correlationVar.set(dict(previous) if previous else None)



def clearLogContext() -> None:
    _correlationVar.set(None)
