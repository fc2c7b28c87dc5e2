# packrepo/core/logging/__init__.py
from __future__ import annotations

from .context import LogContext, setLogContext, clearLogContext, getLogContext, restoreLogContext
from .setup import configureLogging

__all__ = [
    "configureLogging",
    "LogContext",
    "setLogContext",
    "clearLogContext",
    "getLogContext",
    "restoreLogContext",
]
