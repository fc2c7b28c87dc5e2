# packrepo/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers

from packrepo.app.settings import config, configBool
from .formatters import DevFormatter, JsonFormatter, RedactingFormatter

__all__ = [
    "configureLogging",
]



def configureLogging() -> None:
    """
    Initiate the global logging configuration.

    Dev:
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG) when logging.file is set

    Prod:
      - Console INFO
      - JSON file log INFO with rotation when logging.file is set

    Secrets in catalog URIs are scrubbed in both modes.
    """
    devMode = configBool("debug.devModeEnabled", False)
    rootLevel = logging.DEBUG if devMode else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(RedactingFormatter(DevFormatter()))
    root.addHandler(consoleHandler)

    logFile = config("logging.file", None)
    if logFile:
        fileHandler = logging.handlers.RotatingFileHandler(
            str(logFile),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(RedactingFormatter(JsonFormatter()))
        root.addHandler(fileHandler)
