# packrepo/app/settings.py
from __future__ import annotations
import json5, os
from pydantic import JsonValue
from pathlib import Path
from typing import Any, cast
from functools import lru_cache

from packrepo.core.dictpath import getByPath

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS_ENV_VAR", "SETTINGS", "userSettingsPath", "loadUserSettings",
    "loadSettings", "reloadSettings", "deepMerge", "config", "configBool",
]


SETTINGS_ENV_VAR = "PACKREPO_SETTINGS"
SETTINGS: JsonValue = {
    "__source": "PACKREPO_DEFAULTS",
    "resolver": {
        # Package names whose optional imports are resolved as mandatory; "*" means all
        "mandatoryPackages": [],
        "checkInterruptEachStep": True,
    },
    "deploy": {"startByDefault": False},
    "repositories": {"urls": [], "maxReferralDepth": 8},
    "debug": {"devModeEnabled": False},
    "logging": {"file": None},
}



def userSettingsPath() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(os.path.expanduser(override))
    return Path(os.path.expanduser("~/.packrepo/packrepo.json5"))



def loadUserSettings() -> JsonValue:
    filePath = userSettingsPath()
    if filePath.exists():
        try:
            loaded = json5.loads(filePath.read_text(encoding="utf-8"))
        except (OSError, ValueError) as err:
            logger.error("Failed to parse '%s': %s", filePath, err)
            return {}
        if not isinstance(loaded, dict):
            logger.error("Ignoring '%s': top level must be an object, got %s", filePath, type(loaded).__name__)
            return {}
        return cast(JsonValue, loaded)
    return {}



@lru_cache(maxsize=1)
def loadSettings():
    return deepMerge(SETTINGS, loadUserSettings())



def reloadSettings():
    """Drop the cached snapshot (after editing the user file or env var)."""
    loadSettings.cache_clear()
    return loadSettings()



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    Returns a new JsonValue where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types (lists, strings, numbers, booleans, null),
    the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, JsonValue] = dict(first)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], cast(JsonValue, value))
            else:
                out[key] = cast(JsonValue, value)
        return cast(JsonValue, out)

    return cast(JsonValue, second)

# ---------- Ergonomic accessors over merged settings ----------

def config(path: str, default: Any = None) -> Any:
    """
    Read a dotted path from the merged settings. Returns `default` when the path is not found.

    Example:
      config("resolver.mandatoryPackages", [])  # -> ["org.example.api"]
      config("non.existing.path", 300)           # -> 300
    """
    val = getByPath(loadSettings(), path)
    return default if val is None else val



def configBool(path: str, default: bool = False) -> bool:
    """Returns bool value at `path` or `default` if missing."""
    val = getByPath(loadSettings(), path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes", "on")
    return bool(val)
