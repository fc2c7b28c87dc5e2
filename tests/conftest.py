import sys
import pytest

from packrepo.app.settings import SETTINGS_ENV_VAR, loadSettings
from packrepo.core.logging import clearLogContext
from packrepo.core.tracing import getTraceHub



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")



@pytest.fixture(autouse=True)
def isolatedSettings(tmp_path, monkeypatch):
    """Point settings at a per-test file so a developer's ~/.packrepo never leaks in."""
    settingsPath = tmp_path / "packrepo.json5"
    monkeypatch.setenv(SETTINGS_ENV_VAR, str(settingsPath))
    loadSettings.cache_clear()
    yield settingsPath
    loadSettings.cache_clear()



@pytest.fixture(autouse=True)
def cleanTraceState():
    getTraceHub().clear()
    clearLogContext()
    yield
    clearLogContext()



@pytest.fixture
def writeSettings(isolatedSettings):
    def _write(text: str):
        isolatedSettings.write_text(text, encoding="utf-8")
        loadSettings.cache_clear()
        return isolatedSettings
    return _write
