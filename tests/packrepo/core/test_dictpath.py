# tests/packrepo/core/test_dictpath.py
from __future__ import annotations

from types import MappingProxyType

import pytest

from packrepo.core.dictpath import getByPath


DATA = {
    "resolver": {"mandatoryPackages": ["org.example.api"], "flags": {"strict": False}},
    "a.b": {"c": 1},
    "empty": None,
}


def test_getByPath_simpleNestedDict() -> None:
    assert getByPath(DATA, "resolver.mandatoryPackages") == ["org.example.api"]
    assert getByPath(DATA, "resolver/flags/strict") is False


def test_getByPath_escapedSeparator() -> None:
    assert getByPath(DATA, "a\\.b.c") == 1


def test_getByPath_readOnlyMapping() -> None:
    assert getByPath(MappingProxyType({"x": {"y": 2}}), "x.y") == 2


@pytest.mark.parametrize(
    "path",
    ["missing", "resolver.missing", "resolver.mandatoryPackages.0", "resolver..flags", "", "dangling\\"],
)
def test_getByPath_returnsDefaultWhenUnresolved(path) -> None:
    assert getByPath(DATA, path, "fallback") == "fallback"


def test_getByPath_noneValueIsReturned() -> None:
    assert getByPath(DATA, "empty", "fallback") is None
