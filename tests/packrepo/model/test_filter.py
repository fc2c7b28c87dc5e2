# tests/packrepo/model/test_filter.py
import pytest

from packrepo.model.filter import (
    AndFilter,
    InvalidFilterSyntax,
    NotFilter,
    PresenceFilter,
    SubstringFilter,
    parseFilter,
)
from packrepo.semver.semver import parseVersion


def test_parse_composite_structure():
    flt = parseFilter("(&(package=org.example.api)(!(version>=2.0.0)))")

    assert isinstance(flt, AndFilter)
    assert isinstance(flt.children[1], NotFilter)
    assert str(flt) == "(&(package=org.example.api)(!(version>=2.0.0)))"


def test_parse_tolerates_whitespace_between_terms():
    flt = parseFilter("  (| (a=1) (b=2) )  ")
    assert flt.matches({"b": "2"})
    assert not flt.matches({"a": "2"})


@pytest.mark.parametrize(
    "text, attrs, expected",
    [
        ("(symbolicname=org.example)", {"symbolicname": "org.example"}, True),
        ("(SymbolicName=org.example)", {"symbolicname": "org.example"}, True),
        ("(symbolicname=org.example)", {"SYMBOLICNAME": "org.example"}, True),
        ("(symbolicname=org.example)", {"symbolicname": "org.other"}, False),
        ("(missing=x)", {}, False),
        ("(name~=Hello  World)", {"name": "helloworld"}, True),
        ("(name~=hello)", {"name": "HELLO"}, True),
        ("(name=hello)", {"name": "HELLO"}, False),
        ("(count>=10)", {"count": 9}, False),
        ("(count>=10)", {"count": 10}, True),
        ("(count<3)", {"count": 2}, True),
        ("(ratio>0.5)", {"ratio": 0.75}, True),
        ("(count=abc)", {"count": 3}, False),
        ("(enabled=true)", {"enabled": True}, True),
        ("(enabled=TRUE)", {"enabled": False}, False),
        ("(tags=core)", {"tags": ("ui", "core")}, True),
        ("(tags=db)", {"tags": ["ui", "core"]}, False),
    ],
)
def test_matches_typed_values(text, attrs, expected):
    assert parseFilter(text).matches(attrs) is expected


@pytest.mark.parametrize(
    "text, version, expected",
    [
        ("(version>=1.2.0)", "1.10.0", True),
        ("(version<=1.2.0)", "1.10.0", False),
        ("(version=1.2)", "1.2.0", True),
        ("(version>1.0.0)", "1.0.0", False),
        ("(version>=not.a.version)", "1.0.0", False),
    ],
)
def test_version_attributes_compare_as_versions(text, version, expected):
    assert parseFilter(text).matches({"version": parseVersion(version)}) is expected


def test_presence_and_substring():
    presence = parseFilter("(uri=*)")
    substring = parseFilter("(symbolicname=org.*.core*)")

    assert isinstance(presence, PresenceFilter)
    assert isinstance(substring, SubstringFilter)
    assert presence.matches({"uri": "file:///x"})
    assert not presence.matches({"uri": None})
    assert substring.matches({"symbolicname": "org.example.core.impl"})
    assert not substring.matches({"symbolicname": "com.example.core"})


def test_escaped_characters_are_literal():
    flt = parseFilter(r"(name=a\*b\(c\))")

    assert flt.matches({"name": "a*b(c)"})
    assert not flt.matches({"name": "aXb(c)"})
    assert str(flt) == r"(name=a\*b\(c\))"


def test_valuesFor_lists_equality_operands():
    flt = parseFilter("(&(package=org.a)(|(package=org.b)(version>=1.0.0))(!(package=org.c)))")

    assert flt.valuesFor("package") == ("org.a", "org.b")
    assert flt.valuesFor("PACKAGE") == ("org.a", "org.b")


def test_equal_renderings_compare_equal():
    assert parseFilter("(&(a=1)(b=2))") == parseFilter("( & (a=1) (b=2) )")
    assert len({parseFilter("(a=1)"), parseFilter("(a=1)")}) == 1


@pytest.mark.parametrize(
    "text",
    [
        "",
        "a=b",
        "(a=b",
        "(a=b))",
        "(=b)",
        "(a b)",
        "(&)",
        "(a>=b*)",
        "(a=b(c)",
        "(a=b\\",
    ],
)
def test_invalid_syntax(text):
    with pytest.raises(InvalidFilterSyntax) as excInfo:
        parseFilter(text)

    assert isinstance(excInfo.value, ValueError)
    assert excInfo.value.filterString == text
