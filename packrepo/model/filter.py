# packrepo/model/filter.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from packrepo.semver.semver import Version, parseVersion

__all__ = [
    "InvalidFilterSyntax",
    "Filter",
    "AndFilter",
    "OrFilter",
    "NotFilter",
    "ComparisonFilter",
    "PresenceFilter",
    "SubstringFilter",
    "parseFilter",
]



CompareOp = Literal["=", "~=", ">=", "<=", ">", "<"]
_OPERATORS: tuple[str, ...] = ("~=", ">=", "<=", "=", ">", "<")
_NAME_STOP = frozenset("=<>~()")
_ESCAPE_CHARS = frozenset("\\()*")



class InvalidFilterSyntax(ValueError):
    """Raised when a filter string is malformed."""

    def __init__(self, message: str, *, filterString: str, position: int | None = None) -> None:
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{message}{where} in filter {filterString!r}")
        self.filterString = filterString
        self.position = position



def _escape(value: str) -> str:
    return "".join("\\" + ch if ch in _ESCAPE_CHARS else ch for ch in value)



def _normalizeKeys(attributes: Mapping[str, Any] | None) -> dict[str, Any]:
    # Attribute names are case-insensitive, first spelling wins
    out: dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        out.setdefault(str(key).lower(), value)
    return out



def _squash(text: str) -> str:
    return "".join(text.split()).lower()



def _compareScalar(value: Any, op: CompareOp, operand: str) -> bool:
    if isinstance(value, Version):
        try:
            other: Any = parseVersion(operand)
        except ValueError:
            return False
    elif isinstance(value, bool):
        if op not in ("=", "~="):
            return False
        return operand.strip().lower() == ("true" if value else "false")
    elif isinstance(value, (int, float)):
        try:
            other = int(operand.strip()) if isinstance(value, int) else float(operand.strip())
        except ValueError:
            return False
    else:
        value = str(value)
        if op == "~=":
            return _squash(value) == _squash(operand)
        other = operand

    if op in ("=", "~="):
        return value == other
    if op == ">=":
        return value >= other
    if op == "<=":
        return value <= other
    if op == ">":
        return value > other
    return value < other



def _substringMatch(value: str, parts: tuple[str, ...]) -> bool:
    # parts come from splitting on unescaped '*'; first/last may be "" (wildcard edge)
    head, tail = parts[0], parts[-1]
    if not value.startswith(head):
        return False
    pos = len(head)
    for middle in parts[1:-1]:
        idx = value.find(middle, pos)
        if idx < 0:
            return False
        pos = idx + len(middle)
    return len(value) - len(tail) >= pos and value.endswith(tail)



class Filter:
    """
    Boolean predicate over an attribute map (LDAP-style filter).

    Instances are immutable and compare by structure.
    """

    def matches(self, attributes: Mapping[str, Any] | None) -> bool:
        return self._match(_normalizeKeys(attributes))

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def valuesFor(self, attribute: str) -> tuple[str, ...]:
        """Literal operands of positive equality comparisons on `attribute`."""
        return ()



@dataclass(frozen=True)
class AndFilter(Filter):
    children: tuple[Filter, ...]

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        return all(child._match(attrs) for child in self.children)

    def valuesFor(self, attribute: str) -> tuple[str, ...]:
        return tuple(value for child in self.children for value in child.valuesFor(attribute))

    def __str__(self) -> str:
        return "(&" + "".join(str(child) for child in self.children) + ")"



@dataclass(frozen=True)
class OrFilter(Filter):
    children: tuple[Filter, ...]

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        return any(child._match(attrs) for child in self.children)

    def valuesFor(self, attribute: str) -> tuple[str, ...]:
        return tuple(value for child in self.children for value in child.valuesFor(attribute))

    def __str__(self) -> str:
        return "(|" + "".join(str(child) for child in self.children) + ")"



@dataclass(frozen=True)
class NotFilter(Filter):
    child: Filter

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        return not self.child._match(attrs)

    def __str__(self) -> str:
        return f"(!{self.child})"



@dataclass(frozen=True)
class ComparisonFilter(Filter):
    attribute: str
    operator: CompareOp
    operand: str

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        key = self.attribute.lower()
        if key not in attrs:
            return False
        value = attrs[key]
        if value is None:
            return False
        if isinstance(value, (list, tuple, set, frozenset)):
            return any(
                item is not None and _compareScalar(item, self.operator, self.operand)
                for item in value
            )
        return _compareScalar(value, self.operator, self.operand)

    def valuesFor(self, attribute: str) -> tuple[str, ...]:
        if self.operator == "=" and self.attribute.lower() == attribute.lower():
            return (self.operand,)
        return ()

    def __str__(self) -> str:
        return f"({self.attribute}{self.operator}{_escape(self.operand)})"



@dataclass(frozen=True)
class PresenceFilter(Filter):
    attribute: str

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        return attrs.get(self.attribute.lower()) is not None

    def __str__(self) -> str:
        return f"({self.attribute}=*)"



@dataclass(frozen=True)
class SubstringFilter(Filter):
    attribute: str
    parts: tuple[str, ...]

    def _match(self, attrs: Mapping[str, Any]) -> bool:
        value = attrs.get(self.attribute.lower())
        if value is None:
            return False
        if isinstance(value, (list, tuple, set, frozenset)):
            return any(item is not None and _substringMatch(str(item), self.parts) for item in value)
        return _substringMatch(str(value), self.parts)

    def __str__(self) -> str:
        return f"({self.attribute}=" + "*".join(_escape(part) for part in self.parts) + ")"



class _FilterParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def fail(self, message: str) -> InvalidFilterSyntax:
        return InvalidFilterSyntax(message, filterString=self.text, position=self.pos)

    def skipSpaces(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str) -> None:
        if self.peek() != ch:
            raise self.fail(f"Expected {ch!r}")
        self.pos += 1

    def parse(self) -> Filter:
        self.skipSpaces()
        result = self.parseFilter()
        self.skipSpaces()
        if self.pos != len(self.text):
            raise self.fail("Unexpected trailing characters")
        return result

    def parseFilter(self) -> Filter:
        self.skipSpaces()
        self.expect("(")
        self.skipSpaces()
        ch = self.peek()
        if ch == "&":
            self.pos += 1
            result: Filter = AndFilter(self.parseList())
        elif ch == "|":
            self.pos += 1
            result = OrFilter(self.parseList())
        elif ch == "!":
            self.pos += 1
            result = NotFilter(self.parseFilter())
            self.skipSpaces()
        else:
            result = self.parseItem()
        self.expect(")")
        return result

    def parseList(self) -> tuple[Filter, ...]:
        children: list[Filter] = []
        self.skipSpaces()
        while self.peek() == "(":
            children.append(self.parseFilter())
            self.skipSpaces()
        if not children:
            raise self.fail("Operator requires at least one operand")
        return tuple(children)

    def parseItem(self) -> Filter:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _NAME_STOP:
            self.pos += 1
        attribute = self.text[start:self.pos].strip()
        if not attribute:
            raise self.fail("Missing attribute name")

        op = next((cand for cand in _OPERATORS if self.text.startswith(cand, self.pos)), None)
        if op is None:
            raise self.fail("Missing or unknown comparison operator")
        self.pos += len(op)

        parts: list[str] = []
        current: list[str] = []
        while True:
            ch = self.peek()
            if ch == "":
                raise self.fail("Unterminated filter value")
            if ch == ")":
                break
            if ch == "(":
                raise self.fail("Unescaped '(' in filter value")
            if ch == "\\":
                self.pos += 1
                escaped = self.peek()
                if escaped == "":
                    raise self.fail("Dangling escape in filter value")
                current.append(escaped)
                self.pos += 1
                continue
            if ch == "*":
                parts.append("".join(current))
                current = []
                self.pos += 1
                continue
            current.append(ch)
            self.pos += 1
        parts.append("".join(current))

        if len(parts) == 1:
            return ComparisonFilter(attribute, op, parts[0])  # type: ignore[arg-type]
        if op != "=":
            raise self.fail(f"Wildcards are only allowed with '=', got {op!r}")
        if parts == ["", ""]:
            return PresenceFilter(attribute)
        return SubstringFilter(attribute, tuple(parts))



def parseFilter(text: str) -> Filter:
    """
    Parse an LDAP-style filter string.

    Examples:
        "(symbolicname=org.example.core)"
        "(&(package=org.example.api)(version>=1.2.0)(!(version>=2.0.0)))"
        "(|(presentationname=*core*)(symbolicname=*core*))"

    Raises InvalidFilterSyntax on malformed input.
    """
    if not isinstance(text, str):
        raise TypeError(f"Filter must be a string, got {type(text).__name__}")
    if not text.strip():
        raise InvalidFilterSyntax("Empty filter", filterString=text)
    return _FilterParser(text).parse()

