"""
Canonical Value Parser

Strict recursive-descent reader for the JSON-compatible value grammar.

REJECTED INPUT (MalformedInput):
================================
- Trailing commas and missing separators
- Duplicate object keys
- Leading zeros (other than a lone 0) and numbers missing digits
  after '.' or the exponent marker
- Integers outside the signed 64-bit range, floats that overflow
- Escapes other than \\b \\f \\n \\r \\t \\" \\\\ and \\uXXXX,
  and unpaired UTF-16 surrogates
- Anything but whitespace after the top-level value

Arrays may be promoted to CanonicalSet according to a SetPolicy.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, TextIO, Union
import math
import re

from ..contracts.base import MalformedInput
from .values import CanonicalSet, canonical_equal


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_WHITESPACE = " \t\n\r"
_NUMBER = re.compile(r"-?(?:0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?")
_NUMBER_TAIL = frozenset("0123456789.eE+-")
_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}
_HEX = frozenset("0123456789abcdefABCDEF")


class SetPolicy(Enum):
    """When a parsed array becomes a CanonicalSet instead of a tuple."""
    NEVER = "never"
    IF_SORTED = "if_sorted"  # already strictly ascending
    IF_UNIQUE = "if_unique"  # no repeated members
    ALWAYS = "always"  # duplicates are an error

    @classmethod
    def from_name(cls, name: str) -> SetPolicy:
        try:
            return cls(name.strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(f"unknown set policy {name!r} (expected one of {choices})")


@dataclass
class ParserConfig:
    """Configuration for value parsing."""
    set_policy: SetPolicy = SetPolicy.NEVER


class _Reader:
    """Cursor over the input text. One instance per parse call."""

    def __init__(self, text: str, policy: SetPolicy):
        self.text = text
        self.pos = 0
        self.policy = policy

    def fail(self, message: str) -> MalformedInput:
        return MalformedInput(message, self.pos)

    def skip_whitespace(self) -> None:
        text, pos = self.text, self.pos
        while pos < len(text) and text[pos] in _WHITESPACE:
            pos += 1
        self.pos = pos

    def peek(self) -> str:
        if self.pos >= len(self.text):
            raise self.fail("unexpected end of input")
        return self.text[self.pos]

    def expect(self, char: str) -> None:
        if self.peek() != char:
            raise self.fail(f"expected {char!r}, found {self.text[self.pos]!r}")
        self.pos += 1

    # -------------------------------------------------------------------------

    def value(self) -> Any:
        self.skip_whitespace()
        char = self.peek()
        if char == "{":
            return self.object()
        if char == "[":
            return self.array()
        if char == '"':
            return self.string()
        if char == "-" or char.isdigit():
            return self.number()
        for word, result in (("true", True), ("false", False), ("null", None)):
            if self.text.startswith(word, self.pos):
                self.pos += len(word)
                return result
        raise self.fail(f"unexpected character {char!r}")

    def object(self) -> MappingProxyType:
        self.expect("{")
        members: Dict[str, Any] = {}
        self.skip_whitespace()
        if self.peek() == "}":
            self.pos += 1
            return MappingProxyType(members)
        while True:
            self.skip_whitespace()
            if self.peek() != '"':
                raise self.fail("object key must be a string")
            key_pos = self.pos
            key = self.string()
            if key in members:
                raise MalformedInput(f"duplicate key {key!r}", key_pos)
            self.skip_whitespace()
            self.expect(":")
            members[key] = self.value()
            self.skip_whitespace()
            if self.peek() == ",":
                self.pos += 1
                continue
            self.expect("}")
            return MappingProxyType({k: members[k] for k in sorted(members)})

    def array(self) -> Union[tuple, CanonicalSet]:
        self.expect("[")
        items: List[Any] = []
        self.skip_whitespace()
        if self.peek() == "]":
            self.pos += 1
        else:
            while True:
                items.append(self.value())
                self.skip_whitespace()
                if self.peek() == ",":
                    self.pos += 1
                    continue
                self.expect("]")
                break
        return self.promote(items)

    def promote(self, items: List[Any]) -> Union[tuple, CanonicalSet]:
        if self.policy is SetPolicy.NEVER:
            return tuple(items)
        members = CanonicalSet.unique(items)
        if len(members) == len(items):
            if self.policy is not SetPolicy.IF_SORTED:
                return members
            if all(canonical_equal(a, b) for a, b in zip(items, members)):
                return members
            return tuple(items)
        if self.policy is SetPolicy.ALWAYS:
            raise self.fail("array has duplicate entries but must be a set")
        return tuple(items)

    def string(self) -> str:
        self.expect('"')
        text = self.text
        chunks: List[str] = []
        start = self.pos
        while True:
            if self.pos >= len(text):
                raise self.fail("unterminated string")
            char = text[self.pos]
            if char == '"':
                chunks.append(text[start:self.pos])
                self.pos += 1
                return "".join(chunks)
            if char != "\\":
                self.pos += 1
                continue
            chunks.append(text[start:self.pos])
            self.pos += 1
            chunks.append(self.escape())
            start = self.pos

    def escape(self) -> str:
        char = self.peek()
        self.pos += 1
        if char in _ESCAPES:
            return _ESCAPES[char]
        if char != "u":
            raise MalformedInput(f"illegal escape \\{char}", self.pos - 2)
        code = self.hex4()
        if 0xDC00 <= code <= 0xDFFF:
            raise self.fail("unpaired low surrogate")
        if 0xD800 <= code <= 0xDBFF:
            if not self.text.startswith("\\u", self.pos):
                raise self.fail("unpaired high surrogate")
            self.pos += 2
            low = self.hex4()
            if not 0xDC00 <= low <= 0xDFFF:
                raise self.fail("unpaired high surrogate")
            code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
        return chr(code)

    def hex4(self) -> int:
        digits = self.text[self.pos:self.pos + 4]
        if len(digits) != 4 or not all(d in _HEX for d in digits):
            raise self.fail("\\u must be followed by four hex digits")
        self.pos += 4
        return int(digits, 16)

    def number(self) -> Union[int, float]:
        match = _NUMBER.match(self.text, self.pos)
        if match is None:
            raise self.fail("malformed number")
        end = match.end()
        if end < len(self.text) and self.text[end] in _NUMBER_TAIL:
            raise MalformedInput("malformed number", end)
        literal = match.group(0)
        self.pos = end
        if match.group(1) is None and match.group(2) is None:
            result = int(literal)
            if not INT64_MIN <= result <= INT64_MAX:
                raise MalformedInput(f"integer out of range: {literal}", match.start())
            return result
        result = float(literal)
        if math.isinf(result):
            raise MalformedInput(f"number out of range: {literal}", match.start())
        return result


# =============================================================================
# ENTRY POINTS
# =============================================================================

def parse(text: str, policy: SetPolicy = SetPolicy.NEVER) -> Any:
    """Parse exactly one canonical value from text."""
    reader = _Reader(text, policy)
    try:
        result = reader.value()
    except RecursionError:
        raise MalformedInput("value nested too deeply", reader.pos)
    reader.skip_whitespace()
    if reader.pos != len(text):
        raise reader.fail("unexpected content after value")
    return result


def parse_stream(stream: TextIO, policy: SetPolicy = SetPolicy.NEVER) -> Any:
    """Parse the whole content of a text stream."""
    return parse(stream.read(), policy)


def parse_file(path: Union[str, Path], policy: SetPolicy = SetPolicy.NEVER) -> Any:
    """Parse a UTF-8 file holding a single value."""
    with open(path, "r", encoding="utf-8") as handle:
        return parse_stream(handle, policy)
