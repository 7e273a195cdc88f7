"""
Canonical Value Serializer

Produces the unique text form of a value. Identity hashes are computed
over this output, so every byte is significant.

GUARANTEES:
===========
- Map keys ascending, set members in canonical order
- No insignificant whitespace
- Integral numbers (within 64 bits) print without a fraction
- Other numbers outside [1e-3, 1e7) print as d.dddEn (1.0E20, 1.5E-7)
- Only quote, backslash and control characters are escaped
- parse(serialize(v)) is canonically equal to v
"""

from __future__ import annotations
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, List, Optional
from uuid import UUID
import math
import re

from ..contracts.base import CanonicalizationError
from .values import CanonicalReference, CanonicalSet, as_text


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# Renders a node reference as a replacement Value (identity string or index)
ReferenceRenderer = Callable[[CanonicalReference], Any]

_NEEDS_ESCAPE = re.compile(r'[\x00-\x1f\x7f"\\]')
_SHORT_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\f": "\\f",
    "\b": "\\b",
}


def _escape_char(match: re.Match) -> str:
    char = match.group(0)
    return _SHORT_ESCAPES.get(char) or "\\u%04x" % ord(char)


def quote(text: str) -> str:
    """Quote and escape a string."""
    return '"' + _NEEDS_ESCAPE.sub(_escape_char, text) + '"'


def format_number(number: Any) -> str:
    if isinstance(number, int):
        if not INT64_MIN <= number <= INT64_MAX:
            raise CanonicalizationError(f"integer out of 64-bit range: {number}")
        return str(number)
    if math.isnan(number) or math.isinf(number):
        raise CanonicalizationError(f"non-finite number: {number}")
    if number.is_integer() and INT64_MIN <= number <= INT64_MAX:
        return str(int(number))
    if 1e-3 <= abs(number) < 1e7:
        return repr(number)
    return _scientific(number)


def _scientific(number: float) -> str:
    """Shortest round-trip digits as d.dddEn, e.g. 1.0E20 or -1.5E-7."""
    _, digits, exponent = Decimal(repr(abs(number))).normalize().as_tuple()
    mantissa = "".join(map(str, digits))
    sign = "-" if number < 0 else ""
    return f"{sign}{mantissa[0]}.{mantissa[1:] or '0'}E{len(digits) - 1 + exponent}"


def default_reference(node: CanonicalReference) -> Any:
    """Stand-alone form: a node reference is its identity string."""
    return str(node.identity)  # type: ignore[attr-defined]


def _write(value: Any, out: List[str], reference: ReferenceRenderer) -> None:
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, (int, float)):
        out.append(format_number(value))
    elif isinstance(value, str):
        out.append(quote(value))
    elif isinstance(value, (UUID, Enum)):
        out.append(quote(as_text(value)))
    elif isinstance(value, CanonicalReference):
        _write(reference(value), out, reference)
    elif isinstance(value, (tuple, list, CanonicalSet, set, frozenset)):
        if isinstance(value, (set, frozenset)):
            value = CanonicalSet(value)
        out.append("[")
        for index, item in enumerate(value):
            if index:
                out.append(",")
            _write(item, out, reference)
        out.append("]")
    elif isinstance(value, Mapping):
        out.append("{")
        keys = list(value)
        for key in keys:
            if not isinstance(key, str):
                raise CanonicalizationError(f"map key must be a string, got {key!r}")
        for index, key in enumerate(sorted(keys)):
            if index:
                out.append(",")
            out.append(quote(key))
            out.append(":")
            _write(value[key], out, reference)
        out.append("}")
    else:
        raise CanonicalizationError(f"cannot serialize {type(value).__name__}")


def serialize(value: Any, reference: Optional[ReferenceRenderer] = None) -> str:
    """Canonical text of a value; node references go through `reference`."""
    out: List[str] = []
    _write(value, out, reference or default_reference)
    return "".join(out)
