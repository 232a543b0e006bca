"""Unit conversion and VBA literal rendering."""

import math
import re
from typing import Any

from src.models.errors import ScriptGenerationError


MM_PER_METER = 1000.0
RADIANS_PER_DEGREE = math.pi / 180.0

NOTHING = "Nothing"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def mm_to_m(value: float) -> float:
    """Millimetres to the application's native metres."""
    return value / MM_PER_METER


def deg_to_rad(value: float) -> float:
    """Degrees to the application's native radians."""
    return value * RADIANS_PER_DEGREE


def format_number(value: float) -> str:
    """Render a number with 15 significant digits and a VBA exponent marker."""
    if isinstance(value, int):
        return str(value)
    if math.isnan(value) or math.isinf(value):
        raise ScriptGenerationError(f"Cannot render non-finite number: {value}")
    if value == 0:
        return "0"
    return ("%.15g" % value).replace("e", "E")


def quote_string(value: str) -> str:
    """Double-quote a string for VBA, doubling embedded quotes."""
    parts = re.split(r"(\r\n|\r|\n)", value)
    rendered = []
    for part in parts:
        if part == "\r\n":
            rendered.append("vbCrLf")
        elif part == "\r":
            rendered.append("vbCr")
        elif part == "\n":
            rendered.append("vbLf")
        else:
            rendered.append('"' + part.replace('"', '""') + '"')
    # Drop empty string segments around line breaks, but keep at least one token
    tokens = [t for t in rendered if t != '""'] or ['""']
    return " & ".join(tokens)


def vba_literal(value: Any) -> str:
    """
    Render a Python value as a VBA literal.

    Booleans map to True/False, None to Nothing, strings are quoted and
    sequences become Array(...).

    Raises:
        ScriptGenerationError: For values with no VBA rendering
    """
    if value is None:
        return NOTHING
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return quote_string(value)
    if isinstance(value, (list, tuple)):
        return "Array(" + ", ".join(vba_literal(v) for v in value) + ")"
    raise ScriptGenerationError(f"Cannot render {type(value).__name__} as a VBA literal")


def check_identifier(name: str) -> str:
    """Validate a (possibly dotted) member name before splicing it into code."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ScriptGenerationError(f"Invalid method name for script generation: {name!r}")
    return name
