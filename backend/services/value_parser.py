"""Parse raw OCR value tokens into typed values.

Handles the shapes lab machines actually print:

- thousands separators: "1,390" -> 1390
- lower/upper detection limits: "<500", ">1000", "≤0.1"
- instrument error markers: "*14" (value flagged by the analyser)
- qualitative results: "Negative", "Low", "음성"

Nothing here raises; a token that cannot be read comes back as
``type="text"`` with ``numeric=None``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Literal, Optional

ValueType = Literal["numeric", "less_than", "greater_than", "special", "text"]

_NUM = r"(-?\d+\.?\d*)"
ERROR_MARKER = re.compile(r"^\*\s*" + _NUM + r"$")
LESS_THAN = re.compile(r"^[<≤]\s*" + _NUM + r"$")
GREATER_THAN = re.compile(r"^[>≥]\s*" + _NUM + r"$")
PLAIN_NUMBER = re.compile(r"^" + _NUM + r"$")

NUMERIC_TYPES = frozenset({"numeric", "less_than", "greater_than", "special"})


@dataclass(frozen=True)
class ParsedValue:
    numeric: Optional[float]
    display: str
    type: ValueType
    has_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def remove_thousands_separator(value: str) -> str:
    # Korean reports never use the comma as a decimal mark
    if not value:
        return value
    return value.replace(",", "")


def _to_float(token: str) -> Optional[float]:
    try:
        return float(token)
    except ValueError:
        return None


def parse_value(raw: Any) -> ParsedValue:
    if raw is None:
        return ParsedValue(numeric=None, display="", type="text")

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return ParsedValue(numeric=float(raw), display=str(raw), type="numeric")

    value = str(raw).strip()
    if not value:
        return ParsedValue(numeric=None, display="", type="text")

    cleaned = remove_thousands_separator(value)

    match = ERROR_MARKER.match(cleaned)
    if match:
        num = _to_float(match.group(1))
        if num is not None:
            return ParsedValue(numeric=num, display=value, type="special", has_error=True)

    match = LESS_THAN.match(cleaned)
    if match:
        num = _to_float(match.group(1))
        if num is not None:
            return ParsedValue(numeric=num, display=value, type="less_than")

    match = GREATER_THAN.match(cleaned)
    if match:
        num = _to_float(match.group(1))
        if num is not None:
            return ParsedValue(numeric=num, display=value, type="greater_than")

    if PLAIN_NUMBER.match(cleaned):
        num = _to_float(cleaned)
        if num is not None:
            return ParsedValue(numeric=num, display=value, type="numeric")

    return ParsedValue(numeric=None, display=value, type="text")


def format_value_with_status(value: ParsedValue, is_abnormal: bool = False, direction: Optional[str] = None) -> str:
    """Display string with an abnormal marker, e.g. "7.20 (H)"."""
    if not value.display:
        return "-"
    if is_abnormal and direction in ("high", "low"):
        marker = "(H)" if direction == "high" else "(L)"
        return f"{value.display} {marker}"
    return value.display


def is_numeric_value(parsed: ParsedValue) -> bool:
    """True for values usable in trend charts; instrument-flagged values are excluded."""
    return parsed.numeric is not None and parsed.type in ("numeric", "less_than", "greater_than")


__all__ = [
    "ParsedValue",
    "ValueType",
    "NUMERIC_TYPES",
    "parse_value",
    "remove_thousands_separator",
    "format_value_with_status",
    "is_numeric_value",
]
