"""Parse reference-range text printed next to a lab value.

Supported shapes:
- two-sided: "5.65-8.87", "-2~3", "-7 ~ 2.9"
- upper bound only: "<14", "≤100", "＜500"
- lower bound only: ">5", "≥0", "＞0"
- qualitative: "음성(-)", "Negative", "(-)"
- empty / "-": no range

The original text is always kept on the result so it can be shown as-is.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

_NUM = r"\d+\.?\d*"

RANGE = re.compile(r"^(-?" + _NUM + r")\s*[-~]\s*(-?" + _NUM + r")$")
UPPER_ONLY = re.compile(r"^[<≤＜]\s*(" + _NUM + r")$")
LOWER_ONLY = re.compile(r"^[>≥＞]\s*(" + _NUM + r")$")
NEGATIVE = re.compile(r"^(음성|negative|陰性|\([-−]\))", re.IGNORECASE)

EMPTY_MARKERS = ("", "-", "−")
NEGATIVE_LABEL = "음성"


@dataclass(frozen=True)
class ReferenceRange:
    min: Optional[float]
    max: Optional[float]
    original: str
    is_valid: bool
    is_negative: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_float(token: str) -> Optional[float]:
    try:
        return float(token)
    except (TypeError, ValueError):
        return None


def parse_reference_range(raw: Optional[str]) -> ReferenceRange:
    original = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    trimmed = original.strip()

    if trimmed in EMPTY_MARKERS:
        return ReferenceRange(min=None, max=None, original=original, is_valid=False)

    if NEGATIVE.match(trimmed):
        return ReferenceRange(min=None, max=None, original=original, is_valid=True, is_negative=True)

    match = RANGE.match(trimmed)
    if match:
        lo = _to_float(match.group(1))
        hi = _to_float(match.group(2))
        return ReferenceRange(
            min=lo,
            max=hi,
            original=original,
            is_valid=lo is not None and hi is not None,
        )

    match = UPPER_ONLY.match(trimmed)
    if match:
        hi = _to_float(match.group(1))
        return ReferenceRange(min=None, max=hi, original=original, is_valid=hi is not None)

    match = LOWER_ONLY.match(trimmed)
    if match:
        lo = _to_float(match.group(1))
        return ReferenceRange(min=lo, max=None, original=original, is_valid=lo is not None)

    return ReferenceRange(min=None, max=None, original=original, is_valid=False)


def check_value_in_range(value: Optional[float], reference: ReferenceRange) -> str:
    """Return 'low' | 'normal' | 'high' | 'unknown' for a numeric value."""
    if value is None or not reference.is_valid:
        return "unknown"
    if reference.min is None and reference.max is None:
        return "unknown"
    if reference.min is not None and value < reference.min:
        return "low"
    if reference.max is not None and value > reference.max:
        return "high"
    return "normal"


def _fmt(num: float) -> str:
    # 8.0 prints as "8", the way reports print it
    if float(num).is_integer():
        return str(int(num))
    return repr(float(num))


def format_reference_range(reference: ReferenceRange) -> str:
    if not reference.is_valid:
        return reference.original or "-"
    if reference.is_negative:
        return NEGATIVE_LABEL
    if reference.min is not None and reference.max is not None:
        return f"{_fmt(reference.min)}-{_fmt(reference.max)}"
    if reference.min is not None:
        return f">{_fmt(reference.min)}"
    if reference.max is not None:
        return f"<{_fmt(reference.max)}"
    return reference.original or "-"


def extract_ref_min_max(reference: Optional[str]) -> Dict[str, Any]:
    """Column-shaped view of a parsed range: ref_min, ref_max, ref_text."""
    parsed = parse_reference_range(reference)
    return {
        "ref_min": parsed.min,
        "ref_max": parsed.max,
        "ref_text": parsed.original or None,
    }


__all__ = [
    "ReferenceRange",
    "parse_reference_range",
    "check_value_in_range",
    "format_reference_range",
    "extract_ref_min_max",
]
