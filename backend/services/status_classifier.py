"""Low / Normal / High / Unknown classification of a lab value."""
from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any, Optional


class TestStatus(str, Enum):
    __test__ = False

    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    UNKNOWN = "Unknown"


# comparison markers, error stars and thousands separators carry no magnitude
_STRIP_CHARS = re.compile(r"[<>≤≥*,\s]")
# trailing flags such as "7.2(H)" are ignored once a number leads
_LEADING_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?|[-+]?\.\d+")


def _coerce(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        text = _STRIP_CHARS.sub("", str(value))
        match = _LEADING_NUMBER.match(text)
        if match is None:
            return None
        num = float(match.group(0))
    return num if math.isfinite(num) else None


def classify(value: Any, ref_min: Optional[float], ref_max: Optional[float]) -> TestStatus:
    num = _coerce(value)
    if num is None:
        return TestStatus.UNKNOWN
    if ref_min is None and ref_max is None:
        return TestStatus.UNKNOWN
    if ref_min is not None and num < ref_min:
        return TestStatus.LOW
    if ref_max is not None and num > ref_max:
        return TestStatus.HIGH
    return TestStatus.NORMAL


__all__ = ["TestStatus", "classify"]
