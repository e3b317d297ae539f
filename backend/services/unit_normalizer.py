"""Unit string cleanup for OCR'd lab units."""
from __future__ import annotations

from typing import Dict, Optional

# standard unit -> spellings seen on reports
UNIT_ALIASES: Dict[str, tuple] = {
    "mg/dL": ("mg/dl", "mg/100ml", "mg%", "mg/dℓ"),
    "g/dL": ("g/dl", "g/100ml", "g%", "gperdl"),
    "ug/dL": ("ug/dl", "μg/dl", "µg/dl"),
    "mmol/L": ("mmol/l", "mm/l"),
    "umol/L": ("umol/l", "μmol/l", "µmol/l", "micromol/l"),
    "U/L": ("u/l", "iu/l", "u/ℓ"),
    "K/μL": ("k/ul", "k/μl", "k/µl", "x10^3/ul", "10^3/ul", "x10³/μl", "10x9/l", "x10^9/l", "10^9/l"),
    "M/μL": ("m/ul", "m/μl", "m/µl", "x10^6/ul", "10^6/ul", "10x12/l", "x10^12/l", "10^12/l"),
    "mmHg": ("mmhg",),
    "ng/mL": ("ng/ml",),
    "pg/mL": ("pg/ml",),
    "pmol/L": ("pmol/l",),
    "fL": ("fl",),
    "pg": ("pg",),
    "%": ("%", "percent"),
}

# units the OCR clipped at the column edge
TRUNCATED_UNITS: Dict[str, str] = {
    "mmH": "mmHg",
    "mg/d": "mg/dL",
    "g/d": "g/dL",
    "U/": "U/L",
    "K/u": "K/μL",
    "K/μ": "K/μL",
    "10x9/": "10x9/L",
    "10x12/": "10x12/L",
    "mmol/": "mmol/L",
    "ug/d": "ug/dL",
    "ng/m": "ng/mL",
    "pmol/": "pmol/L",
}

_ALIAS_TO_STANDARD: Dict[str, str] = {
    alias.lower(): standard
    for standard, aliases in UNIT_ALIASES.items()
    for alias in aliases
}


def correct_truncated_unit(unit: str) -> str:
    if not unit:
        return unit
    trimmed = unit.strip()
    if trimmed in TRUNCATED_UNITS:
        return TRUNCATED_UNITS[trimmed]
    for truncated, corrected in TRUNCATED_UNITS.items():
        if trimmed.endswith(truncated) and len(trimmed) <= len(truncated) + 2:
            return trimmed[: len(trimmed) - len(truncated)] + corrected
    return trimmed


def normalize_unit(raw_unit: Optional[str]) -> str:
    """Map a raw unit onto its standard spelling; unknown units come back cleaned."""
    if not raw_unit:
        return ""
    cleaned = "".join(raw_unit.split())
    cleaned = correct_truncated_unit(cleaned)
    return _ALIAS_TO_STANDARD.get(cleaned.lower(), cleaned)


def units_are_equivalent(unit1: str, unit2: str) -> bool:
    return normalize_unit(unit1).lower() == normalize_unit(unit2).lower()


__all__ = ["normalize_unit", "correct_truncated_unit", "units_are_equivalent", "UNIT_ALIASES"]
