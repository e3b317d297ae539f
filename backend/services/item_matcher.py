"""Match raw OCR item names to standard items.

Steps, first hit wins:

0. garbage filter: values, ranges and column headers the OCR read as names
1. exact name match against the user's merged items (case-insensitive)
2. alias registry (user tier, then master tier)

Names that survive the filter but match nothing can be stored against an
auto-created ``Unmapped`` master item and curated later.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.standard_item import UNMAPPED_CATEGORY, StandardItemMaster
from backend.services.alias_registry import AliasResolver
from backend.services.item_resolver import SOURCE_USER_CUSTOM, ResolvedItem, list_user_items

logger = logging.getLogger("petlab")

GARBAGE_LABELS = (
    "기타", "결과", "항목", "단위", "참고치", "검사항목", "검사결과", "정상범위",
    "Result", "Unit", "Reference", "Normal", "Range", "Value", "Test",
)
_GARBAGE_LABELS_UPPER = frozenset(label.upper() for label in GARBAGE_LABELS)

GARBAGE_NUMERIC_PATTERNS = (
    re.compile(r"^[<>≤≥±]\s*\d"),
    re.compile(r"^\d+[.,]?\d*\s*[-~]\s*\d+[.,]?\d*"),
    re.compile(r"^\d+[.,]?\d*\s*%$"),
    re.compile(r"^[-+]?\d+[.,]?\d*$"),
)
_LETTER = re.compile(r"[A-Za-z]")


@dataclass(frozen=True)
class GarbageCheck:
    is_garbage: bool
    reason: Optional[str] = None
    has_truncated_bracket: bool = False


@dataclass
class MatchResult:
    raw_name: str
    method: str = "none"  # garbage | exact | alias | none
    standard_item_id: Optional[str] = None
    standard_item_name: Optional[str] = None
    display_name_ko: Optional[str] = None
    exam_type: Optional[str] = None
    organ_tags: List[str] = field(default_factory=list)
    confidence: int = 0
    matched_against: Optional[str] = None
    garbage_reason: Optional[str] = None
    has_truncated_bracket: bool = False

    @property
    def is_garbage(self) -> bool:
        return self.method == "garbage"

    @property
    def matched(self) -> bool:
        return self.standard_item_id is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["is_garbage"] = self.is_garbage
        return data


def filter_garbage(raw_name: Optional[str]) -> GarbageCheck:
    trimmed = (raw_name or "").strip()
    if not trimmed:
        return GarbageCheck(True, "empty")

    for pattern in GARBAGE_NUMERIC_PATTERNS:
        if pattern.search(trimmed):
            return GarbageCheck(True, "numeric or range")

    if trimmed.upper() in _GARBAGE_LABELS_UPPER:
        return GarbageCheck(True, "header label")

    if len(trimmed) == 1 and not _LETTER.search(trimmed):
        return GarbageCheck(True, "single character")

    return GarbageCheck(False, has_truncated_bracket=trimmed.count("(") > trimmed.count(")"))


class ItemMatcher:
    """Matches a batch of raw names for one user; the item index is loaded once."""

    def __init__(self, db: Session, user_id: Optional[str] = None):
        self.db = db
        self.user_id = user_id
        self.aliases = AliasResolver.for_user(db, user_id)
        self._by_name: Optional[Dict[str, ResolvedItem]] = None
        self._by_id: Dict[str, ResolvedItem] = {}

    def _index(self) -> Dict[str, ResolvedItem]:
        if self._by_name is None:
            items = list_user_items(self.db, self.user_id)
            # custom rows last so they win a name clash with a master row
            items.sort(key=lambda item: item.source_table == SOURCE_USER_CUSTOM)
            self._by_name = {}
            for item in items:
                self._by_name[item.name.lower()] = item
                self._by_id[item.item_id] = item
        return self._by_name

    def _result(self, raw_name: str, item: ResolvedItem, method: str, confidence: int, matched_against: str) -> MatchResult:
        return MatchResult(
            raw_name=raw_name,
            method=method,
            standard_item_id=item.item_id,
            standard_item_name=item.name,
            display_name_ko=item.display_name_ko,
            exam_type=item.exam_type or item.category,
            organ_tags=list(item.organ_tags or []),
            confidence=confidence,
            matched_against=matched_against,
        )

    def match(self, raw_name: Optional[str]) -> MatchResult:
        raw = (raw_name or "").strip()
        check = filter_garbage(raw)
        if check.is_garbage:
            return MatchResult(raw_name=raw, method="garbage", garbage_reason=check.reason)

        item = self._index().get(raw.lower())
        if item is not None:
            return self._result(raw, item, "exact", 100, item.name)

        item_id = self.aliases.find(raw)
        if item_id:
            self._index()
            item = self._by_id.get(item_id)
            if item is not None:
                return self._result(raw, item, "alias", 95, raw)

        return MatchResult(raw_name=raw, has_truncated_bracket=check.has_truncated_bracket)

    def match_many(self, raw_names: Iterable[Optional[str]]) -> Dict[str, MatchResult]:
        return {(name or "").strip(): self.match(name) for name in raw_names}


def match_item(db: Session, raw_name: Optional[str], user_id: Optional[str] = None) -> MatchResult:
    return ItemMatcher(db, user_id).match(raw_name)


def ensure_unmapped_item(db: Session, raw_name: str) -> StandardItemMaster:
    """Master item for an unrecognised name, created in category Unmapped if missing. Flushes, never commits."""
    name = raw_name.strip()
    existing = (
        db.query(StandardItemMaster)
        .filter(func.lower(StandardItemMaster.name) == name.lower())
        .first()
    )
    if existing is not None:
        return existing
    item = StandardItemMaster(
        name=name,
        display_name_ko=name,
        category=UNMAPPED_CATEGORY,
        organ_tags=[],
    )
    db.add(item)
    db.flush()
    logger.info({"function": "ensure_unmapped_item", "status": "inserted", "name": name, "item_id": item.id})
    return item


__all__ = [
    "GARBAGE_LABELS",
    "GarbageCheck",
    "MatchResult",
    "filter_garbage",
    "ItemMatcher",
    "match_item",
    "ensure_unmapped_item",
]
