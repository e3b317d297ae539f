"""Resolve standard item ids to merged item definitions.

A test result's ``standard_item_id`` points either at a shared master item
(``standard_items_master``) or at one of the user's custom items
(``user_standard_items`` with no ``master_item_id``). Master items may be
shadowed per user by an override row; override fields win, and any field
the override leaves NULL falls back to the master value.

All ids of a batch are resolved with a single SELECT (master rows
left-joined to the user's overrides, UNION ALL the user's custom rows),
so enriching a report with N results costs one round trip, not N.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, literal, null, select, union_all
from sqlalchemy.orm import Session

from backend.models.item_alias import UserItemAlias, UserItemMapping
from backend.models.standard_item import ITEM_FIELDS, StandardItemMaster, UserStandardItem
from backend.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger("petlab")

SOURCE_MASTER = "master"
SOURCE_USER_CUSTOM = "user_custom"


@dataclass
class ResolvedItem:
    item_id: str
    name: str
    display_name_ko: Optional[str] = None
    category: Optional[str] = None
    exam_type: Optional[str] = None
    default_unit: Optional[str] = None
    organ_tags: List[str] = field(default_factory=list)
    description_common: Optional[str] = None
    description_high: Optional[str] = None
    description_low: Optional[str] = None
    source_table: str = SOURCE_MASTER
    is_modified: bool = False

    def to_dict(self, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        data = asdict(self)
        if fields:
            return {k: data.get(k) for k in fields}
        return data


def item_fields(row: Any) -> Dict[str, Any]:
    """Item-shaped dict from an ORM row, a mapping, or any attribute bag."""
    if row is None:
        return {}
    if isinstance(row, Mapping):
        return {f: row.get(f) for f in ITEM_FIELDS}
    return {f: getattr(row, f, None) for f in ITEM_FIELDS}


def merge_item_fields(master: Mapping[str, Any], override: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Field-by-field precedence: a non-NULL override value beats the master value."""
    merged = {f: master.get(f) for f in ITEM_FIELDS}
    if override:
        for f in ITEM_FIELDS:
            value = override.get(f)
            if value is not None:
                merged[f] = value
    return merged


def merge_master_with_override(item_id: str, master: Any, override: Any = None) -> ResolvedItem:
    merged = merge_item_fields(item_fields(master), item_fields(override) if override is not None else None)
    return _build(item_id, merged, SOURCE_MASTER, is_modified=override is not None)


def resolve_custom_item(item_id: str, custom: Any) -> ResolvedItem:
    return _build(item_id, item_fields(custom), SOURCE_USER_CUSTOM, is_modified=False)


def _build(item_id: str, fields: Mapping[str, Any], source_table: str, is_modified: bool) -> ResolvedItem:
    return ResolvedItem(
        item_id=str(item_id),
        name=fields.get("name") or "",
        display_name_ko=fields.get("display_name_ko"),
        category=fields.get("category"),
        exam_type=fields.get("exam_type"),
        default_unit=fields.get("default_unit"),
        organ_tags=list(fields.get("organ_tags") or []),
        description_common=fields.get("description_common"),
        description_high=fields.get("description_high"),
        description_low=fields.get("description_low"),
        source_table=source_table,
        is_modified=is_modified,
    )


# ---------------- Batch resolution ----------------

def _resolution_statement(user_id: Optional[str], item_ids: Optional[Sequence[str]] = None):
    m = StandardItemMaster.__table__
    o = UserStandardItem.__table__.alias("override")
    c = UserStandardItem.__table__.alias("custom")

    master_q = (
        select(
            literal(SOURCE_MASTER).label("source_table"),
            m.c.id.label("item_id"),
            o.c.id.label("override_id"),
            *[m.c[f].label(f) for f in ITEM_FIELDS],
            *[o.c[f].label(f"override_{f}") for f in ITEM_FIELDS],
        )
        .select_from(
            m.outerjoin(o, and_(o.c.master_item_id == m.c.id, o.c.user_id == user_id))
        )
    )
    custom_q = (
        select(
            literal(SOURCE_USER_CUSTOM).label("source_table"),
            c.c.id.label("item_id"),
            null().label("override_id"),
            *[c.c[f].label(f) for f in ITEM_FIELDS],
            *[null().label(f"override_{f}") for f in ITEM_FIELDS],
        )
        .where(c.c.user_id == user_id, c.c.master_item_id.is_(None))
    )
    if item_ids is not None:
        master_q = master_q.where(m.c.id.in_(item_ids))
        custom_q = custom_q.where(c.c.id.in_(item_ids))
    return union_all(master_q, custom_q)


def _row_to_item(row: Mapping[str, Any]) -> ResolvedItem:
    base = {f: row[f] for f in ITEM_FIELDS}
    if row["source_table"] == SOURCE_USER_CUSTOM:
        return _build(row["item_id"], base, SOURCE_USER_CUSTOM, is_modified=False)
    has_override = row["override_id"] is not None
    override = {f: row[f"override_{f}"] for f in ITEM_FIELDS} if has_override else None
    return _build(row["item_id"], merge_item_fields(base, override), SOURCE_MASTER, is_modified=has_override)


def resolve_standard_items(db: Session, item_ids: Iterable[Any], user_id: Optional[str]) -> Dict[str, ResolvedItem]:
    """Resolve ids to merged items. Ids found in neither table are absent from the map."""
    unique_ids = {str(i) for i in item_ids if i}
    if not unique_ids:
        return {}

    rows = db.execute(_resolution_statement(user_id, sorted(unique_ids))).mappings().all()
    resolved: Dict[str, ResolvedItem] = {}
    for row in rows:
        item = _row_to_item(row)
        resolved[item.item_id] = item

    missing = len(unique_ids) - len(resolved)
    if missing:
        logger.info({
            "function": "resolve_standard_items",
            "requested": len(unique_ids),
            "unresolved": missing,
        })
    return resolved


def list_user_items(db: Session, user_id: Optional[str]) -> List[ResolvedItem]:
    """Every master item (overrides applied) plus the user's custom items."""
    rows = db.execute(_resolution_statement(user_id)).mappings().all()
    items = [_row_to_item(row) for row in rows]
    items.sort(key=lambda it: ((it.category or ""), it.name.lower()))
    return items


def get_resolved_item(db: Session, item_id: str, user_id: Optional[str]) -> ResolvedItem:
    item = resolve_standard_items(db, [item_id], user_id).get(str(item_id))
    if item is None:
        raise NotFoundError("Item not found", details={"item_id": item_id})
    return item


def validate_standard_item_ids(db: Session, item_ids: Sequence[Any], user_id: Optional[str]) -> Tuple[Set[str], List[str]]:
    resolved = resolve_standard_items(db, item_ids, user_id)
    valid = set(resolved.keys())
    invalid = [str(i) for i in item_ids if str(i) not in valid]
    return valid, invalid


def enrich_test_results_with_items(
    db: Session,
    results: Sequence[Any],
    user_id: Optional[str],
    fields: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """Attach resolved item metadata (key ``standard_item``) to each result row."""
    rows = [r if isinstance(r, Mapping) else _result_to_dict(r) for r in results]
    resolved = resolve_standard_items(db, [r.get("standard_item_id") for r in rows], user_id)
    out = []
    for row in rows:
        item = resolved.get(str(row.get("standard_item_id") or ""))
        out.append({**row, "standard_item": item.to_dict(fields) if item else None})
    return out


def _result_to_dict(result: Any) -> Dict[str, Any]:
    keys = (
        "id", "record_id", "standard_item_id", "value", "raw_value", "value_type",
        "unit", "ref_min", "ref_max", "ref_text", "status", "ocr_raw_name",
    )
    return {k: getattr(result, k, None) for k in keys}


# ---------------- Per-user item edits ----------------

def clean_item_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    update = {k: v for k, v in changes.items() if k in ITEM_FIELDS}
    # exam_type and category are kept in step unless only category was sent
    if "exam_type" in update:
        update["category"] = update["exam_type"]
    return update


def update_user_item(db: Session, item_id: str, user_id: str, changes: Mapping[str, Any]) -> Tuple[UserStandardItem, str]:
    """
    Edit an item for one user. Master ids get (or update) an override row;
    custom ids are updated in place. Returns (row, change_type).
    """
    update = clean_item_changes(changes)
    if not update:
        raise ValidationError("No fields to update")

    master = db.get(StandardItemMaster, item_id)
    if master is not None:
        override = (
            db.query(UserStandardItem)
            .filter(UserStandardItem.user_id == user_id, UserStandardItem.master_item_id == item_id)
            .first()
        )
        change_type = "override_updated"
        if override is None:
            override = UserStandardItem(user_id=user_id, master_item_id=item_id)
            db.add(override)
            change_type = "override_created"
    else:
        override = (
            db.query(UserStandardItem)
            .filter(
                UserStandardItem.id == item_id,
                UserStandardItem.user_id == user_id,
                UserStandardItem.master_item_id.is_(None),
            )
            .first()
        )
        if override is None:
            raise NotFoundError("Item not found", details={"item_id": item_id})
        change_type = "custom_updated"

    for key, value in update.items():
        setattr(override, key, value)
    db.commit()
    db.refresh(override)
    logger.info({
        "function": "update_user_item",
        "status": change_type,
        "item_id": item_id,
        "fields": sorted(update.keys()),
    })
    return override, change_type


def create_custom_item(db: Session, user_id: str, payload: Mapping[str, Any]) -> Tuple[UserStandardItem, bool]:
    """Create a user custom item. Returns (row, created); an existing same-name item is reused."""
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required")

    existing = (
        db.query(UserStandardItem)
        .filter(
            UserStandardItem.user_id == user_id,
            UserStandardItem.master_item_id.is_(None),
            UserStandardItem.name == name,
        )
        .first()
    )
    if existing is not None:
        return existing, False

    fields = clean_item_changes(payload)
    fields["name"] = name
    fields.setdefault("display_name_ko", name)
    row = UserStandardItem(user_id=user_id, master_item_id=None, **fields)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info({"function": "create_custom_item", "status": "inserted", "item_id": row.id})
    return row, True


# ---------------- Reset ----------------

def get_user_data_stats(db: Session, user_id: str) -> Dict[str, Any]:
    items = db.query(UserStandardItem).filter(UserStandardItem.user_id == user_id).count()
    aliases = db.query(UserItemAlias).filter(UserItemAlias.user_id == user_id).count()
    mappings = db.query(UserItemMapping).filter(UserItemMapping.user_id == user_id).count()
    return {
        "custom_items": items,
        "custom_aliases": aliases,
        "custom_mappings": mappings,
        "has_custom_data": (items + aliases + mappings) > 0,
    }


def reset_user_overrides(db: Session, user_id: str) -> Dict[str, int]:
    """Drop every override, custom item, alias and mapping the user owns."""
    try:
        deleted = {
            "aliases": db.query(UserItemAlias)
            .filter(UserItemAlias.user_id == user_id)
            .delete(synchronize_session=False),
            "mappings": db.query(UserItemMapping)
            .filter(UserItemMapping.user_id == user_id)
            .delete(synchronize_session=False),
            "items": db.query(UserStandardItem)
            .filter(UserStandardItem.user_id == user_id)
            .delete(synchronize_session=False),
        }
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info({"function": "reset_user_overrides", "user_id": user_id, **deleted})
    return deleted


__all__ = [
    "ResolvedItem",
    "merge_item_fields",
    "merge_master_with_override",
    "resolve_custom_item",
    "resolve_standard_items",
    "list_user_items",
    "get_resolved_item",
    "validate_standard_item_ids",
    "enrich_test_results_with_items",
    "clean_item_changes",
    "update_user_item",
    "create_custom_item",
    "get_user_data_stats",
    "reset_user_overrides",
]
