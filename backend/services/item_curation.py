"""Admin curation of the master taxonomy.

Unmapped items are created automatically during ingest for OCR names that
matched nothing. An admin later either merges them into a real item (all
references move over and the Unmapped row goes away) or promotes them by
giving them a real exam_type.

remap() is a single transaction. cleanup_unmapped() runs one transaction
per action and collects per-action errors instead of stopping.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.item_alias import ItemAliasMaster, ItemMappingMaster, UserItemAlias, UserItemMapping
from backend.models.standard_item import UNMAPPED_CATEGORY, StandardItemMaster, UserStandardItem
from backend.models.test_record import TestResult
from backend.services.item_resolver import clean_item_changes
from backend.utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("petlab")

MERGED_SOURCE_HINT = "merged"


@dataclass
class RemapResult:
    success: bool
    old_item_id: str
    new_item_id: str
    test_results_moved: int = 0
    aliases_moved: int = 0
    mappings_moved: int = 0
    alias_registered: bool = False
    old_item_deleted: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CleanupAction:
    action: str
    item_id: str
    target_item_id: Optional[str] = None
    register_alias: bool = True


@dataclass
class CleanupResult:
    success: bool = True
    dry_run: bool = False
    deleted: int = 0
    merged: int = 0
    test_results_migrated: int = 0
    errors: List[str] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------- Reference helpers (no commit) ----------------

def count_test_results(db: Session, item_id: str) -> int:
    return db.query(TestResult).filter(TestResult.standard_item_id == item_id).count()


def _move_references(db: Session, old_id: str, new_id: str) -> Dict[str, int]:
    results = (
        db.query(TestResult)
        .filter(TestResult.standard_item_id == old_id)
        .update({TestResult.standard_item_id: new_id}, synchronize_session=False)
    )
    aliases = 0
    for model in (ItemAliasMaster, UserItemAlias):
        aliases += (
            db.query(model)
            .filter(model.standard_item_id == old_id)
            .update({model.standard_item_id: new_id}, synchronize_session=False)
        )
    mappings = 0
    for model in (ItemMappingMaster, UserItemMapping):
        mappings += (
            db.query(model)
            .filter(model.standard_item_id == old_id)
            .update({model.standard_item_id: new_id}, synchronize_session=False)
        )
    return {"test_results": results, "aliases": aliases, "mappings": mappings}


def _register_merged_alias(db: Session, old: StandardItemMaster, new: StandardItemMaster) -> bool:
    exists = db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == old.name).first()
    if exists is not None:
        return False
    db.add(ItemAliasMaster(
        alias=old.name,
        canonical_name=new.name,
        standard_item_id=new.id,
        source_hint=MERGED_SOURCE_HINT,
    ))
    return True


def _purge_item(db: Session, item: StandardItemMaster) -> None:
    """Drop an item together with whatever still points at it besides test results."""
    for model in (ItemAliasMaster, UserItemAlias, ItemMappingMaster, UserItemMapping):
        db.query(model).filter(model.standard_item_id == item.id).delete(synchronize_session=False)
    db.query(UserStandardItem).filter(UserStandardItem.master_item_id == item.id).delete(
        synchronize_session=False
    )
    db.delete(item)


def _get_master(db: Session, item_id: Optional[str]) -> Optional[StandardItemMaster]:
    if not item_id:
        return None
    return db.get(StandardItemMaster, item_id)


# ---------------- Remap ----------------

def remap(
    db: Session,
    old_item_id: str,
    new_item_id: str,
    delete_after_remap: bool = True,
    register_alias: bool = False,
) -> RemapResult:
    if not old_item_id or not new_item_id:
        raise ValidationError("old_item_id and new_item_id are required")
    if old_item_id == new_item_id:
        raise ValidationError("Cannot remap an item onto itself")

    old = _get_master(db, old_item_id)
    new = _get_master(db, new_item_id)
    if old is None or new is None:
        missing = [i for i, row in ((old_item_id, old), (new_item_id, new)) if row is None]
        raise NotFoundError("Standard item not found", details={"missing": missing})

    result = RemapResult(success=True, old_item_id=old_item_id, new_item_id=new_item_id)
    try:
        moved = _move_references(db, old_item_id, new_item_id)
        result.test_results_moved = moved["test_results"]
        result.aliases_moved = moved["aliases"]
        result.mappings_moved = moved["mappings"]

        if register_alias:
            result.alias_registered = _register_merged_alias(db, old, new)

        if delete_after_remap and old.category == UNMAPPED_CATEGORY:
            if count_test_results(db, old_item_id) == 0:
                _purge_item(db, old)
                result.old_item_deleted = True
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error({
            "function": "remap",
            "status": "failed",
            "old_item_id": old_item_id,
            "new_item_id": new_item_id,
            "error": str(exc),
        })
        return RemapResult(
            success=False,
            old_item_id=old_item_id,
            new_item_id=new_item_id,
            errors=[f"Remap failed, no changes applied: {exc}"],
        )

    logger.info({"function": "remap", "status": "ok", **result.to_dict()})
    return result


# ---------------- Batch cleanup ----------------

@dataclass
class _DryRunState:
    """Effects of the earlier actions in a dry-run batch, replayed in memory."""
    deleted: Set[str] = field(default_factory=set)
    moved_in: Dict[str, int] = field(default_factory=dict)


def _run_action(db: Session, act: CleanupAction, summary: CleanupResult, sim: Optional[_DryRunState]) -> None:
    item = _get_master(db, act.item_id)
    if item is None or (sim is not None and item.id in sim.deleted):
        summary.errors.append(f"Item {act.item_id} not found")
        return
    ref_count = count_test_results(db, item.id)
    if sim is not None:
        ref_count += sim.moved_in.get(item.id, 0)

    if act.action == "delete":
        if ref_count > 0:
            summary.errors.append(
                f"Cannot delete {item.name}: has {ref_count} test results. Merge instead."
            )
            return
        if sim is None:
            _purge_item(db, item)
            db.commit()
        else:
            sim.deleted.add(item.id)
        summary.deleted += 1
        return

    if act.action == "merge":
        if not act.target_item_id:
            summary.errors.append(f"Merge of {item.name} requires targetItemId")
            return
        if act.target_item_id == item.id:
            summary.errors.append(f"Cannot merge {item.name} into itself")
            return
        target = _get_master(db, act.target_item_id)
        if target is None or (sim is not None and target.id in sim.deleted):
            summary.errors.append(f"Target item {act.target_item_id} not found")
            return
        if sim is not None:
            sim.moved_in[target.id] = sim.moved_in.get(target.id, 0) + ref_count
            sim.deleted.add(item.id)
            summary.merged += 1
            summary.test_results_migrated += ref_count
            return
        moved = _move_references(db, item.id, target.id)
        if act.register_alias:
            _register_merged_alias(db, item, target)
        _purge_item(db, item)
        db.commit()
        summary.merged += 1
        summary.test_results_migrated += moved["test_results"]
        return

    summary.errors.append(f"Unknown action '{act.action}' for {act.item_id}")


def cleanup_unmapped(db: Session, actions: Sequence[CleanupAction], dry_run: bool = False) -> CleanupResult:
    summary = CleanupResult(dry_run=dry_run)
    # a dry run sees what earlier actions in the batch would have done
    sim = _DryRunState() if dry_run else None
    for act in actions:
        try:
            _run_action(db, act, summary, sim)
        except Exception as exc:
            db.rollback()
            summary.errors.append(f"{act.action} {act.item_id} failed: {exc}")

    summary.success = not summary.errors
    prefix = "[dry run] " if dry_run else ""
    summary.message = (
        f"{prefix}deleted {summary.deleted}, merged {summary.merged}, "
        f"migrated {summary.test_results_migrated} test results"
    )
    if summary.errors:
        summary.message += f", {len(summary.errors)} errors"
    logger.info({
        "function": "cleanup_unmapped",
        "status": "ok" if summary.success else "partial",
        "dry_run": dry_run,
        "deleted": summary.deleted,
        "merged": summary.merged,
        "test_results_migrated": summary.test_results_migrated,
        "errors": len(summary.errors),
    })
    return summary


# ---------------- Master item CRUD ----------------

def get_master_item(db: Session, item_id: str) -> StandardItemMaster:
    item = _get_master(db, item_id)
    if item is None:
        raise NotFoundError("Item not found", details={"item_id": item_id})
    return item


def create_master_item(db: Session, payload: Mapping[str, Any]) -> StandardItemMaster:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required")
    taken = (
        db.query(StandardItemMaster)
        .filter(func.lower(StandardItemMaster.name) == name.lower())
        .first()
    )
    if taken is not None:
        raise ValidationError(f"Item '{name}' already exists", details={"item_id": taken.id})

    fields = clean_item_changes(payload)
    fields["name"] = name
    item = StandardItemMaster(sort_order=payload.get("sort_order"), **fields)
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info({"function": "create_master_item", "status": "inserted", "item_id": item.id})
    return item


def update_master_item(db: Session, item_id: str, changes: Mapping[str, Any]) -> StandardItemMaster:
    item = get_master_item(db, item_id)
    update = clean_item_changes(changes)
    if "sort_order" in changes:
        update["sort_order"] = changes["sort_order"]
    if not update:
        raise ValidationError("No fields to update")
    for key, value in update.items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    logger.info({
        "function": "update_master_item",
        "status": "updated",
        "item_id": item_id,
        "fields": sorted(update.keys()),
    })
    return item


def delete_standard_item(db: Session, item_id: str) -> None:
    item = get_master_item(db, item_id)
    ref_count = count_test_results(db, item_id)
    if ref_count > 0:
        raise ConflictError(
            f"Cannot delete {item.name}: {ref_count} test results reference it",
            count=ref_count,
        )
    try:
        _purge_item(db, item)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info({"function": "delete_standard_item", "status": "deleted", "item_id": item_id})


# ---------------- Reporting ----------------

def _counts_by_item(db: Session, column, item_ids: Sequence[str]) -> Dict[str, int]:
    if not item_ids:
        return {}
    rows = (
        db.query(column, func.count())
        .filter(column.in_(item_ids))
        .group_by(column)
        .all()
    )
    return {item_id: count for item_id, count in rows}


def list_unmapped(db: Session) -> List[Dict[str, Any]]:
    items = (
        db.query(StandardItemMaster)
        .filter(StandardItemMaster.category == UNMAPPED_CATEGORY)
        .order_by(StandardItemMaster.name)
        .all()
    )
    ids = [it.id for it in items]
    results = _counts_by_item(db, TestResult.standard_item_id, ids)
    aliases = _counts_by_item(db, ItemAliasMaster.standard_item_id, ids)
    mappings = _counts_by_item(db, ItemMappingMaster.standard_item_id, ids)
    return [
        {
            "id": it.id,
            "name": it.name,
            "display_name_ko": it.display_name_ko,
            "created_at": it.created_at,
            "test_result_count": results.get(it.id, 0),
            "alias_count": aliases.get(it.id, 0),
            "mapping_count": mappings.get(it.id, 0),
        }
        for it in items
    ]


def mapping_stats(db: Session, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Recorded raw-name count per standard item, master and user tiers combined."""
    per_item: Dict[str, int] = {}
    rows = (
        db.query(ItemMappingMaster.standard_item_id, func.count())
        .group_by(ItemMappingMaster.standard_item_id)
        .all()
    )
    for item_id, count in rows:
        per_item[item_id] = per_item.get(item_id, 0) + count
    if user_id:
        rows = (
            db.query(UserItemMapping.standard_item_id, func.count())
            .filter(UserItemMapping.user_id == user_id)
            .group_by(UserItemMapping.standard_item_id)
            .all()
        )
        for item_id, count in rows:
            per_item[item_id] = per_item.get(item_id, 0) + count

    by_item = [
        {"standard_item_id": item_id, "raw_name_count": count}
        for item_id, count in sorted(per_item.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    return {
        "total_mappings": sum(per_item.values()),
        "item_count": len(per_item),
        "by_item": by_item,
    }


__all__ = [
    "RemapResult",
    "CleanupAction",
    "CleanupResult",
    "count_test_results",
    "remap",
    "cleanup_unmapped",
    "get_master_item",
    "create_master_item",
    "update_master_item",
    "delete_standard_item",
    "list_unmapped",
    "mapping_stats",
]
