"""Raw OCR name -> standard item id lookup, over two alias tiers.

Lookups are exact, case-sensitive string matches on the alias column. The
user tier is consulted before the master tier; which tier wins is decided
only in ``AliasResolver``.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.item_alias import ItemAliasMaster, ItemMappingMaster, UserItemAlias, UserItemMapping
from backend.models.standard_item import StandardItemMaster, UserStandardItem
from backend.services.item_resolver import resolve_standard_items
from backend.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger("petlab")


class AliasLookup(Protocol):
    def find(self, raw_name: str) -> Optional[str]:
        ...

    def find_many(self, raw_names: Sequence[str]) -> Dict[str, str]:
        ...


class MasterAliasLookup:
    def __init__(self, db: Session):
        self.db = db

    def find(self, raw_name: str) -> Optional[str]:
        row = self.db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == raw_name).first()
        return row.standard_item_id if row else None

    def find_many(self, raw_names: Sequence[str]) -> Dict[str, str]:
        if not raw_names:
            return {}
        rows = self.db.query(ItemAliasMaster).filter(ItemAliasMaster.alias.in_(raw_names)).all()
        return {r.alias: r.standard_item_id for r in rows}


class UserAliasLookup:
    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def _query(self):
        return self.db.query(UserItemAlias).filter(UserItemAlias.user_id == self.user_id)

    def find(self, raw_name: str) -> Optional[str]:
        row = self._query().filter(UserItemAlias.alias == raw_name).first()
        return row.standard_item_id if row else None

    def find_many(self, raw_names: Sequence[str]) -> Dict[str, str]:
        if not raw_names:
            return {}
        rows = self._query().filter(UserItemAlias.alias.in_(raw_names)).all()
        return {r.alias: r.standard_item_id for r in rows}


class AliasResolver:
    """Tries each tier in order; the first hit wins."""

    def __init__(self, tiers: Sequence[AliasLookup]):
        self.tiers = list(tiers)

    @classmethod
    def for_user(cls, db: Session, user_id: Optional[str] = None) -> "AliasResolver":
        tiers: List[AliasLookup] = []
        if user_id:
            tiers.append(UserAliasLookup(db, user_id))
        tiers.append(MasterAliasLookup(db))
        return cls(tiers)

    def find(self, raw_name: str) -> Optional[str]:
        for tier in self.tiers:
            hit = tier.find(raw_name)
            if hit:
                return hit
        return None

    def find_many(self, raw_names: Iterable[str]) -> Dict[str, str]:
        pending = list(dict.fromkeys(n for n in raw_names if n))
        found: Dict[str, str] = {}
        for tier in self.tiers:
            if not pending:
                break
            hits = tier.find_many(pending)
            found.update(hits)
            pending = [n for n in pending if n not in hits]
        return found


def lookup(db: Session, raw_name: Optional[str], user_id: Optional[str] = None) -> Optional[str]:
    if not raw_name:
        return None
    return AliasResolver.for_user(db, user_id).find(raw_name)


def lookup_many(db: Session, raw_names: Iterable[str], user_id: Optional[str] = None) -> Dict[str, str]:
    """One query per tier for the whole batch."""
    return AliasResolver.for_user(db, user_id).find_many(raw_names)


def _resolve_item_by_name(db: Session, canonical_name: str, user_id: Optional[str]) -> str:
    target = canonical_name.strip().lower()
    master = (
        db.query(StandardItemMaster)
        .filter(func.lower(StandardItemMaster.name) == target)
        .first()
    )
    if master is not None:
        return master.id
    if user_id:
        custom = (
            db.query(UserStandardItem)
            .filter(
                UserStandardItem.user_id == user_id,
                UserStandardItem.master_item_id.is_(None),
                func.lower(UserStandardItem.name) == target,
            )
            .first()
        )
        if custom is not None:
            return custom.id
    raise NotFoundError(
        f"Standard item '{canonical_name}' not found",
        details={"canonical_name": canonical_name},
    )


def create_alias(
    db: Session,
    alias: Optional[str],
    canonical_name: Optional[str],
    standard_item_id: Optional[str] = None,
    source_hint: Optional[str] = None,
    user_id: Optional[str] = None,
):
    """
    Upsert an alias. With ``user_id`` the row goes to the user tier,
    otherwise to the master tier. The alias string is the conflict key.
    """
    alias = (alias or "").strip()
    canonical_name = (canonical_name or "").strip()
    if not alias or not canonical_name:
        raise ValidationError("alias and canonical_name are required")

    if not standard_item_id:
        standard_item_id = _resolve_item_by_name(db, canonical_name, user_id)
    elif user_id is None and db.get(StandardItemMaster, standard_item_id) is None:
        raise NotFoundError("Standard item not found", details={"standard_item_id": standard_item_id})
    elif user_id and str(standard_item_id) not in resolve_standard_items(db, [standard_item_id], user_id):
        # user aliases may point at the user's custom items too
        raise NotFoundError("Standard item not found", details={"standard_item_id": standard_item_id})

    if user_id:
        row = (
            db.query(UserItemAlias)
            .filter(UserItemAlias.user_id == user_id, UserItemAlias.alias == alias)
            .first()
        )
        if row is None:
            row = UserItemAlias(user_id=user_id, alias=alias)
            db.add(row)
    else:
        row = db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == alias).first()
        if row is None:
            row = ItemAliasMaster(alias=alias)
            db.add(row)

    row.canonical_name = canonical_name
    row.standard_item_id = standard_item_id
    row.source_hint = source_hint
    db.commit()
    db.refresh(row)
    logger.info({
        "function": "create_alias",
        "status": "upserted",
        "tier": "user" if user_id else "master",
        "alias": alias,
        "standard_item_id": standard_item_id,
    })
    return row


def delete_alias(db: Session, alias_id: str, user_id: Optional[str] = None) -> None:
    if user_id:
        row = (
            db.query(UserItemAlias)
            .filter(UserItemAlias.id == alias_id, UserItemAlias.user_id == user_id)
            .first()
        )
    else:
        row = db.get(ItemAliasMaster, alias_id)
    if row is None:
        raise NotFoundError("Alias not found", details={"alias_id": alias_id})
    db.delete(row)
    db.commit()
    logger.info({"function": "delete_alias", "status": "deleted", "alias_id": alias_id})


def list_aliases(db: Session, user_id: Optional[str] = None, standard_item_id: Optional[str] = None) -> List[dict]:
    """Master aliases, then the user's own; a user alias hides a master alias with the same string."""
    mq = db.query(ItemAliasMaster)
    if standard_item_id:
        mq = mq.filter(ItemAliasMaster.standard_item_id == standard_item_id)
    out: Dict[str, dict] = {}
    for row in mq.order_by(ItemAliasMaster.alias).all():
        out[row.alias] = _alias_dict(row, "master")

    if user_id:
        uq = db.query(UserItemAlias).filter(UserItemAlias.user_id == user_id)
        if standard_item_id:
            uq = uq.filter(UserItemAlias.standard_item_id == standard_item_id)
        for row in uq.order_by(UserItemAlias.alias).all():
            out[row.alias] = _alias_dict(row, "user")
    return list(out.values())


def record_mapping(db: Session, raw_name: Optional[str], standard_item_id: str, user_id: Optional[str] = None) -> None:
    """Remember which item a raw name went to. Joins the caller's transaction."""
    raw_name = (raw_name or "").strip()
    if not raw_name or not standard_item_id:
        return
    if user_id:
        row = (
            db.query(UserItemMapping)
            .filter(UserItemMapping.user_id == user_id, UserItemMapping.raw_name == raw_name)
            .first()
        )
        if row is None:
            db.add(UserItemMapping(user_id=user_id, raw_name=raw_name, standard_item_id=standard_item_id))
        else:
            row.standard_item_id = standard_item_id
    else:
        row = db.query(ItemMappingMaster).filter(ItemMappingMaster.raw_name == raw_name).first()
        if row is None:
            db.add(ItemMappingMaster(raw_name=raw_name, standard_item_id=standard_item_id))
        else:
            row.standard_item_id = standard_item_id


def _alias_dict(row, tier: str) -> dict:
    return {
        "id": row.id,
        "alias": row.alias,
        "canonical_name": row.canonical_name,
        "source_hint": row.source_hint,
        "standard_item_id": row.standard_item_id,
        "tier": tier,
    }


__all__ = [
    "AliasLookup",
    "MasterAliasLookup",
    "UserAliasLookup",
    "AliasResolver",
    "lookup",
    "lookup_many",
    "create_alias",
    "delete_alias",
    "list_aliases",
    "record_mapping",
]
