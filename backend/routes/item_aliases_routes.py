# backend/routes/item_aliases_routes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.db.session import get_db
from backend.models.user import User
from backend.auth.deps import get_current_user, require_admin
from backend.schemas.items import AliasCreate, AliasOut, RemapIn
from backend.services import alias_registry, item_curation
from backend.utils.responses import ok


router = APIRouter(prefix="/api/item-aliases", tags=["item-aliases"])
mappings_router = APIRouter(prefix="/api/item-mappings", tags=["item-mappings"])


@router.get("")
def list_aliases(
    standard_item_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Aliases visible to this user: master ones plus the user's own."""
    rows = alias_registry.list_aliases(db, str(current_user.id), standard_item_id)
    return ok(rows, count=len(rows))


@router.get("/lookup")
def lookup_alias(
    raw_name: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item_id = alias_registry.lookup(db, raw_name, str(current_user.id))
    return ok({"raw_name": raw_name, "standard_item_id": item_id})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user_alias(
    payload: AliasCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = alias_registry.create_alias(
        db,
        alias=payload.alias,
        canonical_name=payload.canonical_name,
        standard_item_id=payload.standard_item_id,
        source_hint=payload.source_hint,
        user_id=str(current_user.id),
    )
    return ok(AliasOut.model_validate(row).model_dump())


@router.delete("/{alias_id}")
def delete_user_alias(
    alias_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    alias_registry.delete_alias(db, alias_id, user_id=str(current_user.id))
    return ok({"id": alias_id})


@mappings_router.get("/stats")
def mapping_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(item_curation.mapping_stats(db, str(current_user.id)))


@mappings_router.post("/remap")
def remap_item(
    payload: RemapIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Move every result, alias and mapping from one item to another."""
    result = item_curation.remap(
        db,
        payload.old_item_id,
        payload.new_item_id,
        delete_after_remap=payload.delete_after_remap,
        register_alias=payload.register_alias,
    )
    body = result.to_dict()
    return {"success": result.success, "data": body, "errors": result.errors}
