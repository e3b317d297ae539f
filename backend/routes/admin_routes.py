# backend/routes/admin_routes.py
"""Master taxonomy administration. Every route requires an admin user."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.db.session import get_db
from backend.models.user import User
from backend.auth.deps import require_admin
from backend.schemas.items import AliasCreate, AliasOut, CleanupIn, MasterItemCreate, MasterItemOut, MasterItemPatch
from backend.services import alias_registry, item_curation
from backend.services.item_curation import CleanupAction
from backend.utils.responses import ok


router = APIRouter(prefix="/api/admin", tags=["admin"])


# ---------------- Standard items ----------------

@router.post("/standard-items", status_code=status.HTTP_201_CREATED)
def create_master_item(
    payload: MasterItemCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    item = item_curation.create_master_item(db, payload.model_dump(exclude_unset=True))
    return ok(MasterItemOut.model_validate(item).model_dump())


@router.get("/standard-items/{item_id}")
def get_master_item(
    item_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    item = item_curation.get_master_item(db, item_id)
    data = MasterItemOut.model_validate(item).model_dump()
    data["test_result_count"] = item_curation.count_test_results(db, item_id)
    return ok(data)


@router.patch("/standard-items/{item_id}")
def update_master_item(
    item_id: str,
    payload: MasterItemPatch,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Edits the shared row; setting exam_type on an Unmapped item promotes it."""
    item = item_curation.update_master_item(db, item_id, payload.model_dump(exclude_unset=True))
    return ok(MasterItemOut.model_validate(item).model_dump())


@router.delete("/standard-items/{item_id}")
def delete_master_item(
    item_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    item_curation.delete_standard_item(db, item_id)
    return ok({"id": item_id})


# ---------------- Master aliases ----------------

@router.get("/item-aliases")
def list_master_aliases(
    standard_item_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    rows = alias_registry.list_aliases(db, None, standard_item_id)
    return ok(rows, count=len(rows))


@router.post("/item-aliases", status_code=status.HTTP_201_CREATED)
def create_master_alias(
    payload: AliasCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    row = alias_registry.create_alias(
        db,
        alias=payload.alias,
        canonical_name=payload.canonical_name,
        standard_item_id=payload.standard_item_id,
        source_hint=payload.source_hint,
    )
    return ok(AliasOut.model_validate(row).model_dump())


@router.delete("/item-aliases/{alias_id}")
def delete_master_alias(
    alias_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    alias_registry.delete_alias(db, alias_id)
    return ok({"id": alias_id})


# ---------------- Unmapped cleanup ----------------

@router.get("/unmapped")
def list_unmapped(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    rows = item_curation.list_unmapped(db)
    return ok(rows, count=len(rows))


@router.post("/cleanup-unmapped")
def cleanup_unmapped(
    payload: CleanupIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Batch delete/merge; per-action errors are collected, never fatal."""
    actions = [
        CleanupAction(
            action=a.action,
            item_id=a.item_id,
            target_item_id=a.target_item_id,
            register_alias=a.register_alias,
        )
        for a in payload.actions
    ]
    result = item_curation.cleanup_unmapped(db, actions, dry_run=payload.dry_run)
    body = result.to_dict()
    return {"success": result.success, "data": body, **body}
