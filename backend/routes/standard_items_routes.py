# backend/routes/standard_items_routes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.db.session import get_db
from backend.models.user import User
from backend.auth.deps import get_current_user
from backend.schemas.items import StandardItemCreate, StandardItemFields
from backend.services import item_resolver
from backend.utils.responses import ok


router = APIRouter(prefix="/api/standard-items", tags=["standard-items"])


@router.get("")
def list_standard_items(
    category: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Master items with this user's overrides applied, plus custom items."""
    items = item_resolver.list_user_items(db, str(current_user.id))
    if category:
        items = [it for it in items if it.category == category]
    return ok([it.to_dict() for it in items], count=len(items))


@router.get("/{item_id}")
def get_standard_item(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = item_resolver.get_resolved_item(db, item_id, str(current_user.id))
    return ok(item.to_dict())


@router.post("", status_code=status.HTTP_201_CREATED)
def create_custom_item(
    payload: StandardItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row, created = item_resolver.create_custom_item(
        db, str(current_user.id), payload.model_dump(exclude_unset=True)
    )
    item = item_resolver.resolve_custom_item(row.id, row)
    return ok(item.to_dict(), created=created)


@router.patch("/{item_id}")
def update_standard_item(
    item_id: str,
    payload: StandardItemFields,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Master ids get a per-user override; custom items are edited in place."""
    user_id = str(current_user.id)
    _, change_type = item_resolver.update_user_item(
        db, item_id, user_id, payload.model_dump(exclude_unset=True)
    )
    item = item_resolver.get_resolved_item(db, item_id, user_id)
    return ok(item.to_dict(), type=change_type)
