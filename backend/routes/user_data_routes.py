# backend/routes/user_data_routes.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.db.session import get_db
from backend.models.user import User
from backend.auth.deps import get_current_user
from backend.services import item_resolver
from backend.utils.responses import ok


router = APIRouter(prefix="/api/user", tags=["user-data"])


@router.get("/reset-master-data")
def user_data_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(item_resolver.get_user_data_stats(db, str(current_user.id)))


@router.post("/reset-master-data")
def reset_master_data(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Drop this user's overrides, custom items, aliases and mappings. Safe to repeat."""
    deleted = item_resolver.reset_user_overrides(db, str(current_user.id))
    return ok({"deleted": deleted}, message="Reset to master data")
