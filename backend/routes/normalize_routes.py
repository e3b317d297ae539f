# backend/routes/normalize_routes.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.db.session import get_db
from backend.models.user import User
from backend.auth.deps import get_current_user
from backend.schemas.lab import PreviewIn
from backend.services.ingest import IngestLine, preview_line
from backend.utils.responses import ok


router = APIRouter(prefix="/api/normalize", tags=["normalize"])


@router.post("/preview")
def preview(
    payload: PreviewIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Dry run of one OCR line through matching, parsing and classification."""
    return ok(preview_line(db, str(current_user.id), IngestLine(**payload.model_dump())))
