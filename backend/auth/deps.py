"""Authentication dependencies for FastAPI routes."""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.db.session import get_db
from backend.models.user import User
from backend.auth import jwt
from backend.utils.exceptions import PermissionDeniedError

_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _load_user(db: Session, subject: str) -> Optional[User]:
    # sub is either the user id or the email
    column = User.email if "@" in subject else User.id
    return db.query(User).filter(column == subject).first()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token")
    subject = jwt.get_subject(credentials.credentials)
    if not subject:
        raise _unauthorized("Invalid or expired token")
    user = _load_user(db, subject)
    if user is None:
        raise _unauthorized("User not found")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Master taxonomy writes (items, aliases, remap, cleanup) are admin-only."""
    if not getattr(current_user, "is_admin", False):
        raise PermissionDeniedError("Admin privileges required")
    return current_user


create_access_token = jwt.create_access_token
