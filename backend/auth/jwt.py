# backend/auth/jwt.py
"""Bearer tokens. Password login lives outside this service; tokens only carry
the user reference in ``sub``."""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    **claims: Any,
) -> str:
    """Sign a token for a user id or email."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        **claims,
        "sub": str(subject),
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_subject(token: str) -> Optional[str]:
    payload = decode_token(token) or {}
    sub = payload.get("sub")
    return str(sub) if sub else None
