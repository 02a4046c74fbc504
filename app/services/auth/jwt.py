"""
Bearer JWT authentication for marketplace users.
Tokens are issued by the auth service; here we only decode them (sub = user id).
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.models.user import User

logger = logging.getLogger("auth")
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, expires_in: timedelta = timedelta(days=7)) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> str | None:
    """Return the user id from a valid token, None otherwise."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.info("token_rejected", extra={"error": type(e).__name__})
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    user_id = verify_token(credentials.credentials)
    if not user_id:
        raise unauthorized
    user = db.query(User).filter(User.id == user_id).one_or_none()
    if user is None:
        raise unauthorized
    return user
