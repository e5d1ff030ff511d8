import logging
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from loan_manager.core.config import JWT_SECRET, JWT_ALGO
from loan_manager.core.errors import NotAuthenticated, Forbidden
from loan_manager.models.user_model import User
from loan_manager.utils.database import get_db

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_USER = "user"

bearer = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Verify a bearer token issued by the auth service."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise NotAuthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise NotAuthenticated("Invalid token")


def _load_user(db: Session, credentials: Optional[HTTPAuthorizationCredentials]) -> User:
    if credentials is None:
        raise NotAuthenticated()

    payload = decode_token(credentials.credentials)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise NotAuthenticated("Invalid token")

    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotAuthenticated("User no longer exists")
    return user


def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
        db: Session = Depends(get_db),
) -> User:
    return _load_user(db, credentials)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        logger.warning("User %s denied admin-only route", user.user_id)
        raise Forbidden("Admin access required")
    return user


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == ROLE_ADMIN
