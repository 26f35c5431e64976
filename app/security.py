# File: /app/security.py | Version: 3.0 | Title: Owner authentication (JWT access/refresh) + tenant key dependency
"""
Every data path is scoped to an owner. A bearer token's ``sub`` claim is the
owning user's id; :func:`get_current_owner_id` is the dependency routers use
to obtain it.
"""
from datetime import UTC, datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.models import User

ACCESS = "access"
REFRESH = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Form-based token endpoint (Swagger "Authorize")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _issue(claims: dict, token_type: str, lifetime: timedelta) -> str:
    payload = {**claims, "exp": datetime.now(UTC) + lifetime, "type": token_type}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _claims(token: str, *accepted_types: Optional[str]) -> dict:
    """Verified claims of ``token``; its ``type`` must be one of ``accepted_types``."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _unauthorized()
    if payload.get("type") not in accepted_types:
        raise _unauthorized("Invalid token type")
    if not payload.get("sub"):
        raise _unauthorized()
    return payload


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _issue(data, ACCESS, lifetime)


def create_refresh_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes or settings.REFRESH_TOKEN_EXPIRE_MINUTES
    return _issue(data, REFRESH, timedelta(minutes=minutes))


def decode_refresh_token(token: str) -> dict:
    return _claims(token, REFRESH)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    # Untyped tokens predate the access/refresh split and are treated as access tokens.
    owner_id = _claims(token, ACCESS, None)["sub"]
    user = db.get(User, str(owner_id))
    if user is None or not user.is_active:
        raise _unauthorized()
    return user


def get_current_owner_id(current_user: User = Depends(get_current_user)) -> str:
    """Tenant key for every data path: the authenticated user's id."""
    return str(current_user.id)
