# File: /app/routers/auth.py | Version: 3.0 | Title: Auth Router (JSON+form tolerant) + Access & Refresh Tokens + /me
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models import User
from app.schemas.user import RefreshRequest, TokenPair, TokenResponse, UserResponse
from app.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_current_user,
    get_password_hash,
    verify_password,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


# ---------------------------
# Utilities
# ---------------------------


async def _read_json_or_form(request: Request) -> Dict[str, Any]:
    """Accept JSON or form-encoded bodies and normalize keys."""
    ctype = (request.headers.get("content-type") or "").lower()
    data: Dict[str, Any] = {}
    if "application/json" in ctype:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            data = body
    else:
        form = await request.form()
        data = dict(form)

    # alias: username -> email (OAuth-style)
    if "username" in data and "email" not in data:
        data["email"] = data["username"]
    return data


def _authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    return user


def _issue_tokens_for_user(user: User) -> TokenPair:
    sub = {"sub": str(user.id)}
    return TokenPair(
        access_token=create_access_token(sub),
        refresh_token=create_refresh_token(sub),
    )


# ---------------------------
# Endpoints
# ---------------------------


@router.post("/register")
async def register(request: Request, db: Session = Depends(get_db)):
    """
    Register a user. Idempotent by email: an existing account is returned as-is.
    Accepts JSON or form {email, password, [full_name]}.
    Returns minimal user info; clients/tests then call /auth/login.
    """
    payload = await _read_json_or_form(request)
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password")
    full_name: Optional[str] = payload.get("full_name")

    if not email or not password:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Email and password required",
        )

    user = db.query(User).filter(User.email == email).first()
    if not user:
        user = User(
            email=email,
            full_name=full_name,
            hashed_password=get_password_hash(password),
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        log.info("Registered user %s", user.id)

    return {"id": str(user.id), "email": user.email}


@router.post("/login", response_model=TokenPair)
async def login(request: Request, db: Session = Depends(get_db)):
    """
    Login with JSON or form {email/username, password}.
    Returns both access and refresh tokens for later /auth/refresh use.
    """
    payload = await _read_json_or_form(request)
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password")

    if not email or not password:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Email and password required",
        )

    return _issue_tokens_for_user(_authenticate(db, email, password))


@router.post("/token", response_model=TokenPair)
def login_oauth_form(
    db: Session = Depends(get_db),
    username: str = Form(...),
    password: str = Form(...),
):
    """
    OAuth2 form variant (Swagger "Authorize" button). Returns access + refresh tokens.
    """
    email = (username or "").strip().lower()
    return _issue_tokens_for_user(_authenticate(db, email, password))


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest):
    payload = decode_refresh_token(body.refresh_token)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return TokenResponse(access_token=create_access_token({"sub": sub}))
