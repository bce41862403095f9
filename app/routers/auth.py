"""Authentication routes and session management."""
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app import crud
from app.auth import User
from app.config import Settings
from app.database import get_session
from app.dependencies import get_app_settings, get_now
from app.models import Seller

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

SESSION_COOKIE = "session_token"


def _request_token(request: Request) -> str | None:
    """Session token from the bearer header, falling back to the cookie."""
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(SESSION_COOKIE)


@router.post("/login")
def login(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_now),
):
    """Verify credentials and issue a session token (cookie and JSON body)."""
    user = db.query(User).filter(User.username == username).first()
    if not user or not user.verify_password(password):
        logger.warning("[AUTH] Failed login for %r", username)
        raise HTTPException(status_code=401, detail="Invalid username or password")

    session_row = crud.create_user_session(db, user, now, settings.session_hours)
    response = JSONResponse({"token": session_row.token, "role": user.role})
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_row.token,
        httponly=True,
        path="/",
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.session_hours * 3600,
    )
    return response


@router.get("/logout")
def logout(request: Request, db: Session = Depends(get_session)):
    """Revoke the presented session and clear the cookie."""
    crud.revoke_session(db, _request_token(request))
    response = JSONResponse({"status": "logged_out"})
    response.delete_cookie(SESSION_COOKIE)
    return response


def get_optional_user(
    request: Request,
    db: Session = Depends(get_session),
    now: datetime = Depends(get_now),
) -> User | None:
    """Resolve the caller if a valid session is presented; anonymous otherwise."""
    return crud.resolve_session_user(db, _request_token(request), now)


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    """Dependency to get current authenticated user."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """Dependency to ensure user is admin."""
    if not user.is_admin():
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_current_seller(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> Seller:
    """Dependency resolving the seller profile linked to the signed-in user."""
    seller = crud.get_seller_for_user(db, user)
    if seller is None:
        raise HTTPException(status_code=403, detail="Seller access required")
    return seller
