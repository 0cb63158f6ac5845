# api/deps/current_user.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from api.deps.db import get_db
from core.logging import logger
from models import User
from services.auth_service import SessionError, read_session
from services.user_service import get_or_create_user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Resolve the signed session cookie to a local User row.
    No cookie -> 401 "Please log in first"; bad/expired cookie -> 401 "Authentication error".
    """
    try:
        session = read_session(request)
    except SessionError as e:
        logger.info("AUTH_SESSION_INVALID reason=%s", e)
        raise HTTPException(status_code=401, detail="Authentication error")

    if not session:
        raise HTTPException(status_code=401, detail="Please log in first")

    try:
        return get_or_create_user(db, user_id=session["uid"], email=session["email"])
    except ValueError:
        raise HTTPException(status_code=401, detail="Authentication error")
