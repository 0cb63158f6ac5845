# api/routers/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.deps.current_user import get_current_user
from core.logging import logger
from models import User
from services.auth_service import AuthError, SessionError, clear_session, set_session, sign_in_with_password

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


@router.post("/login")
async def auth_login(payload: LoginIn):
    try:
        user = await sign_in_with_password(payload.email.strip(), payload.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=f"Login failed: {e}")

    resp = JSONResponse({"success": True, "user": user})
    try:
        set_session(resp, user_id=user["id"], email=user["email"])
    except SessionError:
        logger.error("AUTH_LOGIN_NO_SECRET SESSION_SECRET is not set")
        raise HTTPException(status_code=500, detail="Sessions are not configured")
    logger.info("AUTH_LOGIN_OK user_id=%s", user["id"])
    return resp


@router.post("/logout")
async def auth_logout():
    resp = JSONResponse({"success": True})
    clear_session(resp)
    return resp


@router.get("/me")
def auth_me(user: User = Depends(get_current_user)):
    return {"user": {"id": str(user.id), "email": user.email}}
