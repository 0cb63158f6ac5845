# services/auth_service.py
"""Login against Supabase Auth and keep the result in a signed cookie.

Supabase only verifies the password; after that the dashboard trusts its own
signed session cookie ({"uid", "email"}) until it expires.
"""

from __future__ import annotations

import os
from typing import Any, Optional

import httpx
from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from core import config as cfg
from core.logging import logger


class AuthError(Exception):
    pass


class SessionError(Exception):
    pass


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _serializer() -> URLSafeTimedSerializer:
    secret = _env("SESSION_SECRET")
    if not secret:
        raise SessionError("SESSION_SECRET is not set")
    return URLSafeTimedSerializer(secret, salt="dashboard-session-v1")


async def sign_in_with_password(
    email: str,
    password: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Any]:
    """Password grant against Supabase Auth. Returns {"id", "email"} of the user."""
    if not (cfg.SUPABASE_URL and cfg.SUPABASE_ANON_KEY):
        raise AuthError("Auth backend is not configured")

    url = f"{cfg.SUPABASE_URL}/auth/v1/token"
    headers = {"apikey": cfg.SUPABASE_ANON_KEY, "Content-Type": "application/json"}
    try:
        async with httpx.AsyncClient(timeout=cfg.AUTH_TIMEOUT_S, transport=transport) as client:
            resp = await client.post(
                url,
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=headers,
            )
    except httpx.HTTPError as e:
        logger.error("AUTH_HTTP_ERROR err=%s", e)
        raise AuthError("Auth backend unreachable") from e

    if resp.status_code >= 400:
        try:
            detail = resp.json().get("error_description") or resp.json().get("msg") or resp.text
        except ValueError:
            detail = resp.text
        logger.info("AUTH_LOGIN_REJECTED status=%s", resp.status_code)
        raise AuthError(str(detail)[:300] or "Login failed")

    data = resp.json()
    user = data.get("user") or {}
    if not data.get("access_token") or not user.get("id"):
        raise AuthError("No session created")
    return {"id": str(user["id"]), "email": user.get("email") or email}


def set_session(response, *, user_id: str, email: str) -> None:
    token = _serializer().dumps({"uid": user_id, "email": email})
    response.set_cookie(
        cfg.SESSION_COOKIE,
        token,
        httponly=True,
        secure=_env("SESSION_COOKIE_SECURE", "true").lower() in ("1", "true", "yes", "on"),
        samesite="lax",
        max_age=cfg.SESSION_MAX_AGE_S,
        path="/",
    )


def clear_session(response) -> None:
    response.delete_cookie(cfg.SESSION_COOKIE, path="/")


def read_session(request: Request) -> Optional[dict[str, str]]:
    """None when there is no cookie; SessionError when it is present but not valid."""
    token = request.cookies.get(cfg.SESSION_COOKIE)
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=cfg.SESSION_MAX_AGE_S)
    except SignatureExpired as e:
        raise SessionError("Session expired") from e
    except BadSignature as e:
        raise SessionError("Bad session signature") from e
    if not isinstance(data, dict) or not data.get("uid"):
        raise SessionError("Malformed session")
    return {"uid": str(data["uid"]), "email": str(data.get("email") or "")}
