# api/deps/cron_secret.py
import os

from fastapi import Header, HTTPException


def require_cron_secret(authorization: str | None = Header(default=None)):
    """Scheduler calls must send `Authorization: Bearer <CRON_SECRET>` when the secret is set."""
    expected = (os.getenv("CRON_SECRET") or "").strip()
    if expected and authorization != f"Bearer {expected}":
        raise HTTPException(status_code=401, detail="Unauthorized")
