"""Environment-backed configuration for the assistant dashboard backend.

- Reads env vars at import time
- Missing VAPI_API_KEY is fatal only where require_vapi_api_key() is called
"""

from __future__ import annotations

import os
from zoneinfo import ZoneInfo

from core.logging import logger


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("CONFIG_BAD_INT name=%s value=%r default=%s", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        logger.warning("CONFIG_BAD_FLOAT name=%s value=%r default=%s", name, raw, default)
        return default


# ---------- Vapi (remote voice-assistant platform) ----------
VAPI_API_KEY = (os.getenv("VAPI_API_KEY") or "").strip() or None
VAPI_BASE_URL = (os.getenv("VAPI_BASE_URL") or "https://api.vapi.ai").rstrip("/")

# No timeout is enforced upstream, so every outbound call gets one.
VAPI_TIMEOUT_S = _env_float("VAPI_TIMEOUT_S", 10.0)

if not VAPI_API_KEY:
    logger.warning("VAPI_API_KEY is not set. Vapi features will be disabled.")


def require_vapi_api_key() -> str:
    """Raise at import time for routers that cannot work without Vapi."""
    if not VAPI_API_KEY:
        raise RuntimeError("VAPI_API_KEY environment variable is required")
    return VAPI_API_KEY


# ---------- Supabase auth ----------
SUPABASE_URL = (os.getenv("SUPABASE_URL") or "").rstrip("/") or None
SUPABASE_ANON_KEY = (os.getenv("SUPABASE_ANON_KEY") or "").strip() or None
AUTH_TIMEOUT_S = _env_float("AUTH_TIMEOUT_S", 10.0)

if not (SUPABASE_URL and SUPABASE_ANON_KEY):
    logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set. Login will fail.")

# ---------- Session cookie ----------
SESSION_COOKIE = "dashboard_session"
SESSION_MAX_AGE_S = _env_int("SESSION_MAX_AGE_S", 60 * 60 * 24 * 7)  # 7 days

# ---------- Analytics ----------
ANALYTICS_CACHE_TTL_S = _env_float("ANALYTICS_CACHE_TTL_S", 60.0)

# Page size of the raw call listing behind fallback analytics
ANALYTICS_CALL_LIMIT = _env_int("ANALYTICS_CALL_LIMIT", 1000)
ANALYTICS_LOOKBACK_DAYS = _env_int("ANALYTICS_LOOKBACK_DAYS", 7)


def _safe_tz(tz_name: str | None) -> str:
    tz_name = (tz_name or "").strip() or "UTC"
    try:
        ZoneInfo(tz_name)
        return tz_name
    except Exception:
        logger.warning("CONFIG_BAD_TIMEZONE value=%r using=UTC", tz_name)
        return "UTC"


# Zone used to bucket raw calls into days and hours for fallback analytics
ANALYTICS_TIMEZONE = _safe_tz(os.getenv("ANALYTICS_TIMEZONE"))

# ---------- Call-history sync ----------
CALL_SYNC_LIMIT = _env_int("CALL_SYNC_LIMIT", 100)
CRON_SYNC_LIMIT = _env_int("CRON_SYNC_LIMIT", 500)
CRON_SYNC_LOOKBACK_DAYS = _env_int("CRON_SYNC_LOOKBACK_DAYS", 7)
CALL_SYNC_POLL_S = _env_float("CALL_SYNC_POLL_S", 86400.0)
