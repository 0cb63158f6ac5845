# services/call_sync.py
"""Pull calls from Vapi into call_history.

- assistants are processed one after another
- per assistant: one page of calls (limit) created after the cutoff
- calls without an id are skipped before anything else is fetched for them
- transcripts are fetched only for calls whose status is "ended"
- one failing call is logged, rolled back and skipped; the batch continues
- a failing listing marks that assistant with an error; other assistants continue
- database work runs in worker threads (asyncio.to_thread), never on the event loop
Re-running over the same window only updates rows (upsert on vapi call id).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from core import config as cfg
from core.logging import logger
from models import Assistant, User
from services.call_history_service import upsert_call
from services.vapi_client import VapiClient, VapiError


@dataclass
class AssistantSyncResult:
    assistant_id: str
    assistant_name: str
    calls_processed: int = 0
    total_calls: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "assistantId": self.assistant_id,
            "assistantName": self.assistant_name,
        }
        if self.error:
            out["error"] = self.error
        else:
            out["callsProcessed"] = self.calls_processed
            out["totalCalls"] = self.total_calls
        return out


def _iso_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _assistant_fields(assistant: Assistant) -> tuple[str, str]:
    # Attributes expire on every commit; reading them may hit the database
    return assistant.vapi_assistant_id, assistant.name


def _user_active_assistants(db: Session, user: User) -> tuple[Any, list[Assistant]]:
    rows = (
        db.query(Assistant)
        .filter(Assistant.user_id == user.id, Assistant.is_active == True)  # noqa: E712
        .order_by(Assistant.created_at.asc())
        .all()
    )
    return user.id, rows


def _all_active_assistants(db: Session) -> dict[Any, dict[str, Any]]:
    rows = (
        db.query(Assistant, User.email)
        .join(User, Assistant.user_id == User.id)
        .filter(Assistant.is_active == True)  # noqa: E712
        .order_by(Assistant.user_id, Assistant.created_at.asc())
        .all()
    )
    by_user: dict[Any, dict[str, Any]] = {}
    for assistant, email in rows:
        bucket = by_user.setdefault(assistant.user_id, {"email": email, "assistants": []})
        bucket["assistants"].append(assistant)
    return by_user


async def sync_assistant_calls(
    db: Session,
    vapi: VapiClient,
    *,
    user_id,
    assistant: Assistant,
    limit: int,
    created_after: Optional[datetime] = None,
    log_prefix: str = "CALL_SYNC",
) -> AssistantSyncResult:
    vapi_id, name = await asyncio.to_thread(_assistant_fields, assistant)
    result = AssistantSyncResult(assistant_id=vapi_id, assistant_name=name)
    logger.info("%s_ASSISTANT name=%r vapi_id=%s", log_prefix, name, vapi_id)

    try:
        calls = await vapi.list_calls(
            assistant_id=vapi_id,
            limit=limit,
            created_at_gt=_iso_z(created_after) if created_after else None,
        )
    except VapiError as e:
        logger.error("%s_LIST_FAILED vapi_id=%s err=%s", log_prefix, vapi_id, e)
        result.error = "Failed to process assistant"
        return result

    result.total_calls = len(calls)
    for call in calls:
        call_id = call.get("id")
        if not call_id:
            logger.warning("%s_CALL_NO_ID vapi_id=%s", log_prefix, vapi_id)
            continue
        try:
            transcript = None
            if call.get("status") == "ended":
                transcript = await vapi.get_call_transcript(call_id)
            await asyncio.to_thread(
                upsert_call, db, user_id=user_id, assistant=assistant, call=call, transcript=transcript
            )
            result.calls_processed += 1
        except Exception:
            await asyncio.to_thread(db.rollback)
            logger.exception("%s_CALL_FAILED call_id=%s", log_prefix, call_id)

    return result


async def sync_user_call_history(
    db: Session,
    vapi: VapiClient,
    user: User,
    *,
    limit: int = cfg.CALL_SYNC_LIMIT,
    created_after: Optional[datetime] = None,
) -> dict[str, Any]:
    user_id, assistants = await asyncio.to_thread(_user_active_assistants, db, user)
    if not assistants:
        return {"message": "No active assistants found", "callsProcessed": 0}

    results = []
    for a in assistants:
        results.append(
            await sync_assistant_calls(db, vapi, user_id=user_id, assistant=a, limit=limit, created_after=created_after)
        )

    total = sum(r.calls_processed for r in results)
    logger.info("CALL_SYNC_DONE user_id=%s assistants=%s calls=%s", user_id, len(results), total)
    return {
        "message": "Call history updated successfully",
        "totalCallsProcessed": total,
        "results": [r.to_dict() for r in results],
        "timestamp": _iso_z(datetime.now(timezone.utc)),
    }


async def sync_all_call_history(
    db: Session,
    vapi: VapiClient,
    *,
    limit: int = cfg.CRON_SYNC_LIMIT,
    lookback_days: int = cfg.CRON_SYNC_LOOKBACK_DAYS,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Scheduled variant: every user's active assistants, calls since now - lookback_days."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=lookback_days)

    by_user = await asyncio.to_thread(_all_active_assistants, db)
    if not by_user:
        return {"message": "No active assistants found", "callsProcessed": 0}

    total = 0
    results = []
    for user_id, bucket in by_user.items():
        user_results = []
        for a in bucket["assistants"]:
            r = await sync_assistant_calls(
                db, vapi, user_id=user_id, assistant=a, limit=limit, created_after=cutoff, log_prefix="CRON_SYNC"
            )
            total += r.calls_processed
            user_results.append(r.to_dict())
        results.append({"userId": str(user_id), "userEmail": bucket["email"] or "Unknown", "assistants": user_results})

    logger.info("CRON_SYNC_DONE calls=%s users=%s", total, len(results))
    return {
        "message": "Call history cron job completed successfully",
        "totalCallsProcessed": total,
        "usersProcessed": len(results),
        "results": results,
        "timestamp": _iso_z(now),
    }
