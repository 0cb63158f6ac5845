# services/call_history_service.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session, joinedload

from models import Assistant, CallHistory, User, utcnow_naive
from services.analytics_normalizer import (
    SUCCESS_REASON,
    call_duration_seconds,
    parse_timestamp,
    percentage,
    to_number,
)


def _phone_number(call: dict[str, Any]) -> Optional[str]:
    pn = call.get("phoneNumber")
    if isinstance(pn, dict):
        pn = pn.get("number")
    if not pn:
        customer = call.get("customer")
        if isinstance(customer, dict):
            pn = customer.get("number")
    return str(pn) if pn else None


def _created_at(call: dict[str, Any]) -> datetime:
    ts = parse_timestamp(call.get("createdAt"))
    if ts is None:
        return utcnow_naive()
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def upsert_call(
    db: Session,
    *,
    user_id,
    assistant: Assistant,
    call: dict[str, Any],
    transcript: Optional[str] = None,
) -> CallHistory:
    """Insert or update one call row keyed by (user_id, vapi_call_id). Commits."""
    vapi_call_id = str(call.get("id") or "").strip()
    if not vapi_call_id:
        raise ValueError("call has no id")

    cost = call.get("cost")
    metadata = call.get("metadata") if isinstance(call.get("metadata"), dict) else None
    values = {
        "assistant_id": assistant.id,
        "assistant_name": assistant.name,
        "status": call.get("status"),
        "ended_reason": call.get("endedReason"),
        "duration": call_duration_seconds(call),
        "cost": to_number(cost) if cost is not None else None,
        "phone_number": _phone_number(call),
        "metadata_json": metadata,
        "created_at": _created_at(call),
        "updated_at": utcnow_naive(),
    }

    row = (
        db.query(CallHistory)
        .filter(CallHistory.user_id == user_id, CallHistory.vapi_call_id == vapi_call_id)
        .first()
    )
    if row is None:
        row = CallHistory(user_id=user_id, vapi_call_id=vapi_call_id, transcript=transcript, **values)
        db.add(row)
    else:
        for k, v in values.items():
            setattr(row, k, v)
        # Keep an earlier transcript if this pass could not fetch one
        if transcript:
            row.transcript = transcript

    db.commit()
    return row


def _assistant_filter(q, assistant_id: Optional[str]):
    if not assistant_id:
        return q
    try:
        return q.filter(CallHistory.assistant_id == uuid.UUID(str(assistant_id)))
    except ValueError:
        # Not a registration id; treat as a Vapi assistant id
        return q.join(Assistant, CallHistory.assistant_id == Assistant.id).filter(
            Assistant.vapi_assistant_id == assistant_id
        )


def call_to_dict(row: CallHistory) -> dict[str, Any]:
    a = row.assistant
    return {
        "id": str(row.id),
        "user_id": str(row.user_id),
        "assistant_id": str(row.assistant_id) if row.assistant_id else None,
        "vapi_call_id": row.vapi_call_id,
        "assistant_name": row.assistant_name,
        "status": row.status,
        "ended_reason": row.ended_reason,
        "duration": row.duration,
        "cost": row.cost,
        "phone_number": row.phone_number,
        "transcript": row.transcript,
        "metadata": row.metadata_json,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
        "assistants": (
            {"name": a.name, "description": a.description, "model": a.model, "voice": a.voice}
            if a is not None
            else None
        ),
    }


def list_call_history(
    db: Session,
    user: User,
    *,
    limit: int = 50,
    offset: int = 0,
    assistant_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[CallHistory]:
    q = db.query(CallHistory).options(joinedload(CallHistory.assistant)).filter(CallHistory.user_id == user.id)
    q = _assistant_filter(q, assistant_id)
    if status:
        q = q.filter(CallHistory.status == status)
    return q.order_by(CallHistory.created_at.desc()).offset(offset).limit(limit).all()


def call_history_stats(db: Session, user: User, *, assistant_id: Optional[str] = None) -> dict[str, Any]:
    q = db.query(CallHistory.status, CallHistory.duration, CallHistory.cost, CallHistory.ended_reason).filter(
        CallHistory.user_id == user.id
    )
    q = _assistant_filter(q, assistant_id)
    rows = q.all()

    total = len(rows)
    successful = sum(1 for r in rows if r.status == "ended" and r.ended_reason == SUCCESS_REASON)
    return {
        "totalCalls": total,
        "totalDuration": sum(r.duration or 0 for r in rows),
        "totalCost": sum(r.cost or 0 for r in rows),
        "successRate": percentage(successful, total),
    }
