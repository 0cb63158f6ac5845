# services/assistant_service.py
"""Assistant registrations: a user's local records pointing at Vapi assistant ids.

Remote is the source of truth for configuration. The local row keeps display
copies (model, voice, first message, metadata) taken at registration time and
refreshed after every edit made through this service. Deleting a registration
never touches the remote assistant.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.logging import logger
from models import Assistant, User, utcnow_naive
from services.analytics_normalizer import AssistantRef
from services.vapi_client import VapiClient

MIN_MAX_DURATION_SECONDS = 10


class DuplicateAssistantError(Exception):
    pass


def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def assistant_to_dict(row: Assistant) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "user_id": str(row.user_id),
        "vapi_assistant_id": row.vapi_assistant_id,
        "name": row.name,
        "description": row.description,
        "model": row.model,
        "voice": row.voice,
        "first_message": row.first_message,
        "metadata": row.metadata_json,
        "is_active": bool(row.is_active),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def remote_display_fields(remote: dict[str, Any]) -> dict[str, Any]:
    """Pick the remote config fields we keep a local copy of."""
    model = remote.get("model") if isinstance(remote.get("model"), dict) else {}
    voice = remote.get("voice") if isinstance(remote.get("voice"), dict) else {}
    return {
        "model": model.get("model") or None,
        # Vapi returns voiceId, not voice_id
        "voice": voice.get("voiceId") or None,
        "first_message": remote.get("firstMessage") or None,
        "metadata_json": remote.get("metadata") or None,
    }


def list_assistants(db: Session, user: User, *, active_only: bool = False) -> list[Assistant]:
    q = db.query(Assistant).filter(Assistant.user_id == user.id)
    if active_only:
        q = q.filter(Assistant.is_active == True)  # noqa: E712
    return q.order_by(Assistant.created_at.desc()).all()


def assistant_refs(rows: list[Assistant]) -> list[AssistantRef]:
    return [(r.vapi_assistant_id, r.name) for r in rows if r.vapi_assistant_id]


def get_assistant_by_vapi_id(db: Session, user: User, vapi_assistant_id: str) -> Optional[Assistant]:
    return (
        db.query(Assistant)
        .filter(Assistant.user_id == user.id, Assistant.vapi_assistant_id == vapi_assistant_id)
        .first()
    )


def create_assistant(
    db: Session,
    user: User,
    *,
    vapi_assistant_id: str,
    remote: dict[str, Any],
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Assistant:
    if get_assistant_by_vapi_id(db, user, vapi_assistant_id):
        raise DuplicateAssistantError(vapi_assistant_id)

    now = utcnow_naive()
    row = Assistant(
        user_id=user.id,
        vapi_assistant_id=vapi_assistant_id,
        name=(name or "").strip() or remote.get("name") or f"Assistant {vapi_assistant_id}",
        description=(description or "").strip() or remote.get("firstMessage") or None,
        is_active=True,
        created_at=now,
        updated_at=now,
        **remote_display_fields(remote),
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same id
        db.rollback()
        raise DuplicateAssistantError(vapi_assistant_id) from e
    db.refresh(row)
    logger.info("ASSISTANT_REGISTERED user_id=%s vapi_id=%s name=%r", user.id, vapi_assistant_id, row.name)
    return row


def refresh_from_remote(db: Session, user: User, vapi_assistant_id: str, remote: dict[str, Any]) -> Optional[Assistant]:
    """Overwrite the local display copy after a remote edit. No-op if not registered."""
    row = get_assistant_by_vapi_id(db, user, vapi_assistant_id)
    if row is None:
        return None
    for key, value in remote_display_fields(remote).items():
        setattr(row, key, value)
    if remote.get("name"):
        row.name = remote["name"]
    row.updated_at = utcnow_naive()
    db.commit()
    db.refresh(row)
    return row


def delete_assistant(db: Session, user: User, vapi_assistant_id: str) -> bool:
    n = (
        db.query(Assistant)
        .filter(Assistant.user_id == user.id, Assistant.vapi_assistant_id == vapi_assistant_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("ASSISTANT_DELETED user_id=%s vapi_id=%s rows=%s", user.id, vapi_assistant_id, n)
    return n > 0


def clean_update_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Body of a PATCH as Vapi accepts it: no id, maxDurationSeconds >= 10."""
    clean = dict(data or {})
    clean.pop("id", None)
    mds = clean.get("maxDurationSeconds")
    if isinstance(mds, (int, float)) and not isinstance(mds, bool) and mds < MIN_MAX_DURATION_SECONDS:
        clean["maxDurationSeconds"] = MIN_MAX_DURATION_SECONDS
    return clean


async def enrich_with_vapi(rows: list[Assistant], vapi: VapiClient) -> list[dict[str, Any]]:
    details = await asyncio.gather(*(vapi.get_assistant(r.vapi_assistant_id) for r in rows))
    out = []
    for row, remote in zip(rows, details):
        d = assistant_to_dict(row)
        d["vapi_details"] = remote
        d["has_vapi_data"] = bool(remote)
        out.append(d)
    return out
