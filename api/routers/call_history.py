# api/routers/call_history.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps.current_user import get_current_user
from api.deps.db import get_db
from api.deps.services import get_vapi_client
from core import config as cfg
from models import User
from services.call_history_service import call_history_stats, call_to_dict, list_call_history
from services.call_sync import sync_user_call_history
from services.vapi_client import VapiClient

cfg.require_vapi_api_key()

router = APIRouter(prefix="/call-history", tags=["call-history"])


@router.get("")
def call_history_list(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    assistant_id: Optional[str] = Query(default=None, alias="assistantId"),
    status: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = list_call_history(db, user, limit=limit, offset=offset, assistant_id=assistant_id, status=status)
    return {
        "calls": [call_to_dict(r) for r in rows],
        "stats": call_history_stats(db, user, assistant_id=assistant_id),
        "pagination": {"limit": limit, "offset": offset, "hasMore": len(rows) == limit},
    }


@router.post("")
async def call_history_sync(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    return await sync_user_call_history(db, vapi, user, limit=cfg.CALL_SYNC_LIMIT)
