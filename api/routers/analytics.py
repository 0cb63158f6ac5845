# api/routers/analytics.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from api.deps.current_user import get_current_user
from api.deps.db import get_db
from api.deps.services import get_analytics_cache, get_vapi_client
from core import config as cfg
from core.logging import logger
from models import User
from services.analytics_cache import AnalyticsCache
from services.analytics_service import build_dashboard_analytics, build_recent_analytics
from services.vapi_client import VapiClient, VapiError

# Analytics cannot degrade without Vapi; refuse to start instead.
cfg.require_vapi_api_key()

router = APIRouter(prefix="/analytics", tags=["analytics"])


class AnalyticsQueryIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    group_by: Optional[str] = Field(default=None, alias="groupBy")
    assistant_ids: Optional[list[str]] = Field(default=None, alias="assistantIds")


@router.get("")
async def analytics_recent(
    assistant_ids: Optional[str] = Query(default=None, alias="assistantIds"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    """Last 7 days from the raw call listing. `assistantIds` is comma-separated."""
    ids = [i.strip() for i in (assistant_ids or "").split(",") if i.strip()]
    return await build_recent_analytics(db, user, vapi, assistant_ids=ids)


@router.post("")
async def analytics_query(
    payload: Optional[AnalyticsQueryIn] = Body(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
    cache: AnalyticsCache = Depends(get_analytics_cache),
):
    request = (payload or AnalyticsQueryIn()).model_dump(by_alias=True, exclude_none=True)
    try:
        return await build_dashboard_analytics(db, user, vapi, cache, request)
    except VapiError as e:
        logger.error("ANALYTICS_FALLBACK_LISTING_FAILED user_id=%s err=%s", user.id, e)
        raise HTTPException(status_code=500, detail="Internal server error")
