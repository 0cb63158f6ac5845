# api/routers/cron.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps.cron_secret import require_cron_secret
from api.deps.db import get_db
from api.deps.services import get_vapi_client
from core import config as cfg
from core.logging import logger
from services.call_sync import sync_all_call_history
from services.vapi_client import VapiClient

cfg.require_vapi_api_key()

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/call-history", dependencies=[Depends(require_cron_secret)])
async def cron_call_history(
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    logger.info("CRON_SYNC_START lookback_days=%s limit=%s", cfg.CRON_SYNC_LOOKBACK_DAYS, cfg.CRON_SYNC_LIMIT)
    return await sync_all_call_history(
        db, vapi, limit=cfg.CRON_SYNC_LIMIT, lookback_days=cfg.CRON_SYNC_LOOKBACK_DAYS
    )


@router.get("/call-history")
async def cron_call_history_liveness():
    return {"message": "Call history cron endpoint is active", "method": "POST"}
