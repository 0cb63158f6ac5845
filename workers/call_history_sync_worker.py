"""Standalone loop that runs the scheduled call-history sync.

Alternative to POST /cron/call-history for deployments without an HTTP scheduler.
Public interfaces: main(), tick().
Reads/Writes: assistants, users, call_history.
Failure mode: a failed tick is logged and retried after CALL_SYNC_POLL_S.
"""

# workers/call_history_sync_worker.py
from __future__ import annotations

import asyncio
import time

from sqlalchemy.orm import Session

from core import config as cfg
from core.logging import logger
from db import Base, SessionLocal, engine
from services.call_sync import sync_all_call_history
from services.vapi_client import VapiClient, get_default_vapi_client


def tick(db: Session, vapi: VapiClient | None = None) -> int:
    """One sync pass over every active assistant. Returns calls processed."""
    vapi = vapi or get_default_vapi_client()
    result = asyncio.run(
        sync_all_call_history(
            db,
            vapi,
            limit=cfg.CRON_SYNC_LIMIT,
            lookback_days=cfg.CRON_SYNC_LOOKBACK_DAYS,
        )
    )
    return int(result.get("totalCallsProcessed") or 0)


def main() -> None:
    cfg.require_vapi_api_key()
    logger.info(
        "CALL_SYNC_WORKER_START poll_s=%s limit=%s lookback_days=%s",
        cfg.CALL_SYNC_POLL_S,
        cfg.CRON_SYNC_LIMIT,
        cfg.CRON_SYNC_LOOKBACK_DAYS,
    )
    Base.metadata.create_all(bind=engine)

    while True:
        try:
            with SessionLocal() as db:
                n = tick(db)
            logger.info("CALL_SYNC_WORKER_TICK processed=%s", n)
        except Exception as e:
            logger.exception("CALL_SYNC_WORKER_TICK_FAIL err=%s", e)

        time.sleep(cfg.CALL_SYNC_POLL_S)


if __name__ == "__main__":
    main()
