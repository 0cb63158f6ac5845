# api/routers/assistants.py
from __future__ import annotations

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from api.deps.current_user import get_current_user
from api.deps.db import get_db
from api.deps.services import get_vapi_client
from core.logging import logger
from models import Assistant, User
from services.assistant_service import (
    DuplicateAssistantError,
    assistant_to_dict,
    clean_update_payload,
    create_assistant,
    delete_assistant,
    enrich_with_vapi,
    get_assistant_by_vapi_id,
    list_assistants,
    refresh_from_remote,
)
from services.vapi_client import VapiClient, VapiError

router = APIRouter(prefix="/assistants", tags=["assistants"])


class AssistantCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional here so a missing id is a 400, not a 422
    assistant_id: Optional[str] = Field(default=None, alias="assistantId")
    name: Optional[str] = None
    description: Optional[str] = None


async def _owned_registration(db: Session, user: User, assistant_id: str) -> Assistant:
    # One Vapi key serves every user; only registered ids are reachable
    row = await asyncio.to_thread(get_assistant_by_vapi_id, db, user, assistant_id)
    if row is None:
        logger.info("ASSISTANT_NOT_REGISTERED user_id=%s vapi_id=%s", user.id, assistant_id)
        raise HTTPException(status_code=404, detail="Assistant not found")
    return row


@router.get("")
async def assistants_list(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    rows = await asyncio.to_thread(list_assistants, db, user)
    return {"assistants": await enrich_with_vapi(rows, vapi)}


@router.post("")
async def assistants_create(
    payload: AssistantCreateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    vapi_id = (payload.assistant_id or "").strip()
    if not vapi_id:
        raise HTTPException(status_code=400, detail="Assistant ID is required")

    remote = await vapi.get_assistant(vapi_id)
    if not remote:
        raise HTTPException(
            status_code=404,
            detail="Assistant not found in Vapi. Please check the Assistant ID and try again.",
        )

    try:
        row = await asyncio.to_thread(
            create_assistant,
            db,
            user,
            vapi_assistant_id=vapi_id,
            remote=remote,
            name=payload.name,
            description=payload.description,
        )
    except DuplicateAssistantError:
        raise HTTPException(status_code=409, detail="Assistant already exists")

    return {
        "success": True,
        "assistant": {**assistant_to_dict(row), "vapi_details": remote},
        "message": "Assistant added successfully",
    }


@router.get("/{assistant_id}")
async def assistants_get(
    assistant_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    await _owned_registration(db, user, assistant_id)
    remote = await vapi.get_assistant(assistant_id)
    if not remote:
        raise HTTPException(status_code=404, detail="Assistant not found")
    return {"assistant": remote}


@router.patch("/{assistant_id}")
async def assistants_update(
    assistant_id: str,
    data: dict[str, Any] = Body(default_factory=dict),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    if not vapi.configured:
        raise HTTPException(status_code=500, detail="VAPI_API_KEY not configured")

    await _owned_registration(db, user, assistant_id)

    # Remote first; the local copy is only refreshed from what Vapi returns
    try:
        await vapi.update_assistant(assistant_id, clean_update_payload(data))
    except VapiError as e:
        raise HTTPException(
            status_code=e.status_code or 500,
            detail=f"Failed to update assistant: {e.body or e}",
        )

    updated = await vapi.get_assistant(assistant_id)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to fetch updated assistant data")

    await asyncio.to_thread(refresh_from_remote, db, user, assistant_id, updated)

    return {"success": True, "assistant": updated, "message": "Assistant updated successfully"}


@router.delete("/{assistant_id}")
def assistants_delete(
    assistant_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Local registration only; the Vapi assistant is left alone
    delete_assistant(db, user, assistant_id)
    return {"success": True, "message": "Assistant deleted successfully"}
