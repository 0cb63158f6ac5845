# api/routers/health.py
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from api.deps.services import get_vapi_client
from services.vapi_client import VapiClient, VapiError

router = APIRouter(tags=["health"])

@router.get("/")
async def root():
    return PlainTextResponse("OK")

@router.get("/health")
async def health():
    return {"status": "ok"}

@router.get("/health/vapi")
async def health_vapi(vapi: VapiClient = Depends(get_vapi_client)):
    """Connectivity check against Vapi with the configured key."""
    if not vapi.configured:
        return {"hasKey": False, "error": "VAPI_API_KEY not found in environment variables"}
    try:
        assistants = await vapi.list_assistants()
    except VapiError as e:
        return {"hasKey": True, "error": str(e), "status": e.status_code}
    return {
        "hasKey": True,
        "success": True,
        "message": "Vapi API connection successful",
        "assistantsCount": len(assistants),
    }
