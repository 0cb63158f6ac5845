# services/vapi_client.py
"""Thin async client for the Vapi REST API.

Only the endpoints the dashboard needs: assistant lookup/update, call listing,
transcripts and the analytics query. Each call opens its own AsyncClient with
an explicit timeout (Vapi itself enforces none).

Failure conventions:
- get_assistant / get_call_transcript never raise; they return None.
- everything else raises VapiError (carrying the upstream status when there is one).
"""

from __future__ import annotations

import os
import time
from typing import Any, Optional

import httpx

from core import config as cfg
from core.logging import logger

VAPI_LOG_DETAILS = os.getenv("VAPI_LOG_DETAILS", "0") == "1"


class VapiError(Exception):
    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class VapiClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = cfg.VAPI_BASE_URL,
        timeout_s: float = cfg.VAPI_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_s = timeout_s
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        if not self.configured:
            raise VapiError("VAPI_API_KEY is not configured")

        url = f"{self.base_url}{path}"
        t0 = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.request(method, url, params=params, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("VAPI_HTTP_ERROR method=%s path=%s err=%s", method, path, e)
            raise VapiError(f"Vapi request failed: {e}") from e

        if VAPI_LOG_DETAILS:
            dt_ms = int((time.perf_counter() - t0) * 1000)
            logger.info("VAPI_HTTP method=%s path=%s status=%s dt_ms=%s", method, path, resp.status_code, dt_ms)

        if resp.status_code >= 400:
            body = resp.text[:2000]
            logger.error("VAPI_HTTP_FAILED method=%s path=%s status=%s body=%s", method, path, resp.status_code, body)
            raise VapiError(
                f"Vapi API error {resp.status_code}: {body or resp.reason_phrase}",
                status_code=resp.status_code,
                body=body,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise VapiError(f"Vapi returned non-JSON body for {path}", status_code=resp.status_code) from e

    # ------------------------------------------------------------------
    # Assistants
    # ------------------------------------------------------------------

    async def get_assistant(self, assistant_id: str) -> Optional[dict[str, Any]]:
        """Assistant lookup helper. Soft-disabled (None + warning) without an API key."""
        if not self.configured:
            logger.warning("VAPI_API_KEY is not set, cannot fetch assistant id=%s", assistant_id)
            return None
        assistant_id = (assistant_id or "").strip()
        if not assistant_id:
            return None
        try:
            data = await self._request("GET", f"/assistant/{assistant_id}")
        except VapiError as e:
            logger.warning("VAPI_ASSISTANT_LOOKUP_FAILED id=%s status=%s", assistant_id, e.status_code)
            return None
        if not isinstance(data, dict):
            return None
        return data

    async def list_assistants(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/assistant")
        return _as_list(data, "assistants")

    async def update_assistant(self, assistant_id: str, data: dict[str, Any]) -> Any:
        return await self._request("PATCH", f"/assistant/{assistant_id}", json=data)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def list_calls(
        self,
        *,
        assistant_id: Optional[str] = None,
        limit: int = 100,
        created_at_gt: Optional[str] = None,
        created_at_lt: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": int(limit)}
        if assistant_id:
            params["assistantId"] = assistant_id
        if created_at_gt:
            params["createdAtGt"] = created_at_gt
        if created_at_lt:
            params["createdAtLt"] = created_at_lt
        data = await self._request("GET", "/call", params=params)
        return _as_list(data, "calls")

    async def get_call_transcript(self, call_id: str) -> Optional[str]:
        try:
            data = await self._request("GET", f"/call/{call_id}/transcript")
        except VapiError:
            return None
        if isinstance(data, dict):
            return data.get("transcript") or None
        return None

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    async def query_analytics(self, query: dict[str, Any]) -> Any:
        return await self._request("POST", "/analytics", json=query)


def _as_list(data: Any, key: str) -> list[dict[str, Any]]:
    # Vapi returns bare arrays; older/proxied shapes wrap them as {key: [...]}
    if isinstance(data, list):
        rows = data
    elif isinstance(data, dict):
        rows = data.get(key) or []
    else:
        rows = []
    return [r for r in rows if isinstance(r, dict)]


def get_default_vapi_client() -> VapiClient:
    return VapiClient(cfg.VAPI_API_KEY)
