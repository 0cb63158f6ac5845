# services/analytics_service.py
"""Dashboard analytics: cached POST query and the uncached last-7-days view.

POST flow (build_dashboard_analytics):
  1) cache hit (same user + structurally equal body, within TTL) -> stored payload, cached=True
  2) miss -> four grouped Vapi analytics queries (background task) + the raw call listing,
     one page per effective assistant id so other tenants never crowd the page
     - each grouped query may fail on its own; failures only mean "use fallback"
     - a failed call listing is NOT swallowed; the pending grouped queries are cancelled
  3) normalize per facet, recompute the headline numbers from the final daily facet,
     cache, return
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Iterable, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from core import config as cfg
from core.logging import logger
from models import User
from services.analytics_cache import AnalyticsCache
from services.analytics_normalizer import (
    compute_fallback,
    normalize_assistant_performance,
    normalize_daily,
    normalize_hourly,
    normalize_outcomes,
    parse_timestamp,
    summarize_daily,
)
from services.assistant_service import assistant_refs, list_assistants
from services.vapi_client import VapiClient, VapiError

# facet -> Vapi groupBy field
GROUPINGS: tuple[tuple[str, str], ...] = (
    ("daily", "createdAt"),
    ("outcomes", "endedReason"),
    ("hourly", "hour"),
    ("perAssistant", "assistantId"),
)


@dataclass
class QueryOutcome:
    ok: bool
    value: Any = None
    error: Optional[str] = None


async def _settle(label: str, awaitable: Awaitable[Any]) -> QueryOutcome:
    try:
        value = await awaitable
    except Exception as e:
        logger.warning("VAPI_ANALYTICS_QUERY_FAILED group=%s err=%s", label, e)
        return QueryOutcome(ok=False, error=str(e))
    return QueryOutcome(ok=True, value=value)


async def run_grouped_queries(vapi: VapiClient, base_query: Mapping[str, Any]) -> dict[str, QueryOutcome]:
    """Fan out one analytics query per grouping. Never raises."""
    results = await asyncio.gather(
        *(_settle(facet, vapi.query_analytics({**base_query, "groupBy": [group]})) for facet, group in GROUPINGS)
    )
    return {facet: res for (facet, _), res in zip(GROUPINGS, results)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_bound(value: Optional[str], *, is_end: bool) -> Optional[datetime]:
    ts = parse_timestamp(value)
    if ts is None:
        return None
    # A bare date as the end bound means "through the end of that day"
    if is_end and isinstance(value, str) and len(value.strip()) == 10:
        ts = ts + timedelta(days=1)
    return ts


def filter_calls(
    calls: Iterable[Mapping[str, Any]],
    assistant_ids: Sequence[str],
    start: Optional[datetime],
    end: Optional[datetime],
) -> list[Mapping[str, Any]]:
    allowed = set(assistant_ids)
    out = []
    for c in calls:
        if c.get("assistantId") not in allowed:
            continue
        ts = parse_timestamp(c.get("createdAt"))
        if ts is None:
            continue
        if start is not None and ts < start:
            continue
        if end is not None and ts >= end:
            continue
        out.append(c)
    return out


async def list_calls_for(
    vapi: VapiClient,
    assistant_ids: Sequence[str],
    *,
    created_at_gt: Optional[str] = None,
    created_at_lt: Optional[str] = None,
) -> list[dict[str, Any]]:
    """One listing per assistant id, concurrently. Raises the first VapiError."""
    limit = cfg.ANALYTICS_CALL_LIMIT
    pages = await asyncio.gather(
        *(
            vapi.list_calls(assistant_id=aid, limit=limit, created_at_gt=created_at_gt, created_at_lt=created_at_lt)
            for aid in assistant_ids
        )
    )
    calls: list[dict[str, Any]] = []
    for aid, page in zip(assistant_ids, pages):
        if len(page) >= limit:
            logger.warning("ANALYTICS_CALL_PAGE_FULL vapi_id=%s limit=%s", aid, limit)
        calls.extend(page)
    return calls


def _effective_ids(requested: Iterable[Any], user_ids: Sequence[str]) -> list[str]:
    """Requested ids restricted to the caller's own; all of the caller's if none requested."""
    req = [str(i).strip() for i in (requested or []) if str(i).strip()]
    if not req:
        return list(user_ids)
    owned = set(user_ids)
    return [i for i in req if i in owned]


async def build_dashboard_analytics(
    db: Session,
    user: User,
    vapi: VapiClient,
    cache: AnalyticsCache,
    request: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    key = cache.make_key(str(user.id), dict(request))
    hit = cache.get(key)
    if hit is not None:
        logger.info("ANALYTICS_CACHE_HIT user_id=%s", user.id)
        return {**hit, "cached": True}

    now = now or _utcnow()
    registrations = await asyncio.to_thread(list_assistants, db, user, active_only=True)
    refs = assistant_refs(registrations)
    effective = _effective_ids(request.get("assistantIds") or [], [vid for vid, _ in refs])

    start_raw = request.get("startDate")
    end_raw = request.get("endDate")

    base_query: dict[str, Any] = {}
    if start_raw:
        base_query["startDate"] = start_raw
    if end_raw:
        base_query["endDate"] = end_raw
    if effective:
        base_query["assistantIds"] = effective

    window_start = _parse_bound(start_raw, is_end=False) or (now - timedelta(days=cfg.ANALYTICS_LOOKBACK_DAYS))
    window_end = _parse_bound(end_raw, is_end=True) or now

    logger.info(
        "ANALYTICS_QUERY user_id=%s assistants=%s start=%s end=%s",
        user.id,
        len(effective),
        _iso_z(window_start),
        _iso_z(window_end),
    )

    async def _grouped() -> dict[str, QueryOutcome]:
        if not effective:
            # Without an id filter Vapi would answer for the whole org
            return {facet: QueryOutcome(ok=False, error="no assistants") for facet, _ in GROUPINGS}
        return await run_grouped_queries(vapi, base_query)

    grouped_task = asyncio.ensure_future(_grouped())
    try:
        calls = await list_calls_for(
            vapi,
            effective,
            created_at_gt=_iso_z(window_start),
            created_at_lt=_iso_z(window_end),
        )
    except Exception:
        grouped_task.cancel()
        raise
    grouped = await grouped_task

    calls = filter_calls(calls, effective, window_start, window_end)
    fallback = compute_fallback(calls, refs, tz_name=cfg.ANALYTICS_TIMEZONE)

    raw = {facet: (res.value if res.ok else None) for facet, res in grouped.items()}

    daily = normalize_daily(raw["daily"], fallback.daily)
    outcomes = normalize_outcomes(raw["outcomes"], fallback.outcomes)
    hourly = normalize_hourly(raw["hourly"], fallback.hourly, tz_name=cfg.ANALYTICS_TIMEZONE)
    performance = normalize_assistant_performance(raw["perAssistant"], refs, fallback.assistant_performance)

    # Headline numbers always agree with the daily breakdown
    total_calls, success_rate, avg_duration = summarize_daily(daily)

    payload = {
        "analytics": {
            "totalCalls": total_calls,
            "successRate": success_rate,
            "avgDuration": avg_duration,
            "dailyData": daily,
            "outcomes": outcomes,
            "hourlyData": hourly,
        },
        "assistantPerformance": performance,
        "totalAssistants": len(registrations),
        "lastUpdated": _iso_z(now),
        "vapiAnalytics": raw,
    }
    cache.set(key, payload)
    return {**payload, "cached": False}


async def build_recent_analytics(
    db: Session,
    user: User,
    vapi: VapiClient,
    *,
    assistant_ids: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Last N days computed straight from the raw call listing. No cache, no grouped queries."""
    now = now or _utcnow()
    since = now - timedelta(days=cfg.ANALYTICS_LOOKBACK_DAYS)

    registrations = await asyncio.to_thread(list_assistants, db, user)
    effective = _effective_ids(assistant_ids or [], [r.vapi_assistant_id for r in registrations])

    try:
        calls = await list_calls_for(vapi, effective, created_at_gt=_iso_z(since))
    except VapiError as e:
        logger.error("ANALYTICS_RECENT_CALLS_FAILED user_id=%s err=%s", user.id, e)
        calls = []

    calls = filter_calls(calls, effective, since, None)
    wanted = set(effective)
    refs = [ref for ref in assistant_refs(registrations) if ref[0] in wanted]
    fallback = compute_fallback(calls, refs, tz_name=cfg.ANALYTICS_TIMEZONE)

    return {
        "analytics": fallback.analytics_dict(),
        "assistantPerformance": fallback.assistant_performance,
        "totalAssistants": len(registrations),
        "lastUpdated": _iso_z(now),
    }
