# services/analytics_normalizer.py
"""Normalize Vapi analytics responses into the dashboard's four facets.

Facets: daily, outcomes, hourly, per-assistant.

Every raw response goes through decode_response() first: the known response
shapes are recognised once and each row is decoded through the single
FIELD_ALIASES table. The facet functions only see AnalyticsRow records.

None of the normalize_* functions raise. When a response is missing, failed,
or has no usable rows for a facet, the facet computed locally from raw call
records (compute_fallback) is returned unchanged.

Units: per-assistant avgDuration is minutes, every other duration is seconds.
That mismatch matches what the dashboard already renders; keep it.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

# Platform sentinel for a call the assistant closed normally
SUCCESS_REASON = "assistant-ended-call"

SUCCESS_REASONS = frozenset(
    {
        SUCCESS_REASON,
        "call.ringing.hook-executed-say",
        "call.ringing.hook-executed-transfer",
    }
)
NO_ANSWER_REASON = "no-answer"
BUSY_REASON = "busy"

# 9AM .. 5PM inclusive
BUSINESS_HOURS = tuple(range(9, 18))

# Semantic field -> accepted keys, first non-empty wins.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date", "day", "createdDate", "bucket"),
    "count": ("count", "totalCalls", "calls", "countId"),
    "successful": ("successful", "successfulCalls"),
    "duration": ("avgDuration", "averageDuration", "minutesUsed", "duration"),
    "assistant_id": ("assistantId", "assistant_id", "assistant"),
    "reason": ("endedReason", "reason"),
    "hour": ("hour", "createdHour", "bucket"),
}

AssistantRef = tuple[str, str]  # (vapi assistant id, display name)


# -----------------------------------------------------------------------------
# Numbers
# -----------------------------------------------------------------------------

def to_number(value: Any) -> float:
    """Coerce to float; anything unparsable (or NaN/inf) is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(n) or math.isinf(n):
        return 0.0
    return n


def round_half_up(value: float, ndigits: int = 0) -> float:
    q = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def round_rate(value: float) -> float:
    return round_half_up(value, 2)


def round_int(value: float) -> int:
    return int(round_half_up(value, 0))


def to_count(value: Any) -> int:
    return max(0, round_int(to_number(value)))


def percentage(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round_rate(part / whole * 100)


# -----------------------------------------------------------------------------
# Timestamps / hour labels
# -----------------------------------------------------------------------------

def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string (or datetime) -> aware datetime; naive values are UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_hour(hour: int) -> str:
    if hour == 0:
        return "12AM"
    if hour < 12:
        return f"{hour}AM"
    if hour == 12:
        return "12PM"
    return f"{hour - 12}PM"


def hour_label(value: Any, tz_name: str = "UTC") -> str:
    """Numeric hour, numeric string or ISO timestamp -> '9AM'. Other strings pass through."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        n = float(value)
    else:
        s = str(value).strip()
        if not s:
            return ""
        try:
            n = float(s)
        except ValueError:
            ts = parse_timestamp(s)
            if ts is None:
                return s
            return format_hour(ts.astimezone(ZoneInfo(tz_name)).hour)
    if n.is_integer() and 0 <= n <= 23:
        return format_hour(int(n))
    return str(value)


# -----------------------------------------------------------------------------
# Decode step
# -----------------------------------------------------------------------------

class ShapeKind(str, enum.Enum):
    ROWS = "rows"        # {"rows": [...]}
    DATA = "data"        # {"data": [...]}
    RESULT = "result"    # [{"name": ..., "result": [...]}, ...] or {"result": [...]}
    LIST = "list"        # bare [...]
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AnalyticsRow:
    date: str = ""
    count: int = 0
    successful: int = 0
    has_successful: bool = False
    duration: float = 0.0
    assistant_id: str = ""
    reason: str = ""
    hour: Any = None


@dataclass(frozen=True)
class DecodedResponse:
    kind: ShapeKind
    rows: list[AnalyticsRow] = field(default_factory=list)


def pick(raw: Mapping[str, Any], semantic_field: str) -> Any:
    for key in FIELD_ALIASES[semantic_field]:
        v = raw.get(key)
        if v is not None and v != "":
            return v
    return None


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def decode_row(raw: Mapping[str, Any]) -> AnalyticsRow:
    successful = pick(raw, "successful")
    return AnalyticsRow(
        date=_as_str(pick(raw, "date")),
        count=to_count(pick(raw, "count")),
        successful=to_count(successful),
        has_successful=successful is not None,
        duration=to_number(pick(raw, "duration")),
        assistant_id=_as_str(pick(raw, "assistant_id")),
        reason=_as_str(pick(raw, "reason")),
        hour=pick(raw, "hour"),
    )


def decode_response(raw: Any) -> DecodedResponse:
    kind = ShapeKind.UNKNOWN
    items: list[Any] = []

    if isinstance(raw, dict):
        if isinstance(raw.get("rows"), list):
            kind, items = ShapeKind.ROWS, raw["rows"]
        elif isinstance(raw.get("data"), list):
            kind, items = ShapeKind.DATA, raw["data"]
        elif isinstance(raw.get("result"), list):
            kind, items = ShapeKind.RESULT, raw["result"]
    elif isinstance(raw, list):
        if raw and all(isinstance(q, dict) and isinstance(q.get("result"), list) for q in raw):
            kind = ShapeKind.RESULT
            items = [row for q in raw for row in q["result"]]
        else:
            kind, items = ShapeKind.LIST, raw

    return DecodedResponse(kind=kind, rows=[decode_row(i) for i in items if isinstance(i, dict)])


# -----------------------------------------------------------------------------
# Facets
# -----------------------------------------------------------------------------

def normalize_daily(raw: Any, fallback: list[dict[str, Any]]) -> list[dict[str, Any]]:
    rows = [r for r in decode_response(raw).rows if r.date]
    if not rows:
        return fallback
    out = [
        {
            "date": r.date,
            "calls": r.count,
            "successful": r.successful,
            "duration": round_int(r.duration),
        }
        for r in rows
    ]
    out.sort(key=lambda d: d["date"])
    return out


def bucket_outcomes(reason_counts: Mapping[str, int]) -> dict[str, int]:
    """Map end-reason counts onto the four buckets. Unknown reasons count as failed."""
    out = {"successful": 0, "failed": 0, "noAnswer": 0, "busy": 0}
    for reason, count in reason_counts.items():
        if reason in SUCCESS_REASONS:
            out["successful"] += count
        elif reason == NO_ANSWER_REASON:
            out["noAnswer"] += count
        elif reason == BUSY_REASON:
            out["busy"] += count
        else:
            out["failed"] += count
    return out


def normalize_outcomes(raw: Any, fallback: dict[str, int]) -> dict[str, int]:
    reason_counts: dict[str, int] = {}
    for r in decode_response(raw).rows:
        if not r.reason:
            continue
        reason_counts[r.reason] = reason_counts.get(r.reason, 0) + r.count
    if not reason_counts:
        return fallback
    return bucket_outcomes(reason_counts)


def normalize_hourly(raw: Any, fallback: list[dict[str, Any]], *, tz_name: str = "UTC") -> list[dict[str, Any]]:
    out = []
    for r in decode_response(raw).rows:
        label = hour_label(r.hour, tz_name)
        if not label:
            continue
        out.append({"hour": label, "calls": r.count})
    if not out:
        return fallback
    return out


@dataclass
class _Tally:
    calls: int = 0
    successful: int = 0
    duration_sum: float = 0.0
    duration_count: int = 0


def _performance_entry(assistant_id: str, name: str, tally: _Tally) -> dict[str, Any]:
    avg = tally.duration_sum / tally.duration_count if tally.duration_count else 0.0
    return {
        "assistantId": assistant_id,
        "name": name,
        "calls": tally.calls,
        "successRate": percentage(tally.successful, tally.calls),
        "avgDuration": round_rate(avg),
    }


def normalize_assistant_performance(
    raw: Any,
    assistants: Sequence[AssistantRef],
    fallback: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Always one entry per registered assistant; ids only seen remotely are ignored."""
    totals: dict[str, _Tally] = {}
    for r in decode_response(raw).rows:
        if not r.assistant_id:
            continue
        t = totals.setdefault(r.assistant_id, _Tally())
        t.calls += r.count
        if r.reason in SUCCESS_REASONS:
            t.successful += r.count
        elif r.has_successful:
            t.successful += r.successful
        if r.duration:
            t.duration_sum += r.duration
            t.duration_count += 1

    if not totals:
        return fallback
    return [_performance_entry(vid, name, totals.get(vid) or _Tally()) for vid, name in assistants]


def summarize_daily(daily: Sequence[Mapping[str, Any]]) -> tuple[int, float, int]:
    """(totalCalls, successRate, avgDuration) recomputed from the daily facet."""
    total = sum(int(d.get("calls") or 0) for d in daily)
    successful = sum(int(d.get("successful") or 0) for d in daily)
    avg = round_int(sum(to_number(d.get("duration")) for d in daily) / len(daily)) if daily else 0
    return total, percentage(successful, total), avg


# -----------------------------------------------------------------------------
# Fallback computation over raw Vapi call objects
# -----------------------------------------------------------------------------

def is_successful_call(call: Mapping[str, Any]) -> bool:
    return call.get("status") == "ended" and call.get("endedReason") == SUCCESS_REASON


def call_duration_seconds(call: Mapping[str, Any]) -> Optional[float]:
    raw = call.get("duration")
    if raw is not None and not isinstance(raw, bool):
        try:
            return float(raw)
        except (TypeError, ValueError):
            pass
    started = parse_timestamp(call.get("startedAt"))
    ended = parse_timestamp(call.get("endedAt"))
    if started and ended and ended >= started:
        return (ended - started).total_seconds()
    return None


def _mean(values: Iterable[float]) -> float:
    vals = list(values)
    return sum(vals) / len(vals) if vals else 0.0


def _durations(calls: Iterable[Mapping[str, Any]]) -> list[float]:
    return [d for d in (call_duration_seconds(c) for c in calls) if d is not None]


@dataclass
class FallbackAnalytics:
    total_calls: int
    success_rate: float
    avg_duration: int
    daily: list[dict[str, Any]]
    outcomes: dict[str, int]
    hourly: list[dict[str, Any]]
    assistant_performance: list[dict[str, Any]]

    def analytics_dict(self) -> dict[str, Any]:
        return {
            "totalCalls": self.total_calls,
            "successRate": self.success_rate,
            "avgDuration": self.avg_duration,
            "dailyData": self.daily,
            "outcomes": self.outcomes,
            "hourlyData": self.hourly,
        }


def compute_fallback(
    calls: Sequence[Mapping[str, Any]],
    assistants: Sequence[AssistantRef],
    *,
    tz_name: str = "UTC",
) -> FallbackAnalytics:
    tz = ZoneInfo(tz_name)

    by_date: dict[str, list[Mapping[str, Any]]] = {}
    hour_counts: dict[int, int] = {}
    for c in calls:
        ts = parse_timestamp(c.get("createdAt"))
        if ts is None:
            continue
        local = ts.astimezone(tz)
        by_date.setdefault(local.date().isoformat(), []).append(c)
        hour_counts[local.hour] = hour_counts.get(local.hour, 0) + 1

    daily = [
        {
            "date": day,
            "calls": len(day_calls),
            "successful": sum(1 for c in day_calls if is_successful_call(c)),
            "duration": round_int(_mean(_durations(day_calls))),
        }
        for day, day_calls in sorted(by_date.items())
    ]

    ended_reasons: dict[str, int] = {}
    for c in calls:
        if c.get("status") != "ended":
            continue
        reason = _as_str(c.get("endedReason"))
        ended_reasons[reason] = ended_reasons.get(reason, 0) + 1
    outcomes = {
        "successful": sum(1 for c in calls if is_successful_call(c)),
        "noAnswer": ended_reasons.get(NO_ANSWER_REASON, 0),
        "busy": ended_reasons.get(BUSY_REASON, 0),
    }
    outcomes["failed"] = sum(ended_reasons.values()) - outcomes["successful"] - outcomes["noAnswer"] - outcomes["busy"]
    outcomes = {k: outcomes[k] for k in ("successful", "failed", "noAnswer", "busy")}

    hourly = [{"hour": format_hour(h), "calls": hour_counts.get(h, 0)} for h in BUSINESS_HOURS]

    performance = []
    for vid, name in assistants:
        mine = [c for c in calls if c.get("assistantId") == vid]
        durations = _durations(mine)
        performance.append(
            {
                "assistantId": vid,
                "name": name,
                "calls": len(mine),
                "successRate": percentage(sum(1 for c in mine if is_successful_call(c)), len(mine)),
                # minutes here, seconds everywhere else
                "avgDuration": round_rate(_mean(durations) / 60) if durations else 0.0,
            }
        )

    total = len(calls)
    return FallbackAnalytics(
        total_calls=total,
        success_rate=percentage(sum(1 for c in calls if is_successful_call(c)), total),
        avg_duration=round_int(_mean(_durations(calls))),
        daily=daily,
        outcomes=outcomes,
        hourly=hourly,
        assistant_performance=performance,
    )
