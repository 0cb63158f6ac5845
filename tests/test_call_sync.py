"""Tests for pulling Vapi calls into call_history."""

import threading
from datetime import datetime, timezone

import pytest

from models import CallHistory
from services.call_history_service import call_history_stats, list_call_history, upsert_call
import services.call_sync as call_sync
from services.call_sync import sync_all_call_history, sync_assistant_calls, sync_user_call_history

from conftest import FakeVapiClient

CALLS = [
    {
        "id": "call-1",
        "assistantId": "asst-1",
        "createdAt": "2024-01-02T10:15:00Z",
        "status": "ended",
        "endedReason": "assistant-ended-call",
        "duration": 65,
        "cost": 0.12,
        "customer": {"number": "+15550001111"},
    },
    {
        "id": "call-2",
        "assistantId": "asst-1",
        "createdAt": "2024-01-02T11:00:00Z",
        "status": "in-progress",
        "phoneNumber": {"number": "+15550002222"},
    },
    {
        "id": "call-3",
        "assistantId": "asst-2",
        "createdAt": "2024-01-03T09:30:00Z",
        "status": "ended",
        "endedReason": "customer-ended-call",
        "startedAt": "2024-01-03T09:30:00Z",
        "endedAt": "2024-01-03T09:31:30Z",
    },
]


@pytest.fixture
def registered(user, make_assistant):
    a1 = make_assistant(user, "asst-1", "Front Desk")
    a2 = make_assistant(user, "asst-2", "Sales")
    return user, a1, a2


@pytest.mark.asyncio
async def test_sync_is_idempotent(db, registered):
    user, _, _ = registered
    vapi = FakeVapiClient(calls=CALLS, transcripts={"call-1": "Hi", "call-3": "Bye"})

    first = await sync_user_call_history(db, vapi, user)
    second = await sync_user_call_history(db, vapi, user)

    assert first["totalCallsProcessed"] == 3
    assert second["totalCallsProcessed"] == 3
    assert db.query(CallHistory).count() == 3


@pytest.mark.asyncio
async def test_transcripts_only_for_ended_calls(db, registered):
    user, _, _ = registered
    vapi = FakeVapiClient(calls=CALLS, transcripts={"call-1": "Hi", "call-3": "Bye"})

    await sync_user_call_history(db, vapi, user)

    assert sorted(vapi.transcript_requests) == ["call-1", "call-3"]
    rows = {r.vapi_call_id: r for r in db.query(CallHistory).all()}
    assert rows["call-1"].transcript == "Hi"
    assert rows["call-2"].transcript is None
    assert rows["call-1"].phone_number == "+15550001111"
    assert rows["call-2"].phone_number == "+15550002222"
    assert rows["call-3"].duration == 90.0
    assert rows["call-1"].assistant_name == "Front Desk"


@pytest.mark.asyncio
async def test_bad_call_is_skipped(db, registered):
    user, a1, _ = registered
    calls = [{"assistantId": "asst-1", "status": "queued"}, CALLS[0]]
    vapi = FakeVapiClient(calls=calls)

    result = await sync_assistant_calls(db, vapi, user_id=user.id, assistant=a1, limit=10)

    assert result.total_calls == 2
    assert result.calls_processed == 1
    assert db.query(CallHistory).count() == 1


@pytest.mark.asyncio
async def test_ended_call_without_id_fetches_no_transcript(db, registered):
    user, a1, _ = registered
    calls = [{"assistantId": "asst-1", "status": "ended", "endedReason": "no-answer"}, CALLS[0]]
    vapi = FakeVapiClient(calls=calls, transcripts={"call-1": "Hi"})

    result = await sync_assistant_calls(db, vapi, user_id=user.id, assistant=a1, limit=10)

    assert vapi.transcript_requests == ["call-1"]
    assert result.calls_processed == 1
    assert db.query(CallHistory).count() == 1


@pytest.mark.asyncio
async def test_database_writes_run_off_the_event_loop(db, registered, monkeypatch):
    user, _, _ = registered
    loop_thread = threading.get_ident()
    write_threads = []

    def recording_upsert(*args, **kwargs):
        write_threads.append(threading.get_ident())
        return upsert_call(*args, **kwargs)

    monkeypatch.setattr(call_sync, "upsert_call", recording_upsert)

    out = await sync_user_call_history(db, FakeVapiClient(calls=CALLS), user)

    assert out["totalCallsProcessed"] == 3
    assert len(write_threads) == 3
    assert loop_thread not in write_threads

@pytest.mark.asyncio
async def test_listing_failure_marks_only_that_assistant(db, registered):
    user, _, _ = registered
    vapi = FakeVapiClient(calls=CALLS)
    vapi.list_calls_fail_for = {"asst-1"}

    out = await sync_user_call_history(db, vapi, user)

    by_id = {r["assistantId"]: r for r in out["results"]}
    assert by_id["asst-1"] == {
        "assistantId": "asst-1",
        "assistantName": "Front Desk",
        "error": "Failed to process assistant",
    }
    assert by_id["asst-2"]["callsProcessed"] == 1
    assert out["totalCallsProcessed"] == 1


@pytest.mark.asyncio
async def test_no_active_assistants(db, user, make_assistant):
    make_assistant(user, "asst-1", "Paused", is_active=False)

    out = await sync_user_call_history(db, FakeVapiClient(calls=CALLS), user)

    assert out == {"message": "No active assistants found", "callsProcessed": 0}


@pytest.mark.asyncio
async def test_scheduled_sync_groups_by_user(db, registered, make_user, make_assistant):
    other = make_user("other@example.com")
    make_assistant(other, "asst-9", "Night Line")
    calls = CALLS + [
        {"id": "call-9", "assistantId": "asst-9", "createdAt": "2024-01-02T23:00:00Z", "status": "queued"}
    ]
    vapi = FakeVapiClient(calls=calls)
    now = datetime(2024, 1, 8, 0, 0, tzinfo=timezone.utc)

    out = await sync_all_call_history(db, vapi, limit=500, lookback_days=7, now=now)

    assert out["totalCallsProcessed"] == 4
    assert out["usersProcessed"] == 2
    emails = sorted(r["userEmail"] for r in out["results"])
    assert emails == ["other@example.com", "owner@example.com"]
    assert {r["created_at_gt"] for r in vapi.list_calls_requests} == {"2024-01-01T00:00:00Z"}
    assert {r["limit"] for r in vapi.list_calls_requests} == {500}


def test_upsert_keeps_earlier_transcript(db, registered):
    user, a1, _ = registered
    upsert_call(db, user_id=user.id, assistant=a1, call=CALLS[0], transcript="first pass")
    upsert_call(db, user_id=user.id, assistant=a1, call={**CALLS[0], "cost": 0.5}, transcript=None)

    row = db.query(CallHistory).one()
    assert row.transcript == "first pass"
    assert row.cost == 0.5


def test_listing_filters_and_stats(db, registered):
    user, a1, a2 = registered
    for call in CALLS:
        owner = a1 if call["assistantId"] == "asst-1" else a2
        upsert_call(db, user_id=user.id, assistant=owner, call=call)

    rows = list_call_history(db, user, limit=10)
    assert [r.vapi_call_id for r in rows] == ["call-3", "call-2", "call-1"]

    assert [r.vapi_call_id for r in list_call_history(db, user, assistant_id="asst-1")] == ["call-2", "call-1"]
    assert [r.vapi_call_id for r in list_call_history(db, user, assistant_id=str(a2.id))] == ["call-3"]
    assert [r.vapi_call_id for r in list_call_history(db, user, status="ended")] == ["call-3", "call-1"]

    stats = call_history_stats(db, user)
    assert stats["totalCalls"] == 3
    assert stats["totalDuration"] == 155.0
    assert stats["successRate"] == 33.33
