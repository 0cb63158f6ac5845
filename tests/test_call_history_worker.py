from workers.call_history_sync_worker import tick

from conftest import FakeVapiClient


def test_tick_syncs_every_active_assistant(db, user, make_assistant):
    make_assistant(user, "asst-1", "Front Desk")
    make_assistant(user, "asst-2", "Paused", is_active=False)
    vapi = FakeVapiClient(
        calls=[
            {"id": "c1", "assistantId": "asst-1", "createdAt": "2024-01-02T10:00:00Z", "status": "queued"},
            {"id": "c2", "assistantId": "asst-2", "createdAt": "2024-01-02T10:00:00Z", "status": "queued"},
        ]
    )

    assert tick(db, vapi) == 1
    assert [r["assistant_id"] for r in vapi.list_calls_requests] == ["asst-1"]


def test_tick_without_assistants(db, user):
    assert tick(db, FakeVapiClient()) == 0
