"""Tests for the Vapi REST client against httpx.MockTransport."""

import json

import httpx
import pytest

from services.vapi_client import VapiClient, VapiError


def _client(handler, api_key="test-vapi-key") -> VapiClient:
    return VapiClient(api_key, base_url="https://vapi.example.test", timeout_s=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_calls_maps_filters_to_query_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[{"id": "c1"}, {"id": "c2"}, "junk"])

    calls = await _client(handler).list_calls(
        assistant_id="asst-1",
        limit=25,
        created_at_gt="2024-01-01T00:00:00Z",
        created_at_lt="2024-01-08T00:00:00Z",
    )

    assert [c["id"] for c in calls] == ["c1", "c2"]
    assert seen["path"] == "/call"
    assert seen["params"] == {
        "assistantId": "asst-1",
        "limit": "25",
        "createdAtGt": "2024-01-01T00:00:00Z",
        "createdAtLt": "2024-01-08T00:00:00Z",
    }
    assert seen["auth"] == "Bearer test-vapi-key"


@pytest.mark.asyncio
async def test_list_assistants_accepts_wrapped_shape():
    def handler(request):
        return httpx.Response(200, json={"assistants": [{"id": "a1", "name": "Front Desk"}]})

    assert await _client(handler).list_assistants() == [{"id": "a1", "name": "Front Desk"}]


@pytest.mark.asyncio
async def test_get_assistant_returns_none_on_404():
    def handler(request):
        return httpx.Response(404, json={"message": "Not Found"})

    assert await _client(handler).get_assistant("missing") is None


@pytest.mark.asyncio
async def test_get_assistant_without_key_does_not_call_out():
    def handler(request):
        raise AssertionError("no request expected")

    assert await _client(handler, api_key=None).get_assistant("a1") is None


@pytest.mark.asyncio
async def test_error_status_raises_with_upstream_status():
    def handler(request):
        return httpx.Response(400, text="maxDurationSeconds must not be less than 10")

    with pytest.raises(VapiError) as exc:
        await _client(handler).update_assistant("a1", {"maxDurationSeconds": 5})

    assert exc.value.status_code == 400
    assert "maxDurationSeconds" in exc.value.body


@pytest.mark.asyncio
async def test_transport_error_raises_vapi_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(VapiError) as exc:
        await _client(handler).query_analytics({"groupBy": ["createdAt"]})

    assert exc.value.status_code is None


@pytest.mark.asyncio
async def test_query_analytics_posts_body():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=[{"name": "q", "result": []}])

    query = {"groupBy": ["endedReason"], "assistantIds": ["a1"]}
    assert await _client(handler).query_analytics(query) == [{"name": "q", "result": []}]
    assert seen == {"method": "POST", "path": "/analytics", "body": query}


@pytest.mark.asyncio
async def test_transcript_failure_is_none():
    def handler(request):
        if request.url.path == "/call/c1/transcript":
            return httpx.Response(200, json={"transcript": "Hello there"})
        return httpx.Response(500, text="boom")

    client = _client(handler)
    assert await client.get_call_transcript("c1") == "Hello there"
    assert await client.get_call_transcript("c2") is None
