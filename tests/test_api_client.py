"""Tests for the history API client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from history_sync.api.client import HistoryClient, SyncResponse
from history_sync.credentials import StaticTokenProvider
from history_sync.errors import CredentialError, DeliveryError
from history_sync.sync.delta import Delta
from history_sync.sync.messages import Message


def make_client(handler, max_retries=3, token="secret"):
    return HistoryClient(
        "http://history.test/",
        "test-machine",
        StaticTokenProvider(token),
        max_retries=max_retries,
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def delta():
    return Delta(
        session_id="s1",
        project_path="/proj",
        messages=[
            Message(uuid="m1", timestamp="t1", role="user", content="Hello"),
            Message(uuid="m2", timestamp="t2", role="assistant", content="Hi", model="m", tokens=7),
        ],
        new_last_uuid="m2",
    )


class TestGetConversationHashes:
    """Tests for listing remote hashes."""

    @pytest.mark.asyncio
    async def test_returns_hash_map(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "conversations": [
                        {"sessionId": "s1", "hash": "h1", "date": "2024-01-01"},
                        {"sessionId": "s2", "hash": "h2", "date": "2024-01-02"},
                    ],
                    "total": 2,
                },
            )

        async with make_client(handler) as client:
            hashes = await client.get_conversation_hashes()

        assert hashes == {"s1": "h1", "s2": "h2"}
        request = requests[0]
        assert request.method == "GET"
        assert request.url == "http://history.test/conversations"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Machine-ID"] == "test-machine"

    @pytest.mark.asyncio
    async def test_empty_list(self):
        async with make_client(lambda r: httpx.Response(200, json={"conversations": None})) as client:
            assert await client.get_conversation_hashes() == {}


class TestSyncSession:
    """Tests for uploading deltas."""

    @pytest.mark.asyncio
    async def test_payload(self, delta):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "processed": 2, "sessionId": "s1"})

        async with make_client(handler) as client:
            response = await client.sync_session(delta)

        assert response == SyncResponse(success=True, processed=2, session_id="s1")
        body = bodies[0]
        assert body["machineId"] == "test-machine"
        assert body["sessionId"] == "s1"
        assert body["projectPath"] == "/proj"
        assert body["messages"] == [
            {"uuid": "m1", "timestamp": "t1", "role": "user", "content": "Hello"},
            {"uuid": "m2", "timestamp": "t2", "role": "assistant", "content": "Hi", "model": "m", "tokens": 7},
        ]
        assert body["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_payload_with_lone_surrogate(self):
        bodies = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200, json={"success": True, "processed": 1, "sessionId": "s1"})

        delta = Delta(
            session_id="s1",
            project_path="/proj",
            messages=[Message(uuid="m1", timestamp="t1", role="user", content="cut emoji \ud83d")],
            new_last_uuid="m1",
        )

        async with make_client(handler) as client:
            await client.sync_session(delta)

        assert b'"content":"cut emoji \\ud83d"' in bodies[0]
        assert json.loads(bodies[0])["messages"][0]["content"] == "cut emoji \ud83d"

    @pytest.mark.asyncio
    async def test_invalid_json_response(self, delta):
        async with make_client(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(DeliveryError):
                await client.sync_session(delta)


class TestRetry:
    """Tests for retry behaviour."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_retries_then_succeeds(self, status):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(status, text="busy")
            return httpx.Response(200, json={"conversations": []})

        async with make_client(handler) as client:
            assert await client.get_conversation_hashes() == {}

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_no_retry_on_client_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="bad request")

        async with make_client(handler) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await client.get_conversation_hashes()

        assert len(calls) == 1
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502, text="bad gateway")

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await client.get_conversation_hashes()

        assert len(calls) == 3
        assert exc_info.value.status_code == 502
        assert "max retries exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_retries_connection_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"conversations": []})

        async with make_client(handler) as client:
            await client.get_conversation_hashes()

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_backoff_doubles(self):
        client = HistoryClient(
            "http://history.test",
            "m",
            StaticTokenProvider("t"),
            max_retries=3,
            backoff_seconds=1.0,
            transport=httpx.MockTransport(lambda r: httpx.Response(500)),
        )

        with patch("history_sync.api.client.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            with pytest.raises(DeliveryError):
                await client.get_conversation_hashes()
        await client.close()

        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_credential_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        async with make_client(handler, token="") as client:
            with pytest.raises(CredentialError):
                await client.get_conversation_hashes()

        assert calls == []
