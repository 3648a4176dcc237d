import asyncio

from moviedb.core.config import ClientConfig, Credentials
from moviedb.core.models import Response
from moviedb.services.client import MovieDb


class RecordingTransport:
    def __init__(self, payloads) -> None:
        self.payloads = list(payloads)
        self.calls = []
        self.closed = False

    async def execute(self, method, base_url, path, query, body=None, timeout=None):
        self.calls.append((method.value, path, dict(query), body))
        return Response(status=200, data=self.payloads.pop(0) if self.payloads else {})

    async def aclose(self):
        self.closed = True


def test_request_token_is_cached_until_expiry():
    transport = RecordingTransport(
        [
            {"success": True, "expires_at": "2099-01-01 00:00:00 UTC", "request_token": "fresh"},
            {"success": True, "expires_at": "2099-01-01 00:00:00 UTC", "request_token": "other"},
        ]
    )

    async def scenario():
        async with MovieDb("key", transport=transport) as client:
            first = await client.request_token()
            second = await client.request_token()
            return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert first.request_token == "fresh"
    assert [call[1] for call in transport.calls] == ["authentication/token/new"]
    assert transport.closed is True


def test_expired_token_is_refreshed():
    transport = RecordingTransport(
        [
            {"success": True, "expires_at": "2000-01-01 00:00:00 UTC", "request_token": "stale"},
            {"success": True, "expires_at": "2099-01-01 00:00:00 UTC", "request_token": "fresh"},
        ]
    )

    async def scenario():
        async with MovieDb("key", transport=transport) as client:
            await client.request_token()
            return await client.request_token()

    token = asyncio.run(scenario())

    assert token.request_token == "fresh"
    assert len(transport.calls) == 2


def test_created_session_is_attached_to_later_requests():
    transport = RecordingTransport([{"success": True, "session_id": "sess-42"}, {"results": []}])

    async def scenario():
        async with MovieDb("key", transport=transport) as client:
            session_id = await client.create_session("approved-token")
            await client.get("account/:id/lists")
            return session_id, await client.session()

    session_id, current = asyncio.run(scenario())

    assert session_id == current == "sess-42"
    method, path, query, body = transport.calls[0]
    assert (method, path) == ("POST", "authentication/session/new")
    assert body == {"request_token": "approved-token"}
    _, lists_path, lists_query, _ = transport.calls[1]
    assert lists_path == "account/{account_id}/lists"
    assert lists_query == {"api_key": "key", "session_id": "sess-42"}


def test_quota_snapshot_reports_queue_state():
    config = ClientConfig(credentials=Credentials(api_key="key"), use_default_limits=True, limit_ceiling=5)
    transport = RecordingTransport([{"id": 550}])

    async def scenario():
        async with MovieDb(config=config, transport=transport) as client:
            data = await client.get("movie/:id", 550, {"appendToResponse": "videos"})
            return data, client.quota()

    data, stats = asyncio.run(scenario())

    assert data == {"id": 550}
    assert stats["remaining"] == 4
    assert stats["ceiling"] == 5
    assert stats["queued"] == 0
    assert transport.calls[0][2]["append_to_response"] == "videos"
