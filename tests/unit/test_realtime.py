"""
Unit tests for websocket push.
"""

from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from aiohttp import WSServerHandshakeError, test_utils

from api.realtime import PushHub
from server import create_app


def fake_socket(closed=False):
    ws = MagicMock()
    ws.closed = closed
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    return ws


class TestPushHub:
    """Tests for PushHub."""

    @pytest.mark.asyncio
    async def test_publish_to_channel(self):
        hub = PushHub()
        mine, theirs = fake_socket(), fake_socket()
        hub.subscribe("chat-user-1", mine)
        hub.subscribe("chat-user-2", theirs)

        delivered = await hub.publish("chat-user-1", "booking_status_update", {"newStatus": "Completed"})

        assert delivered == 1
        mine.send_json.assert_awaited_once_with(
            {"event": "booking_status_update", "data": {"newStatus": "Completed"}}
        )
        theirs.send_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_closed_sockets_are_dropped(self):
        hub = PushHub()
        hub.subscribe("chat-user-1", fake_socket(closed=True))

        assert await hub.publish("chat-user-1", "evt", {}) == 0
        assert hub.subscribers("chat-user-1") == 0

    @pytest.mark.asyncio
    async def test_broken_socket_is_dropped(self):
        hub = PushHub()
        broken = fake_socket()
        broken.send_json.side_effect = ConnectionResetError("peer gone")
        healthy = fake_socket()
        hub.subscribe("chat-user-1", broken)
        hub.subscribe("chat-user-1", healthy)

        assert await hub.publish("chat-user-1", "evt", {}) == 1
        assert hub.subscribers("chat-user-1") == 1

    @pytest.mark.asyncio
    async def test_publish_to_empty_channel(self):
        assert await PushHub().publish("chat-nobody", "evt", {}) == 0

    @pytest.mark.asyncio
    async def test_close_all(self):
        hub = PushHub()
        ws = fake_socket()
        hub.subscribe("chat-user-1", ws)

        await hub.close_all()

        ws.close.assert_awaited_once()
        assert hub.subscribers("chat-user-1") == 0


class TestWebsocketEndpoint:
    """Tests for /ws."""

    @pytest.mark.asyncio
    async def test_status_update_reaches_customer(self, context, test_settings):
        token = jwt.encode({"_id": "user-1"}, test_settings.jwt_secret, algorithm="HS256")

        async with test_utils.TestClient(test_utils.TestServer(create_app(context))) as client:
            ws = await client.ws_connect(f"/ws?token={token}")
            await ws.send_str("ping")
            assert await ws.receive_str() == "pong"

            assert context.push_hub.subscribers("chat-user-1") == 1
            await context.push_hub.publish(
                "chat-user-1", "booking_status_update", {"newStatus": "In Progress"}
            )
            message = await ws.receive_json()
            await ws.close()

        assert message == {
            "event": "booking_status_update",
            "data": {"newStatus": "In Progress"},
        }

    @pytest.mark.asyncio
    async def test_rejects_missing_token(self, context):
        async with test_utils.TestClient(test_utils.TestServer(create_app(context))) as client:
            with pytest.raises(WSServerHandshakeError) as exc_info:
                await client.ws_connect("/ws")

        assert exc_info.value.status == 401
