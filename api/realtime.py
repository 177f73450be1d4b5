"""
Real-time push over websockets.

A client connects to ``/ws?token=<jwt>`` and is subscribed to its own
channel ``chat-<user id>``. The booking service publishes status updates
to that channel through the notification dispatcher.
"""

import logging
from collections import defaultdict
from typing import Any, DefaultDict, Dict, Set

from aiohttp import WSMsgType, web

from api.auth import authenticate
from api.context import get_context
from utils.constants import customer_channel

logger = logging.getLogger(__name__)


class PushHub:
    """Tracks open websockets per channel and fans events out to them."""

    def __init__(self) -> None:
        self._channels: DefaultDict[str, Set[web.WebSocketResponse]] = defaultdict(set)

    def subscribe(self, channel: str, ws: web.WebSocketResponse) -> None:
        self._channels[channel].add(ws)

    def unsubscribe(self, channel: str, ws: web.WebSocketResponse) -> None:
        sockets = self._channels.get(channel)
        if sockets is None:
            return
        sockets.discard(ws)
        if not sockets:
            del self._channels[channel]

    def subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def publish(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        """
        Send ``{"event", "data"}`` to every socket on a channel.

        Returns:
            Number of sockets the event was written to
        """
        sockets = list(self._channels.get(channel, ()))
        delivered = 0
        for ws in sockets:
            if ws.closed:
                self.unsubscribe(channel, ws)
                continue
            try:
                await ws.send_json({"event": event, "data": data})
                delivered += 1
            except ConnectionError as e:
                logger.warning(f"Dropping socket on {channel}: {e}")
                self.unsubscribe(channel, ws)
        return delivered

    async def close_all(self) -> None:
        for channel, sockets in list(self._channels.items()):
            for ws in list(sockets):
                await ws.close()
        self._channels.clear()


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """Authenticate, then keep the socket open until the client leaves."""
    ctx = get_context(request)
    user = await authenticate(request, token=request.query.get("token"))
    channel = customer_channel(user.id)

    ws = web.WebSocketResponse(heartbeat=30)
    await ws.prepare(request)
    ctx.push_hub.subscribe(channel, ws)
    logger.info(f"User {user.id} connected to {channel}")

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT and msg.data == "ping":
                await ws.send_str("pong")
            elif msg.type == WSMsgType.ERROR:
                logger.warning(f"Websocket error on {channel}: {ws.exception()}")
    finally:
        ctx.push_hub.unsubscribe(channel, ws)
        logger.info(f"User {user.id} disconnected from {channel}")

    return ws
