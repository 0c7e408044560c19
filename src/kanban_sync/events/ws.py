from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger

from ..constants import EVENT_CHANNELS


@dataclass
class _WsClient:
    ws: WebSocket
    channels: set[str] = field(default_factory=set)
    board_ids: set[int] = field(default_factory=set)


def _parse_board_ids(message: dict[str, Any]) -> set[int]:
    raw = list(message.get("board_ids") or [])
    if message.get("board_id") is not None:
        raw.append(message["board_id"])
    out: set[int] = set()
    for value in raw:
        try:
            out.add(int(value))
        except (TypeError, ValueError):
            continue
    return out


class WebSocketHub:
    """Fan board events out to connected UI clients.

    Clients send ``{"action": "subscribe", "channels": [...], "board_ids": [...]}``
    to opt in. ``system`` events go to everyone; other events are filtered by
    channel and, when the client named any boards, by ``board_id``.
    """

    def __init__(self) -> None:
        self._clients: dict[int, _WsClient] = {}
        self._counter = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._loop = loop

    async def _send(self, websocket: WebSocket, event_type: str, payload: dict[str, Any]) -> None:
        await websocket.send_text(json.dumps({"channel": "system", "type": event_type, "payload": payload}))

    async def handle_connection(self, websocket: WebSocket) -> None:
        self.attach_loop(asyncio.get_running_loop())
        await websocket.accept()
        client = _WsClient(ws=websocket)
        cid = id(websocket)
        self._clients[cid] = client
        try:
            await self._send(websocket, "connected", {"channels": sorted(EVENT_CHANNELS)})
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    await self._send(websocket, "error", {"detail": "Invalid JSON"})
                    continue
                if not isinstance(message, dict):
                    await self._send(websocket, "error", {"detail": "Expected an object"})
                    continue
                action = message.get("action")
                channels = {str(c) for c in message.get("channels") or []}
                board_ids = _parse_board_ids(message)
                if action == "subscribe":
                    client.channels |= channels & EVENT_CHANNELS
                    client.board_ids |= board_ids
                    await self._send(
                        websocket,
                        "subscribed",
                        {"channels": sorted(client.channels), "board_ids": sorted(client.board_ids)},
                    )
                elif action == "unsubscribe":
                    client.channels -= channels
                    client.board_ids -= board_ids
                    await self._send(
                        websocket,
                        "unsubscribed",
                        {"channels": sorted(client.channels), "board_ids": sorted(client.board_ids)},
                    )
                elif action == "ping":
                    await self._send(websocket, "pong", {})
                else:
                    await self._send(websocket, "error", {"detail": f"Unknown action: {action}"})
        except WebSocketDisconnect:
            logger.debug("WebSocket client {} disconnected", cid)
        finally:
            self._clients.pop(cid, None)

    def _wants(self, client: _WsClient, event: dict[str, Any]) -> bool:
        channel = event.get("channel")
        if channel == "system":
            return True
        if channel not in client.channels:
            return False
        if client.board_ids:
            return event.get("board_id") in client.board_ids
        return True

    async def publish(self, event: dict[str, Any]) -> None:
        self._counter += 1
        payload = json.dumps({**event, "seq": self._counter}, default=str)
        stale: list[int] = []
        for cid, client in list(self._clients.items()):
            if not self._wants(client, event):
                continue
            try:
                await client.ws.send_text(payload)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("Dropping websocket client {}: {}", cid, exc)
                stale.append(cid)
        for cid in stale:
            self._clients.pop(cid, None)

    def publish_sync(self, event: dict[str, Any]) -> None:
        """Publish from synchronous code, including worker threads."""
        with self._lock:
            loop = self._loop
        if loop and loop.is_running():
            asyncio.run_coroutine_threadsafe(self.publish(event), loop)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop and never had a websocket client: nobody to notify.
            return
        self.attach_loop(loop)
        loop.create_task(self.publish(event))


hub = WebSocketHub()
