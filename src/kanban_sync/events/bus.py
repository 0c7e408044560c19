from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from ..storage.interfaces import EventRepository
from .ws import WebSocketHub, hub as default_hub


class EventBus:
    """Record a board event and push it to websocket subscribers."""

    def __init__(self, repo: EventRepository, hub: Optional[WebSocketHub] = None) -> None:
        self._repo = repo
        self._hub = hub or default_hub

    def emit(
        self,
        *,
        channel: str,
        event_type: str,
        entity_id: int,
        payload: dict[str, Any],
        board_id: Optional[int] = None,
    ) -> dict[str, Any]:
        event = self._repo.append(
            channel=channel,
            event_type=event_type,
            entity_id=entity_id,
            payload=payload,
            board_id=board_id,
        )
        logger.debug("Event {}.{} entity={} board={}", channel, event_type, entity_id, board_id)
        self._hub.publish_sync(event)
        return event

    def recent(self, limit: int = 100) -> list[dict[str, Any]]:
        return self._repo.list_recent(limit)
