"""
In-process realtime fan-out.

Each WebSocket connection subscribes a queue to one or more rooms
("game:<id>", "user:<id>"). Publishing never waits on a client: a
subscriber whose queue is full is dropped and its socket closed by the
sender loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Set

from src.core.events import RealtimeEvent

logger = logging.getLogger(__name__)


class Subscription:
    """One connection's queue and the rooms it listens to."""

    def __init__(self, rooms: Iterable[str], maxsize: int):
        self.rooms: Set[str] = set(rooms)
        self.queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def get(self) -> Optional[Dict[str, Any]]:
        """Next message, or None once the subscription was dropped."""
        if self.closed and self.queue.empty():
            return None
        return await self.queue.get()


class RealtimeGateway:
    """Routes events to every subscription of the target room."""

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._rooms: Dict[str, Set[Subscription]] = {}

    def subscribe(self, *rooms: str) -> Subscription:
        sub = Subscription(rooms, self.queue_size)
        for room in sub.rooms:
            self._rooms.setdefault(room, set()).add(sub)
        logger.debug(f"Subscribed to {sorted(sub.rooms)}")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        for room in sub.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(sub)
            if not members:
                del self._rooms[room]

    def publish(self, event: RealtimeEvent) -> int:
        """
        Queue an event for its room.

        Returns:
            Number of subscriptions the event was queued for
        """
        message = event.to_message()
        delivered = 0
        for sub in list(self._rooms.get(event.room, ())):
            try:
                sub.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping slow subscriber on {event.room}")
                self._drop(sub)
        return delivered

    def publish_all(self, events: Iterable[RealtimeEvent]) -> None:
        for event in events:
            self.publish(event)

    def subscriber_count(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def _drop(self, sub: Subscription) -> None:
        self.unsubscribe(sub)
        sub.closed = True
        # Wake the sender loop; the queue is full so make room for the sentinel
        while True:
            try:
                sub.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                sub.queue.get_nowait()
