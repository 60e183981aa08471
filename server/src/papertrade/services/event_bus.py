"""
Simple in-memory event bus for decoupling the trade executor from the
services that react to ledger changes (metrics, cache refresh).

Each subscriber gets its own asyncio queue, so every subscriber of an
event type receives every event published after it subscribed.
Publishing never blocks on slow consumers: queues are unbounded.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, AsyncIterator, Dict, List


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def publish(self, event_type: str, data: Any) -> None:
        """Publish an event to all subscribers of the given type."""
        for queue in list(self._subscribers[event_type]):
            queue.put_nowait(data)

    async def subscribe(self, event_type: str) -> AsyncIterator[Any]:
        """Yield events of a given type as they arrive."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[event_type].append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[event_type].remove(queue)

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers[event_type])
