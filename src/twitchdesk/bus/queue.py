"""
In-process event bus.
Created: 2026-10-19

Fans every published event out to the registered subscribers. A subscriber
that raises is logged and skipped so publishers never see UI-side failures.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from twitchdesk.bus.events import SystemEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[SystemEvent], Awaitable[None] | None]


class EventBus:
    """Notifier implementation backed by a list of callbacks."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event_name: str, payload: Any) -> None:
        event = SystemEvent(event_type=event_name, data=payload)
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.warning("Subscriber failed on %s", event_name, exc_info=True)
