# Notifier protocol - the only capability the core needs from the UI shell.
# Created: 2026-10-19

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    """Publishes named events to whatever UI is listening.

    Fire-and-forget: no acknowledgment, and nothing is delivered if no one
    is subscribed.
    """

    async def publish(self, event_name: str, payload: Any) -> None: ...
