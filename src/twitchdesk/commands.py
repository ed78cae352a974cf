# Host-facing command surface.
# Created: 2026-10-19
#
# These are the calls the desktop shell invokes. Login returns the payload
# dict the UI stores; chat streams are fire-and-forget, one per channel.

from __future__ import annotations

import logging
from typing import Any

from twitchdesk.auth.login import LoginOrchestrator
from twitchdesk.bus import Notifier
from twitchdesk.chat.ingestor import ChatIngestor, TransportFactory, normalize_channel
from twitchdesk.config import Settings, get_settings

logger = logging.getLogger(__name__)


class DeskCommands:
    """Login and chat commands bound to one notifier."""

    def __init__(
        self,
        notifier: Notifier,
        settings: Settings | None = None,
        orchestrator: LoginOrchestrator | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.orchestrator = orchestrator or LoginOrchestrator(notifier, self.settings)
        self._transport_factory = transport_factory
        self._ingestors: dict[str, ChatIngestor] = {}

    async def twitch_login_pkce(self, client_id: str | None = None) -> dict[str, Any]:
        """Run a PKCE login and return the result payload.

        Raises:
            LoginError: If the attempt fails.
        """
        result = await self.orchestrator.login(client_id)
        return result.to_payload()

    async def start_twitch_chat(self, channel: str) -> None:
        name = normalize_channel(channel)
        current = self._ingestors.get(name)
        if current is not None and current.running:
            logger.debug("Chat for #%s already running", name)
            return

        ingestor = ChatIngestor(
            self.notifier, self.settings, transport_factory=self._transport_factory
        )
        await ingestor.start(name)
        self._ingestors[name] = ingestor

    async def stop_twitch_chat(self, channel: str) -> bool:
        """Stop the stream for ``channel``. Returns False if none was running."""
        ingestor = self._ingestors.pop(normalize_channel(channel), None)
        if ingestor is None:
            return False
        await ingestor.stop()
        return True

    def active_channels(self) -> list[str]:
        return sorted(name for name, ing in self._ingestors.items() if ing.running)

    async def shutdown(self) -> None:
        for name in list(self._ingestors):
            await self.stop_twitch_chat(name)
