# Event names and the envelope delivered to bus subscribers.
# Created: 2026-10-19

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Published by the login flow; payload is the authorize URL string.
AUTHORIZE_URL_EVENT = "auth://twitch_authorize_url"
# Published by the chat ingestor; payload is ChatEvent.to_payload().
CHAT_MESSAGE_EVENT = "twitch://chat_message"
# Published when a chat stream ends; payload is {"channel", "reason"}.
CHAT_CLOSED_EVENT = "twitch://chat_closed"


@dataclass
class SystemEvent:
    """A named event with an arbitrary payload."""

    event_type: str
    data: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
