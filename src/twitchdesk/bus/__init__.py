"""Event publishing between the core and the desktop shell."""

from twitchdesk.bus.events import (
    AUTHORIZE_URL_EVENT,
    CHAT_CLOSED_EVENT,
    CHAT_MESSAGE_EVENT,
    SystemEvent,
)
from twitchdesk.bus.protocol import Notifier
from twitchdesk.bus.queue import EventBus

__all__ = [
    "AUTHORIZE_URL_EVENT",
    "CHAT_CLOSED_EVENT",
    "CHAT_MESSAGE_EVENT",
    "EventBus",
    "Notifier",
    "SystemEvent",
]
