"""Anonymous Twitch chat ingestion."""

from twitchdesk.chat.ingestor import ChatEvent, ChatIngestor, normalize_channel
from twitchdesk.chat.irc import IrcMessage, MessageKind, classify, parse_line
from twitchdesk.chat.transport import ChatTransport, WebSocketTransport

__all__ = [
    "ChatEvent",
    "ChatIngestor",
    "ChatTransport",
    "IrcMessage",
    "MessageKind",
    "WebSocketTransport",
    "classify",
    "normalize_channel",
    "parse_line",
]
