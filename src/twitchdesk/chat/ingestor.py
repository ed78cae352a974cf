"""Twitch chat ingestion.

Created: 2026-10-19

Joins one channel anonymously and republishes every chat message as a
:class:`ChatEvent`. Other IRC traffic is dropped without being counted; the
stream is best effort. PINGs are answered so the server keeps the
connection open. There is no reconnect: when the transport closes the loop
ends and a ``twitch://chat_closed`` event says why.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from twitchdesk.bus import CHAT_CLOSED_EVENT, CHAT_MESSAGE_EVENT, Notifier
from twitchdesk.chat.irc import IrcMessage, MessageKind, classify, parse_line
from twitchdesk.chat.transport import ChatTransport, WebSocketTransport
from twitchdesk.config import Settings, get_settings

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], ChatTransport]

# Twitch accepts any password for the anonymous justinfan logins
_ANONYMOUS_PASS = "SCHMOOPIIE"

_CHANNEL_URL_RE = re.compile(r"twitch\.tv/([A-Za-z0-9_]+)", re.IGNORECASE)
_CHANNEL_NAME_RE = re.compile(r"[A-Za-z0-9_]+")
_ACTION_PREFIX = "\x01ACTION "


@dataclass(frozen=True)
class ChatEvent:
    """One chat message, as published to the UI."""

    id: str
    channel: str
    user: str
    message: str
    timestamp: int  # epoch millis, receive time

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


def normalize_channel(channel: str) -> str:
    """Channel login from a bare name, a `#name` or a twitch.tv URL.

    Raises:
        ValueError: If no valid login can be extracted.
    """
    raw = channel.strip()
    match = _CHANNEL_URL_RE.search(raw)
    if match:
        name = match.group(1).lower()
        if name == "videos":
            raise ValueError(f"VOD links carry no channel name: {channel!r}")
        return name
    name = raw.lstrip("#")
    if not _CHANNEL_NAME_RE.fullmatch(name):
        raise ValueError(f"Not a Twitch channel: {channel!r}")
    return name.lower()


def _unwrap_action(text: str) -> str:
    # /me arrives as CTCP: \x01ACTION text\x01
    if text.startswith(_ACTION_PREFIX):
        return text[len(_ACTION_PREFIX) :].removesuffix("\x01")
    return text


def chat_event_from(message: IrcMessage, received_at_ms: int) -> ChatEvent | None:
    """Build a ChatEvent from a PRIVMSG, or None if it isn't one."""
    if classify(message) is not MessageKind.CHAT or len(message.params) < 2:
        return None
    return ChatEvent(
        id=message.tags.get("id") or uuid.uuid4().hex,
        channel=message.params[0].lstrip("#"),
        user=message.tags.get("display-name") or message.nick or "",
        message=_unwrap_action(message.trailing),
        timestamp=received_at_ms,
    )


class ChatIngestor:
    """Owns the receive loop for one channel."""

    def __init__(
        self,
        notifier: Notifier,
        settings: Settings | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._transport_factory = transport_factory or WebSocketTransport
        self._task: asyncio.Task | None = None
        self.channel: str | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, channel: str) -> None:
        """Spawn the receive loop and return immediately."""
        name = normalize_channel(channel)
        if self.running:
            raise RuntimeError(f"Chat ingestor already running for #{self.channel}")
        self.channel = name
        self._task = asyncio.create_task(self.run(name), name=f"twitch-chat:{name}")

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait_closed(self) -> str | None:
        """Wait for the loop to end; returns the close reason."""
        if self._task is None:
            return None
        try:
            return await self._task
        except asyncio.CancelledError:
            return "stopped"

    async def run(self, channel: str) -> str:
        """Connect, join and forward chat messages until the transport closes."""
        transport = self._transport_factory(self.settings.chat_url)
        reason = "connection closed"
        try:
            await transport.connect()
            await self._join(transport, channel)
            async for line in transport.lines():
                if not await self._handle_line(transport, line):
                    reason = "server requested reconnect"
                    break
        except asyncio.CancelledError:
            reason = "stopped"
            raise
        except OSError as e:
            reason = f"connection error: {e}"
            logger.warning("Chat connection for #%s failed: %s", channel, e)
        finally:
            try:
                await transport.close()
            except Exception:
                logger.debug("Error closing chat transport", exc_info=True)
            logger.info("Chat stream for #%s ended (%s)", channel, reason)
            await self.notifier.publish(CHAT_CLOSED_EVENT, {"channel": channel, "reason": reason})
        return reason

    async def _join(self, transport: ChatTransport, channel: str) -> None:
        nick = f"justinfan{random.randint(10000, 99999)}"
        await transport.send("CAP REQ :twitch.tv/tags twitch.tv/commands")
        await transport.send(f"PASS {_ANONYMOUS_PASS}")
        await transport.send(f"NICK {nick}")
        await transport.send(f"JOIN #{channel}")
        logger.info("Joined #%s as %s", channel, nick)

    async def _handle_line(self, transport: ChatTransport, line: str) -> bool:
        """Process one line. Returns False when the server asks us to leave."""
        try:
            message = parse_line(line)
        except ValueError:
            logger.debug("Dropping unparseable chat line: %r", line)
            return True

        kind = classify(message)
        if kind is MessageKind.PING:
            await transport.send(f"PONG :{message.trailing}")
            return True
        if kind is MessageKind.RECONNECT:
            return False
        if kind is not MessageKind.CHAT:
            return True

        event = chat_event_from(message, int(time.time() * 1000))
        if event is None:
            logger.debug("Dropping malformed PRIVMSG: %r", line)
            return True
        try:
            await self.notifier.publish(CHAT_MESSAGE_EVENT, event.to_payload())
        except Exception:
            logger.debug("Notifier failed on chat message %s", event.id, exc_info=True)
        return True
