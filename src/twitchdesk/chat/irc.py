# IRC line parsing for Twitch chat (RFC 1459 framing plus IRCv3 message tags).
# Created: 2026-10-19

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

_TAG_ESCAPES = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}


class MessageKind(str, Enum):
    CHAT = "chat"
    PING = "ping"
    RECONNECT = "reconnect"
    OTHER = "other"


@dataclass
class IrcMessage:
    command: str
    params: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    prefix: str | None = None

    @property
    def nick(self) -> str | None:
        if not self.prefix:
            return None
        return self.prefix.split("!", 1)[0]

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ""


def _unescape_tag(value: str) -> str:
    out = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None:
            break
        out.append(_TAG_ESCAPES.get(nxt, nxt))
    return "".join(out)


def parse_line(line: str) -> IrcMessage:
    """Parse one raw IRC line.

    Raises:
        ValueError: If the line is empty or has no command.
    """
    rest = line.rstrip("\r\n")

    tags: dict[str, str] = {}
    if rest.startswith("@"):
        raw_tags, _, rest = rest[1:].partition(" ")
        for item in raw_tags.split(";"):
            if not item:
                continue
            key, _, value = item.partition("=")
            tags[key] = _unescape_tag(value)
        rest = rest.lstrip(" ")

    prefix = None
    if rest.startswith(":"):
        prefix, _, rest = rest[1:].partition(" ")
        rest = rest.lstrip(" ")

    head, sep, trailing = rest.partition(" :")
    params = head.split()
    if sep:
        params.append(trailing)

    if not params or head.startswith(":"):
        raise ValueError(f"IRC line has no command: {line!r}")

    command = params.pop(0).upper()
    return IrcMessage(command=command, params=params, tags=tags, prefix=prefix)


def classify(message: IrcMessage) -> MessageKind:
    if message.command == "PRIVMSG":
        return MessageKind.CHAT
    if message.command == "PING":
        return MessageKind.PING
    if message.command == "RECONNECT":
        return MessageKind.RECONNECT
    return MessageKind.OTHER
