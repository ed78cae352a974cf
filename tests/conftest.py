# Shared fixtures for twitchdesk tests.

import socket
from typing import Any

import pytest

from twitchdesk.config import Settings


class RecordingNotifier:
    """Notifier fake that keeps every published event in order."""

    def __init__(self):
        self.events: list[tuple[str, Any]] = []

    async def publish(self, event_name: str, payload: Any) -> None:
        self.events.append((event_name, payload))

    def payloads(self, event_name: str) -> list[Any]:
        return [payload for name, payload in self.events if name == event_name]


def find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.delenv("TWITCH_CLIENT_ID", raising=False)
    monkeypatch.delenv("TWITCHDESK_TWITCH_CLIENT_ID", raising=False)
    return Settings(_env_file=None, twitch_client_id="", redirect_port=find_free_port())
