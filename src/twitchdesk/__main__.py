"""twitchdesk entry point.

Examples:
  twitchdesk login --client-id abc123     Log in through the browser
  twitchdesk chat somechannel             Print live chat until Ctrl+C
"""

import argparse
import asyncio
import logging
import sys
import webbrowser

from rich.console import Console
from rich.markup import escape

from twitchdesk.bus import (
    AUTHORIZE_URL_EVENT,
    CHAT_CLOSED_EVENT,
    CHAT_MESSAGE_EVENT,
    EventBus,
    SystemEvent,
)
from twitchdesk.commands import DeskCommands
from twitchdesk.config import get_settings
from twitchdesk.errors import LoginError
from twitchdesk.logging_setup import setup_logging

logger = logging.getLogger(__name__)
console = Console()


async def run_login(commands: DeskCommands, bus: EventBus, client_id: str | None, open_browser: bool) -> int:
    async def on_event(event: SystemEvent) -> None:
        if event.event_type != AUTHORIZE_URL_EVENT:
            return
        console.print(f"Open this URL to log in:\n  {event.data}", highlight=False, soft_wrap=True)
        if open_browser:
            await asyncio.to_thread(webbrowser.open, event.data)

    bus.subscribe(on_event)
    try:
        result = await commands.twitch_login_pkce(client_id)
    except LoginError as e:
        console.print(f"[red]Login failed:[/red] {e.message}")
        return 1
    console.print(f"[green]Logged in as[/green] {result['login']}")
    console.print(f"Scopes: {', '.join(result['scope']) or '(none)'}")
    console.print(f"Token expires in {result['expires_in']}s")
    return 0


async def run_chat(commands: DeskCommands, bus: EventBus, channel: str) -> int:
    closed = asyncio.Event()

    def on_event(event: SystemEvent) -> None:
        if event.event_type == CHAT_MESSAGE_EVENT:
            msg = event.data
            console.print(f"[bold]{msg['user']}[/bold]: {msg['message']}", highlight=False)
        elif event.event_type == CHAT_CLOSED_EVENT:
            console.print(f"[yellow]Chat closed:[/yellow] {event.data['reason']}")
            closed.set()

    bus.subscribe(on_event)
    try:
        await commands.start_twitch_chat(channel)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return 2
    try:
        await closed.wait()
    finally:
        await commands.shutdown()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="twitchdesk",
        description="Twitch PKCE login and live chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None,
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    login_parser = sub.add_parser("login", help="Log in with OAuth2 + PKCE")
    login_parser.add_argument("--client-id", default=None, help="Twitch application Client ID")
    login_parser.add_argument(
        "--no-browser", action="store_true", help="Print the authorize URL without opening it"
    )

    chat_parser = sub.add_parser("chat", help="Print live chat for a channel")
    chat_parser.add_argument("channel", help="Channel login, #login or twitch.tv URL")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level)

    bus = EventBus()
    commands = DeskCommands(bus, settings)

    try:
        if args.command == "login":
            code = asyncio.run(run_login(commands, bus, args.client_id, not args.no_browser))
        else:
            code = asyncio.run(run_chat(commands, bus, args.channel))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
