"""Loopback receiver for the OAuth redirect.

Created: 2026-10-19

A FastAPI app served by uvicorn on a socket bound before serving starts, so
an occupied port fails fast with :class:`~twitchdesk.errors.BindError` and
the listener is already accepting connections when the authorize URL is
handed to the browser.

The first request to the callback route decides the outcome of the attempt.
Later requests are answered with the same confirmation page and never touch
the delivered value.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from twitchdesk.errors import AwaitError, BindError, LoginTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>twitchdesk</title>
<style>
body {{ font-family: sans-serif; display: flex; justify-content: center;
       align-items: center; height: 100vh; margin: 0; background: #18181b; color: #efeff1; }}
.box {{ background: #26262c; padding: 40px; border-radius: 8px; text-align: center; }}
</style>
</head>
<body><div class="box"><h2>{message}</h2></div></body>
</html>"""

LOGIN_COMPLETE_MESSAGE = "Login complete. You may close this window."
INVALID_STATE_MESSAGE = "Invalid state. You may close this window."
DENIED_MESSAGE = "Login was not completed. You may close this window."


def render_page(message: str) -> str:
    return _PAGE.format(message=message)


class TakeOnceSlot(Generic[T]):
    """Single-assignment cell shared by the HTTP handler and the login flow.

    ``try_resolve`` is an atomic claim: exactly one caller ever gets True and
    stores its value; every other call returns False and changes nothing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._resolved = False
        self._value: T | None = None
        self._event = asyncio.Event()

    def try_resolve(self, value: T) -> bool:
        with self._lock:
            if self._resolved:
                return False
            self._resolved = True
            self._value = value
        self._event.set()
        return True

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def value(self) -> T | None:
        return self._value

    async def wait(self) -> T:
        await self._event.wait()
        return self._value  # type: ignore[return-value]


class CallbackFailure(str, Enum):
    STATE_MISMATCH = "state_mismatch"
    DENIED = "denied"


@dataclass(frozen=True)
class CallbackResult:
    """Outcome of the first redirect: a code, or a failure marker."""

    code: str | None = None
    failure: CallbackFailure | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None and bool(self.code)


def _classify(
    expected_state: str,
    code: str | None,
    state: str | None,
    error: str | None,
    error_description: str | None,
) -> CallbackResult:
    if state is None or not secrets.compare_digest(state, expected_state):
        return CallbackResult(failure=CallbackFailure.STATE_MISMATCH)
    if error:
        detail = f"{error}: {error_description}" if error_description else error
        return CallbackResult(failure=CallbackFailure.DENIED, detail=detail)
    if not code:
        return CallbackResult(failure=CallbackFailure.DENIED, detail="no authorization code")
    return CallbackResult(code=code)


def create_callback_app(
    slot: TakeOnceSlot[CallbackResult],
    expected_state: str,
    path: str = "/callback",
) -> FastAPI:
    """Build the single-route app that feeds ``slot``."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(path, response_class=HTMLResponse)
    async def callback(
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> HTMLResponse:
        outcome = _classify(expected_state, code, state, error, error_description)
        if not slot.try_resolve(outcome):
            logger.debug("Ignoring repeated OAuth callback")
            return HTMLResponse(render_page(LOGIN_COMPLETE_MESSAGE))

        if outcome.failure is CallbackFailure.STATE_MISMATCH:
            logger.warning("OAuth callback state mismatch")
            return HTMLResponse(render_page(INVALID_STATE_MESSAGE))
        if outcome.failure is CallbackFailure.DENIED:
            logger.warning("OAuth provider returned no code (%s)", outcome.detail)
            return HTMLResponse(render_page(DENIED_MESSAGE))

        logger.info("OAuth callback received")
        return HTMLResponse(render_page(LOGIN_COMPLETE_MESSAGE))

    return app


def _bind_socket(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    # Connections closed by the previous attempt linger in TIME_WAIT on this port
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
        sock.listen(16)
    except OSError as e:
        sock.close()
        raise BindError(host, port, e.strerror or str(e)) from e
    return sock


class CallbackServer:
    """Single-shot OAuth redirect receiver bound to a loopback port."""

    def __init__(
        self,
        expected_state: str,
        host: str = "127.0.0.1",
        port: int = 18200,
        path: str = "/callback",
    ):
        self.expected_state = expected_state
        self.host = host
        self.port = port
        self.path = path
        self.slot: TakeOnceSlot[CallbackResult] = TakeOnceSlot()
        self.app = create_callback_app(self.slot, expected_state, path)
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._sock: socket.socket | None = None

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Bind the port and start serving in a background task.

        Raises:
            BindError: If the port is unavailable.
        """
        if self._task is not None:
            raise RuntimeError("Callback server already started")

        self._sock = _bind_socket(self.host, self.port)
        if self.port == 0:
            self.port = self._sock.getsockname()[1]

        config = uvicorn.Config(self.app, log_level="warning", lifespan="off", access_log=False)
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[self._sock]), name=f"oauth-callback:{self.port}"
        )
        logger.info("Listening for OAuth redirect on %s", self.redirect_uri)

    async def wait_for_result(self, timeout: float | None = None) -> CallbackResult:
        """Wait for the first redirect.

        Raises:
            LoginTimeout: If ``timeout`` elapses first.
            AwaitError: If the server stops before anything is delivered.
        """
        if self._task is None:
            raise RuntimeError("Callback server not started")

        waiter = asyncio.ensure_future(self.slot.wait())
        try:
            done, _ = await asyncio.wait(
                {waiter, self._task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not waiter.done():
                waiter.cancel()

        if waiter in done:
            return waiter.result()
        if self._task in done:
            raise AwaitError("Callback server stopped before a redirect arrived")
        raise LoginTimeout(f"No OAuth redirect received within {timeout:g} seconds")

    async def stop(self) -> None:
        """Shut the listener down. Safe to call repeatedly."""
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            try:
                await self._task
            except Exception:
                logger.warning("Callback server exited with an error", exc_info=True)
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    async def __aenter__(self) -> CallbackServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


async def start_callback_server(
    expected_state: str,
    host: str = "127.0.0.1",
    port: int = 18200,
    path: str = "/callback",
) -> CallbackServer:
    """Create and start a :class:`CallbackServer`.

    The returned server is both the pending result (``wait_for_result``)
    and the shutdown handle (``stop``).
    """
    server = CallbackServer(expected_state, host=host, port=port, path=path)
    await server.start()
    return server
