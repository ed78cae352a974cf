"""PKCE login orchestration.

Created: 2026-10-19

One call to :meth:`LoginOrchestrator.login` is one login attempt:

1. Resolve the client id (argument, then configured default).
2. Generate PKCE artifacts.
3. Start the loopback callback server.
4. Publish the authorize URL to the UI.
5. Wait (bounded) for the redirect, then stop the server.
6. Exchange the code and validate the token.

Steps run strictly in order and the first failure ends the attempt. Two
overlapping attempts on the same orchestrator are refused; attempts from
separate orchestrators contend for the fixed redirect port and the later one
fails with :class:`~twitchdesk.errors.BindError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from twitchdesk.auth.callback_server import CallbackFailure, CallbackServer
from twitchdesk.auth.pkce import generate_pkce
from twitchdesk.auth.tokens import Identity, TokenExchanger, TokenResult
from twitchdesk.auth.urls import build_authorize_url
from twitchdesk.bus import AUTHORIZE_URL_EVENT, Notifier
from twitchdesk.config import Settings, get_settings
from twitchdesk.errors import (
    AuthorizationDenied,
    DecodeError,
    ExchangeFailed,
    LoginError,
    NetworkError,
    NotConfigured,
    StateMismatch,
    ValidateFailed,
)

logger = logging.getLogger(__name__)

ServerFactory = Callable[[str, Settings], CallbackServer]


class LoginState(str, Enum):
    IDLE = "idle"
    CLIENT_ID_RESOLVED = "client_id_resolved"
    ARTIFACTS_GENERATED = "artifacts_generated"
    SERVER_STARTED = "server_started"
    URL_PUBLISHED = "url_published"
    AWAITING_CALLBACK = "awaiting_callback"
    CODE_RECEIVED = "code_received"
    NOT_CONFIGURED = "not_configured"
    BIND_FAILED = "bind_failed"
    STATE_MISMATCH = "state_mismatch"
    CALLBACK_FAILED = "callback_failed"
    EXCHANGE_FAILED = "exchange_failed"
    VALIDATE_FAILED = "validate_failed"
    DONE = "done"


@dataclass(frozen=True)
class AuthSession:
    """Context carried from URL construction to code exchange."""

    client_id: str
    redirect_uri: str
    state: str
    code_verifier: str

    def __repr__(self) -> str:
        return f"AuthSession(client_id={self.client_id!r}, redirect_uri={self.redirect_uri!r})"


class LoginResult(BaseModel):
    """Successful login, as handed back to the shell."""

    access_token: str
    token_type: str
    expires_in: int
    scopes: list[str] = Field(default_factory=list, serialization_alias="scope")
    login: str
    client_id: str

    @classmethod
    def compose(cls, token: TokenResult, identity: Identity, client_id: str) -> LoginResult:
        return cls(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
            scopes=identity.scopes,
            login=identity.login,
            client_id=client_id,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _default_server_factory(expected_state: str, settings: Settings) -> CallbackServer:
    return CallbackServer(
        expected_state,
        host=settings.redirect_host,
        port=settings.redirect_port,
        path=settings.redirect_path,
    )


class LoginOrchestrator:
    """Runs PKCE login attempts and reports each transition."""

    def __init__(
        self,
        notifier: Notifier,
        settings: Settings | None = None,
        exchanger: TokenExchanger | None = None,
        server_factory: ServerFactory | None = None,
    ):
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.exchanger = exchanger or TokenExchanger(self.settings)
        self._server_factory = server_factory or _default_server_factory
        self._lock = asyncio.Lock()
        self.state = LoginState.IDLE
        self.history: list[LoginState] = [LoginState.IDLE]

    def _transition(self, state: LoginState) -> None:
        logger.debug("Login %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def resolve_client_id(self, client_id: str | None) -> str:
        if client_id and client_id.strip():
            return client_id.strip()
        return self.settings.twitch_client_id.strip()

    async def login(
        self,
        client_id: str | None = None,
        scopes: list[str] | None = None,
    ) -> LoginResult:
        """Run one login attempt.

        Raises:
            LoginError: The typed reason the attempt ended without a token.
        """
        if self._lock.locked():
            raise RuntimeError("A login attempt is already in progress")
        async with self._lock:
            self.state = LoginState.IDLE
            self.history = [LoginState.IDLE]
            try:
                result = await self._run(client_id, scopes)
            except LoginError as e:
                logger.warning("Login failed (%s): %s", e.kind.value, e.message)
                raise
            finally:
                self._transition(LoginState.DONE)
            logger.info("Logged in as %s", result.login)
            return result

    async def _run(self, client_id: str | None, scopes: list[str] | None) -> LoginResult:
        resolved = self.resolve_client_id(client_id)
        if not resolved:
            self._transition(LoginState.NOT_CONFIGURED)
            # Best effort: let the user at least reach the provider's web login
            await self.notifier.publish(AUTHORIZE_URL_EVENT, self.settings.fallback_login_url)
            raise NotConfigured("Twitch OAuth is not configured: provide your application's Client ID.")
        self._transition(LoginState.CLIENT_ID_RESOLVED)

        artifacts = generate_pkce()
        self._transition(LoginState.ARTIFACTS_GENERATED)

        server = self._server_factory(artifacts.state, self.settings)
        try:
            await server.start()
        except LoginError:
            self._transition(LoginState.BIND_FAILED)
            raise
        self._transition(LoginState.SERVER_STARTED)

        session = AuthSession(
            client_id=resolved,
            redirect_uri=server.redirect_uri,
            state=artifacts.state,
            code_verifier=artifacts.code_verifier,
        )
        try:
            url = build_authorize_url(
                self.settings.authorize_url,
                client_id=session.client_id,
                redirect_uri=session.redirect_uri,
                scopes=scopes if scopes is not None else self.settings.scopes,
                state=session.state,
                code_challenge=artifacts.code_challenge,
            )
            await self.notifier.publish(AUTHORIZE_URL_EVENT, url)
            self._transition(LoginState.URL_PUBLISHED)

            self._transition(LoginState.AWAITING_CALLBACK)
            try:
                outcome = await server.wait_for_result(self.settings.login_timeout)
            except LoginError:
                self._transition(LoginState.CALLBACK_FAILED)
                raise
        finally:
            await server.stop()

        if outcome.failure is CallbackFailure.STATE_MISMATCH:
            self._transition(LoginState.STATE_MISMATCH)
            raise StateMismatch()
        if outcome.failure is CallbackFailure.DENIED or not outcome.code:
            self._transition(LoginState.CALLBACK_FAILED)
            raise AuthorizationDenied(f"Authorization was not granted: {outcome.detail}")
        self._transition(LoginState.CODE_RECEIVED)

        return await self._redeem(session, outcome.code)

    async def _redeem(self, session: AuthSession, code: str) -> LoginResult:
        try:
            token = await self.exchanger.exchange(
                code=code,
                code_verifier=session.code_verifier,
                client_id=session.client_id,
                redirect_uri=session.redirect_uri,
            )
        except (NetworkError, DecodeError) as e:
            self._transition(LoginState.EXCHANGE_FAILED)
            raise ExchangeFailed(e) from e

        try:
            identity = await self.exchanger.validate(token.access_token)
        except (NetworkError, DecodeError) as e:
            self._transition(LoginState.VALIDATE_FAILED)
            raise ValidateFailed(e) from e

        return LoginResult.compose(token, identity, session.client_id)
