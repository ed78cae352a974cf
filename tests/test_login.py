# Tests for auth/login.py - the PKCE login state machine.

import asyncio
import socket
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from twitchdesk.auth.callback_server import CallbackFailure, CallbackResult
from twitchdesk.auth.login import LoginOrchestrator, LoginResult, LoginState
from twitchdesk.auth.pkce import compute_challenge
from twitchdesk.auth.tokens import Identity, TokenExchanger, TokenResult
from twitchdesk.bus import AUTHORIZE_URL_EVENT
from twitchdesk.errors import (
    AuthorizationDenied,
    BindError,
    DecodeError,
    ExchangeFailed,
    LoginErrorKind,
    LoginTimeout,
    NetworkError,
    NotConfigured,
    StateMismatch,
    ValidateFailed,
)

TOKEN = TokenResult(access_token="tok", token_type="bearer", expires_in=3600)
IDENTITY = Identity(login="alice", scopes=["chat:read"])


class FakeCallbackServer:
    """Stands in for CallbackServer; answers with a scripted outcome."""

    def __init__(self, expected_state, outcome=None, start_error=None, wait_error=None):
        self.expected_state = expected_state
        self.outcome = outcome
        self.start_error = start_error
        self.wait_error = wait_error
        self.redirect_uri = "http://127.0.0.1:18200/callback"
        self.started = False
        self.stopped = False

    async def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    async def wait_for_result(self, timeout=None):
        if self.wait_error:
            raise self.wait_error
        if callable(self.outcome):
            return self.outcome(self.expected_state)
        return self.outcome

    async def stop(self):
        self.stopped = True


def _factory(servers, **kwargs):
    def make(expected_state, settings):
        server = FakeCallbackServer(expected_state, **kwargs)
        servers.append(server)
        return server

    return make


@pytest.fixture
def exchanger():
    mock = AsyncMock(spec=TokenExchanger)
    mock.exchange.return_value = TOKEN
    mock.validate.return_value = IDENTITY
    return mock


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


# ---------------------------------------------------------------------------
# Client id resolution
# ---------------------------------------------------------------------------


class TestClientIdResolution:
    def test_argument_wins(self, notifier, settings):
        settings.twitch_client_id = "configured"
        orch = LoginOrchestrator(notifier, settings)
        assert orch.resolve_client_id("explicit") == "explicit"

    def test_blank_argument_falls_back(self, notifier, settings):
        settings.twitch_client_id = "configured"
        orch = LoginOrchestrator(notifier, settings)
        assert orch.resolve_client_id("   ") == "configured"
        assert orch.resolve_client_id(None) == "configured"

    def test_nothing_configured(self, notifier, settings):
        orch = LoginOrchestrator(notifier, settings)
        assert orch.resolve_client_id(None) == ""


# ---------------------------------------------------------------------------
# Orchestrator with a scripted callback server
# ---------------------------------------------------------------------------


class TestLoginOrchestrator:
    async def test_success(self, notifier, settings, exchanger):
        servers = []
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory(servers, outcome=CallbackResult(code="XYZ")),
        )

        result = await orch.login("abc123")

        assert result == LoginResult(
            access_token="tok",
            token_type="bearer",
            expires_in=3600,
            scopes=["chat:read"],
            login="alice",
            client_id="abc123",
        )
        assert servers[0].started and servers[0].stopped
        exchanger.exchange.assert_awaited_once()
        kwargs = exchanger.exchange.call_args.kwargs
        assert kwargs["code"] == "XYZ"
        assert kwargs["client_id"] == "abc123"
        assert kwargs["redirect_uri"] == servers[0].redirect_uri
        exchanger.validate.assert_awaited_once_with("tok")
        assert orch.history == [
            LoginState.IDLE,
            LoginState.CLIENT_ID_RESOLVED,
            LoginState.ARTIFACTS_GENERATED,
            LoginState.SERVER_STARTED,
            LoginState.URL_PUBLISHED,
            LoginState.AWAITING_CALLBACK,
            LoginState.CODE_RECEIVED,
            LoginState.DONE,
        ]

    async def test_authorize_url_published_once(self, notifier, settings, exchanger):
        servers = []
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory(servers, outcome=CallbackResult(code="XYZ")),
        )
        await orch.login("abc123", scopes=["chat:read"])

        urls = notifier.payloads(AUTHORIZE_URL_EVENT)
        assert len(urls) == 1
        url = urls[0]
        assert url.startswith(settings.authorize_url + "?client_id=abc123&")
        assert "code_challenge_method=S256" in url
        query = _query(url)
        assert query["state"] == servers[0].expected_state
        assert query["scope"] == "chat:read"
        verifier = exchanger.exchange.call_args.kwargs["code_verifier"]
        assert compute_challenge(verifier) == query["code_challenge"]

    async def test_default_scopes_requested(self, notifier, settings, exchanger):
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory([], outcome=CallbackResult(code="XYZ")),
        )
        await orch.login("abc123")
        query = _query(notifier.payloads(AUTHORIZE_URL_EVENT)[0])
        assert query["scope"] == " ".join(settings.scopes)

    async def test_not_configured_publishes_fallback(self, notifier, settings, exchanger):
        servers = []
        orch = LoginOrchestrator(
            notifier, settings, exchanger=exchanger, server_factory=_factory(servers)
        )

        with pytest.raises(NotConfigured) as exc_info:
            await orch.login("")

        assert exc_info.value.kind is LoginErrorKind.NOT_CONFIGURED
        assert notifier.events == [(AUTHORIZE_URL_EVENT, "https://www.twitch.tv/login")]
        assert servers == []
        exchanger.exchange.assert_not_called()
        assert LoginState.NOT_CONFIGURED in orch.history

    async def test_bind_failure_publishes_nothing(self, notifier, settings, exchanger):
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory([], start_error=BindError("127.0.0.1", 18200, "in use")),
        )

        with pytest.raises(BindError):
            await orch.login("abc123")

        assert notifier.events == []
        assert orch.history[-2:] == [LoginState.BIND_FAILED, LoginState.DONE]

    async def test_state_mismatch_never_exchanges(self, notifier, settings, exchanger):
        servers = []
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory(
                servers, outcome=CallbackResult(failure=CallbackFailure.STATE_MISMATCH)
            ),
        )

        with pytest.raises(StateMismatch):
            await orch.login("abc123")

        exchanger.exchange.assert_not_called()
        exchanger.validate.assert_not_called()
        assert servers[0].stopped
        assert LoginState.STATE_MISMATCH in orch.history

    async def test_provider_denied(self, notifier, settings, exchanger):
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory(
                [], outcome=CallbackResult(failure=CallbackFailure.DENIED, detail="access_denied")
            ),
        )

        with pytest.raises(AuthorizationDenied, match="access_denied"):
            await orch.login("abc123")
        exchanger.exchange.assert_not_called()

    async def test_timeout_stops_server(self, notifier, settings, exchanger):
        servers = []
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory(servers, wait_error=LoginTimeout("no redirect")),
        )

        with pytest.raises(LoginTimeout):
            await orch.login("abc123")

        assert servers[0].stopped
        assert LoginState.CALLBACK_FAILED in orch.history

    async def test_exchange_failure_wrapped(self, notifier, settings, exchanger):
        exchanger.exchange.side_effect = NetworkError("boom", status_code=400)
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory([], outcome=CallbackResult(code="XYZ")),
        )

        with pytest.raises(ExchangeFailed) as exc_info:
            await orch.login("abc123")

        assert isinstance(exc_info.value.cause, NetworkError)
        assert exc_info.value.__cause__ is exc_info.value.cause
        assert exc_info.value.to_payload()["kind"] == "exchange_failed"
        exchanger.validate.assert_not_called()

    async def test_validate_failure_wrapped(self, notifier, settings, exchanger):
        exchanger.validate.side_effect = DecodeError("bad body")
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory([], outcome=CallbackResult(code="XYZ")),
        )

        with pytest.raises(ValidateFailed) as exc_info:
            await orch.login("abc123")

        assert isinstance(exc_info.value.cause, DecodeError)
        assert orch.history[-2:] == [LoginState.VALIDATE_FAILED, LoginState.DONE]

    async def test_overlapping_attempt_rejected(self, notifier, settings, exchanger):
        gate = asyncio.Event()

        class SlowServer(FakeCallbackServer):
            async def wait_for_result(self, timeout=None):
                await gate.wait()
                return CallbackResult(code="XYZ")

        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=lambda state, s: SlowServer(state),
        )
        first = asyncio.create_task(orch.login("abc123"))
        await asyncio.sleep(0.01)

        with pytest.raises(RuntimeError):
            await orch.login("abc123")

        gate.set()
        assert (await first).login == "alice"

    async def test_sequential_attempts_use_fresh_state(self, notifier, settings, exchanger):
        servers = []
        orch = LoginOrchestrator(
            notifier,
            settings,
            exchanger=exchanger,
            server_factory=_factory(servers, outcome=CallbackResult(code="XYZ")),
        )
        await orch.login("abc123")
        await orch.login("abc123")
        assert servers[0].expected_state != servers[1].expected_state


class TestLoginResult:
    def test_payload_shape(self):
        result = LoginResult.compose(TOKEN, IDENTITY, "abc123")
        assert result.to_payload() == {
            "access_token": "tok",
            "token_type": "bearer",
            "expires_in": 3600,
            "scope": ["chat:read"],
            "login": "alice",
            "client_id": "abc123",
        }


# ---------------------------------------------------------------------------
# End to end: real loopback server, mocked provider
# ---------------------------------------------------------------------------


class BrowserNotifier:
    """Follows the authorize URL like a browser would after consent."""

    def __init__(self, code="XYZ", state_override=None):
        self.code = code
        self.state_override = state_override
        self.events = []
        self.followed = None

    async def publish(self, event_name, payload):
        self.events.append((event_name, payload))
        if event_name == AUTHORIZE_URL_EVENT:
            self.followed = asyncio.create_task(self._redirect(_query(payload)))

    async def _redirect(self, query):
        state = self.state_override or query["state"]
        async with httpx.AsyncClient() as http:
            return await http.get(query["redirect_uri"], params={"code": self.code, "state": state})


def _provider(seen):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth2/token":
            seen["form"] = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            return httpx.Response(
                200, json={"access_token": "tok", "token_type": "bearer", "expires_in": 3600}
            )
        if request.url.path == "/oauth2/validate":
            seen["authorization"] = request.headers["authorization"]
            return httpx.Response(
                200,
                json={"client_id": "abc123", "login": "alice", "scopes": ["chat:read"]},
            )
        return httpx.Response(404)

    return handler


class TestEndToEnd:
    async def test_full_login(self, settings):
        seen = {}
        browser = BrowserNotifier(code="XYZ")
        exchanger = TokenExchanger(settings, transport=httpx.MockTransport(_provider(seen)))
        orch = LoginOrchestrator(browser, settings, exchanger=exchanger)

        result = await asyncio.wait_for(orch.login("abc123", scopes=["chat:read"]), 10)
        page = await browser.followed

        assert page.status_code == 200
        assert result.to_payload() == {
            "access_token": "tok",
            "token_type": "bearer",
            "expires_in": 3600,
            "scope": ["chat:read"],
            "login": "alice",
            "client_id": "abc123",
        }
        url = browser.events[0][1]
        query = _query(url)
        assert seen["form"]["code"] == "XYZ"
        assert seen["form"]["grant_type"] == "authorization_code"
        assert seen["form"]["redirect_uri"] == settings.redirect_uri
        assert compute_challenge(seen["form"]["code_verifier"]) == query["code_challenge"]
        assert seen["authorization"] == "Bearer tok"

    async def test_forged_state(self, settings):
        seen = {}
        browser = BrowserNotifier(state_override="forged")
        exchanger = TokenExchanger(settings, transport=httpx.MockTransport(_provider(seen)))
        orch = LoginOrchestrator(browser, settings, exchanger=exchanger)

        with pytest.raises(StateMismatch):
            await asyncio.wait_for(orch.login("abc123"), 10)

        page = await browser.followed
        assert page.status_code == 200
        assert seen == {}

    async def test_port_in_use(self, settings, exchanger):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind((settings.redirect_host, settings.redirect_port))
            blocker.listen()
            notifier = BrowserNotifier()
            orch = LoginOrchestrator(notifier, settings, exchanger=exchanger)

            with pytest.raises(BindError):
                await orch.login("abc123")

        assert notifier.events == []
