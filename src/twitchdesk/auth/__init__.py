"""Twitch OAuth2 Authorization Code + PKCE login."""

from twitchdesk.auth.callback_server import (
    CallbackFailure,
    CallbackResult,
    CallbackServer,
    TakeOnceSlot,
    start_callback_server,
)
from twitchdesk.auth.login import AuthSession, LoginOrchestrator, LoginResult, LoginState
from twitchdesk.auth.pkce import PkceArtifacts, generate_pkce
from twitchdesk.auth.tokens import Identity, TokenExchanger, TokenResult
from twitchdesk.auth.urls import build_authorize_url

__all__ = [
    "AuthSession",
    "CallbackFailure",
    "CallbackResult",
    "CallbackServer",
    "Identity",
    "LoginOrchestrator",
    "LoginResult",
    "LoginState",
    "PkceArtifacts",
    "TakeOnceSlot",
    "TokenExchanger",
    "TokenResult",
    "build_authorize_url",
    "generate_pkce",
    "start_callback_server",
]
