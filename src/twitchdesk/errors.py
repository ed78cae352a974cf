# Login error hierarchy.
# Created: 2026-10-19
#
# Every failure of a login attempt is terminal and surfaces as one of these.
# ``kind`` lets the host shell branch on the failure without parsing text.

from __future__ import annotations

from enum import Enum


class LoginErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    BIND_ERROR = "bind_error"
    STATE_MISMATCH = "state_mismatch"
    AUTHORIZATION_DENIED = "authorization_denied"
    TIMEOUT = "timeout"
    AWAIT_ERROR = "await_error"
    NETWORK_ERROR = "network_error"
    DECODE_ERROR = "decode_error"
    EXCHANGE_FAILED = "exchange_failed"
    VALIDATE_FAILED = "validate_failed"


class LoginError(Exception):
    """Base class for login failures."""

    kind: LoginErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class NotConfigured(LoginError):
    """No OAuth client id was supplied or configured."""

    kind = LoginErrorKind.NOT_CONFIGURED


class BindError(LoginError):
    """The loopback redirect port could not be bound."""

    kind = LoginErrorKind.BIND_ERROR

    def __init__(self, host: str, port: int, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Could not listen on {host}:{port}{detail}")
        self.host = host
        self.port = port


class StateMismatch(LoginError):
    """The redirect carried a state other than the one we issued."""

    kind = LoginErrorKind.STATE_MISMATCH

    def __init__(self, message: str = "Invalid state in OAuth callback"):
        super().__init__(message)


class AuthorizationDenied(LoginError):
    """The provider redirected back with an error instead of a code."""

    kind = LoginErrorKind.AUTHORIZATION_DENIED


class LoginTimeout(LoginError):
    """No redirect arrived before the login timeout elapsed."""

    kind = LoginErrorKind.TIMEOUT


class AwaitError(LoginError):
    """The callback channel closed without delivering a value."""

    kind = LoginErrorKind.AWAIT_ERROR


class NetworkError(LoginError):
    """Transport failure or unexpected HTTP status from the provider."""

    kind = LoginErrorKind.NETWORK_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(LoginError):
    """Provider response did not match the expected schema."""

    kind = LoginErrorKind.DECODE_ERROR


class _WrappedLoginError(LoginError):
    step = ""

    def __init__(self, cause: LoginError):
        super().__init__(f"{self.step} failed: {cause.message}")
        self.cause = cause


class ExchangeFailed(_WrappedLoginError):
    kind = LoginErrorKind.EXCHANGE_FAILED
    step = "Token exchange"


class ValidateFailed(_WrappedLoginError):
    kind = LoginErrorKind.VALIDATE_FAILED
    step = "Token validation"
