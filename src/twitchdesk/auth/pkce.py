# PKCE artifacts (RFC 7636) for one login attempt.
# Created: 2026-10-19

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass

_ALPHABET = string.ascii_letters + string.digits

VERIFIER_LENGTH = 64
STATE_LENGTH = 16


@dataclass(frozen=True)
class PkceArtifacts:
    """Verifier, S256 challenge and anti-CSRF state for a single attempt."""

    code_verifier: str
    code_challenge: str
    state: str

    def __repr__(self) -> str:
        # The verifier is a secret until the code has been exchanged
        return f"PkceArtifacts(code_challenge={self.code_challenge!r}, state={self.state!r})"


def _random_alphanumeric(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def compute_challenge(code_verifier: str) -> str:
    """S256 challenge: unpadded base64url of SHA-256(verifier)."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> PkceArtifacts:
    """Generate fresh PKCE artifacts."""
    verifier = _random_alphanumeric(VERIFIER_LENGTH)
    return PkceArtifacts(
        code_verifier=verifier,
        code_challenge=compute_challenge(verifier),
        state=_random_alphanumeric(STATE_LENGTH),
    )
