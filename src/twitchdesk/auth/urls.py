# Authorization URL construction.
# Created: 2026-10-19

from __future__ import annotations

import urllib.parse
from collections.abc import Sequence


def build_authorize_url(
    authorize_endpoint: str,
    client_id: str,
    redirect_uri: str,
    scopes: Sequence[str],
    state: str,
    code_challenge: str,
) -> str:
    """Compose the provider authorization URL for a PKCE login.

    Each value is percent-encoded on its own (spaces become ``%20``, not
    ``+``), and scopes are joined with a single space before encoding.

    Args:
        authorize_endpoint: Provider authorize endpoint, without query.
        client_id: OAuth client ID.
        redirect_uri: Loopback redirect URI registered for the client.
        scopes: Requested scopes, in order.
        state: Anti-CSRF state echoed back on the redirect.
        code_challenge: S256 PKCE challenge.

    Returns:
        The URL the user should open in a browser.
    """
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "force_verify": "false",
    }
    query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote, safe="")
    return f"{authorize_endpoint}?{query}"
