"""twitchdesk - Twitch PKCE login and live chat ingestion for desktop shells."""

__version__ = "0.1.0"
