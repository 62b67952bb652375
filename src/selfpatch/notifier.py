"""Best-effort lifecycle notifications to a Discord channel."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol

import requests

from . import __version__
from .errors import sanitize_error

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"
DEFAULT_MAX_LENGTH = 1800
TRUNCATION_SUFFIX = "\n...(truncated)"


def timestamp() -> str:
    """Timestamp prefix used in lifecycle messages."""
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def truncate_message(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Cut text to max_length characters and mark the cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + TRUNCATION_SUFFIX


class Notifier(Protocol):
    """Anything that can post a line of text somewhere."""

    def notify(self, text: str, *, suppress_mentions: bool = False) -> None:
        ...


class LogNotifier:
    """Notifier that only writes to the log."""

    def __init__(self):
        self.messages: list[str] = []

    def notify(self, text: str, *, suppress_mentions: bool = False) -> None:
        self.messages.append(text)
        logger.info(f"[notify] {text}")


class DiscordNotifier:
    """Posts messages to one Discord channel through the REST API.

    Every failure is logged and swallowed: a notification problem must
    never change the outcome of a run.
    """

    def __init__(
        self,
        token: str,
        channel_id: str,
        max_length: int = DEFAULT_MAX_LENGTH,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the notifier.

        Args:
            token: Discord bot token.
            channel_id: Target channel ID.
            max_length: Messages longer than this are truncated.
            timeout: Per-request timeout in seconds.
            session: Optional requests session (for testing).
        """
        self.channel_id = channel_id
        self.max_length = max_length
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bot {token}",
            "Content-Type": "application/json",
            "User-Agent": f"DiscordBot (selfpatch, {__version__})",
        })

    @property
    def url(self) -> str:
        return f"{DISCORD_API_BASE}/channels/{self.channel_id}/messages"

    def notify(self, text: str, *, suppress_mentions: bool = False) -> None:
        """Post text to the channel, truncating long messages.

        Args:
            text: Message content.
            suppress_mentions: If True, no user, role or everyone mention pings.
        """
        if not text:
            return

        payload: dict = {"content": truncate_message(text, self.max_length)}
        if suppress_mentions:
            payload["allowed_mentions"] = {"parse": []}

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error(sanitize_error(f"Discord send error: {exc}"))
            return

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "unknown")
            logger.warning(f"Discord rate limit hit, message dropped (retry after {retry_after})")
        elif not response.ok:
            # Never log the body; it may echo request headers
            logger.error(f"Discord send error: HTTP {response.status_code}")


def create_notifier(
    token: Optional[str],
    channel_id: Optional[str],
    max_length: int = DEFAULT_MAX_LENGTH,
) -> Notifier:
    """Return a Discord notifier when credentials exist, else a log notifier."""
    if token and channel_id:
        return DiscordNotifier(token, channel_id, max_length=max_length)
    logger.info("Discord credentials not configured; notifications go to the log only")
    return LogNotifier()
