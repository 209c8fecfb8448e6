"""Notification side-channel used by approval gates.

Workflows hand the notifier ``{to, subject, body, url}``; the url embeds the
hook token. The notifier is called from a step, so a failed send is retried
with the same token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import quote

from pykairos.workflows.http import JsonClient

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


@dataclass(frozen=True)
class Notification:
    to: str
    subject: str
    body: str
    url: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "subject": self.subject,
            "body": self.body,
            "url": self.url,
            "details": self.details,
        }


class Notifier(Protocol):
    async def send(self, notification: Notification) -> None: ...


class HttpNotifier:
    """Posts notifications as JSON to ``{notify_url}/email``."""

    def __init__(self, notify_url: str, client: JsonClient | None = None):
        self.notify_url = notify_url.rstrip("/")
        self._client = client or JsonClient()

    async def send(self, notification: Notification) -> None:
        await self._client.post(f"{self.notify_url}/email", notification.to_dict())
        logger.info(f"Sent notification to {notification.to}: {notification.subject}")


class RecordingNotifier:
    """Keeps notifications in memory (tests, demos)."""

    def __init__(self):
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.debug(f"Recorded notification to {notification.to}")

    def last_url(self) -> str | None:
        return self.sent[-1].url if self.sent else None


def approval_url(base_url: str, path: str, token: str) -> str:
    """Approval link embedding the percent-encoded token."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}?token={quote(token, safe='')}"
