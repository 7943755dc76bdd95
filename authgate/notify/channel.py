"""
Notification channels used to tell administrators about pending users.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import aiohttp

from ..common.utils import get_current_time


logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A message handed to a channel"""
    to: str
    subject: str
    body: str
    sent_at: datetime = field(default_factory=get_current_time)


class NotificationChannel(ABC):
    """Abstract base class for notification delivery"""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> bool:
        """Send a message, returning True when the channel accepted it"""
        pass

    async def close(self) -> None:
        """Close the channel and release resources"""
        pass


class MemoryNotificationChannel(NotificationChannel):
    """Records messages in memory for development and testing"""

    def __init__(self):
        self.sent: List[Notification] = []
        self._lock = asyncio.Lock()

    async def send(self, to: str, subject: str, body: str) -> bool:
        async with self._lock:
            self.sent.append(Notification(to=to, subject=subject, body=body))
        return True

    def recipients(self) -> List[str]:
        return [message.to for message in self.sent]


class LoggingNotificationChannel(NotificationChannel):
    """Writes messages to the log instead of delivering them"""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def send(self, to: str, subject: str, body: str) -> bool:
        logger.log(self.level, f"Notification to {to}: {subject}")
        return True


class HttpEmailChannel(NotificationChannel):
    """Delivers e-mail through an HTTP mail provider API (SendGrid-style payload)"""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str = "no-reply@example.com",
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not api_url or not api_key:
            raise ValueError("api_url and api_key are required for the HTTP e-mail channel")
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def send(self, to: str, subject: str, body: str) -> bool:
        payload = {
            "from": {"email": self.sender},
            "personalizations": [{"to": [{"email": to}], "subject": subject}],
            "content": [{"type": "text/plain", "value": body}],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        session = await self._get_session()
        async with session.post(self.api_url, json=payload, headers=headers) as response:
            if 200 <= response.status < 300:
                return True
            text = await response.text()
            logger.warning(f"Mail provider rejected message to {to}: {response.status} {text[:200]}")
            return False

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


def create_notification_channel(channel_type: str = "memory", **kwargs) -> NotificationChannel:
    """
    Factory function to create notification channels

    Args:
        channel_type: Type of channel ("memory", "logging" or "http")
        **kwargs: Additional arguments for the channel

    Returns:
        NotificationChannel instance
    """
    if channel_type == "memory":
        return MemoryNotificationChannel()
    elif channel_type == "logging":
        return LoggingNotificationChannel()
    elif channel_type == "http":
        return HttpEmailChannel(
            kwargs.get("api_url", ""),
            kwargs.get("api_key", ""),
            kwargs.get("sender", "no-reply@example.com"),
            kwargs.get("timeout", 10.0),
        )
    else:
        raise ValueError(f"Unknown channel type: {channel_type}")
