"""
Notification targets for chat webhooks.

Features:
- Discord-style webhook ({"content": text})
- Telegram-style bot (sendMessage)
- Plain-text connection summary built from redacted fields
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import structlog

from ..config import NotificationSettings
from ..models.connection import ConnectionRecord
from .exceptions import NotificationError

logger = structlog.get_logger(__name__)


class NotificationTarget(ABC):
    """One outbound destination for connection summaries."""

    name: str = "target"
    error_body_limit: int = 1024

    @property
    @abstractmethod
    def url(self) -> str:
        """Endpoint receiving the POST."""

    @abstractmethod
    def build_payload(self, message: str) -> Dict[str, Any]:
        """JSON body for a message."""

    async def send(self, session: aiohttp.ClientSession, message: str) -> None:
        """
        Deliver a message once.

        Raises:
            NotificationError: On transport failure or a non-2xx answer
        """
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "connlog-notifier/1.0",
        }

        try:
            async with session.post(self.url, json=self.build_payload(message), headers=headers) as response:
                if 200 <= response.status < 300:
                    logger.debug("Notification delivered", target=self.name, status=response.status)
                    return

                body = await response.content.read(self.error_body_limit)
                raise NotificationError(
                    target=self.name,
                    message=f"{self.name} returned {response.status}: {body.decode('utf-8', 'replace')}",
                    status=response.status,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationError(
                target=self.name,
                message=f"{self.name} request failed: {type(e).__name__}",
            ) from e


class DiscordWebhookTarget(NotificationTarget):
    """Discord-style webhook. Success is usually 204 No Content."""

    name = "discord"
    error_body_limit = 1024

    def __init__(self, webhook_url: str) -> None:
        self.webhook_url = webhook_url

    @property
    def url(self) -> str:
        return self.webhook_url

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {"content": message}


class TelegramBotTarget(NotificationTarget):
    """Telegram-style bot posting to one chat."""

    name = "telegram"
    error_body_limit = 2048

    def __init__(self, bot_token: str, chat_id: str, api_base: str = "https://api.telegram.org") -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")

    @property
    def url(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "text": message,
            "disable_web_page_preview": True,
        }


def build_targets(settings: NotificationSettings) -> List[NotificationTarget]:
    """Create the targets whose settings are complete. Missing settings disable a target."""
    targets: List[NotificationTarget] = []

    if settings.discord_webhook_url:
        targets.append(DiscordWebhookTarget(settings.discord_webhook_url))

    if settings.telegram_bot_token and settings.telegram_chat_id:
        targets.append(
            TelegramBotTarget(
                bot_token=settings.telegram_bot_token,
                chat_id=settings.telegram_chat_id,
                api_base=settings.telegram_api_base,
            )
        )

    return targets


def _get_map(data: Any, key: str) -> Dict[str, Any]:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _get_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _to_int(value: Any) -> int:
    # bool is an int subclass but never a dimension
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return 0
    try:
        return int(value.strip()) if isinstance(value, str) else int(value)
    except (ValueError, OverflowError):
        return 0


def compose_summary(record: ConnectionRecord) -> str:
    """
    Short human-readable summary of a connection.

    Only fields that are present are listed; the record is already redacted.
    """
    client = record.client
    device = _get_map(client, "device")
    screen = _get_map(device, "screen")

    lines = ["New connection:"]

    fields: List[Tuple[str, str]] = [
        ("user", _get_text(client, "username")),
        ("ip", record.ip),
        ("os", _get_text(device, "platform")),
        ("lang", _get_text(device, "language")),
    ]
    for label, value in fields:
        if value:
            lines.append(f"- {label}: {value}")

    width = _to_int(screen.get("width"))
    height = _to_int(screen.get("height"))
    if width > 0 and height > 0:
        lines.append(f"- screen: {width}x{height}")

    if record.timestamp:
        lines.append(f"- time: {record.timestamp}")

    return "\n".join(lines) + "\n"


def describe_targets(targets: List[NotificationTarget]) -> Optional[str]:
    """Comma-separated target names for logging."""
    return ", ".join(target.name for target in targets) or None
