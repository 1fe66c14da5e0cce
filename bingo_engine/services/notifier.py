"""Publish/subscribe notifications for live displays.

Fire-and-forget: a failed publish is logged and dropped. Callers publish only
after their transaction committed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)

NEW_ROUND_CHANNEL = "rounds:new"


def status_channel(round_id: int) -> str:
    return f"round:{round_id}:status"


def numbers_channel(round_id: int) -> str:
    return f"round:{round_id}:numbers"


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, default=_default)


class Notifier:
    """Base notifier. Subclasses implement `_send`."""

    def publish(self, channel: str, payload: dict[str, Any]) -> bool:
        try:
            self._send(channel, encode_payload(payload))
            return True
        except Exception:
            logger.warning("Failed to publish on %s", channel, exc_info=True)
            return False

    def _send(self, channel: str, message: str) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class PublishedMessage:
    channel: str
    payload: dict[str, Any]


class MemoryNotifier(Notifier):
    """Keeps messages in process. Used in development and tests."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.messages: list[PublishedMessage] = []

    def _send(self, channel: str, message: str) -> None:
        with self._lock:
            self.messages.append(PublishedMessage(channel=channel, payload=json.loads(message)))

    def on(self, channel: str) -> list[dict[str, Any]]:
        with self._lock:
            return [m.payload for m in self.messages if m.channel == channel]

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()


class RedisNotifier(Notifier):
    """Publishes on Redis channels."""

    def __init__(self, url: str) -> None:
        import redis

        self._client = redis.Redis.from_url(url)

    def _send(self, channel: str, message: str) -> None:
        self._client.publish(channel, message)


def create_notifier(backend: str, redis_url: str | None = None) -> Notifier:
    backend = (backend or "memory").lower().strip()
    if backend == "redis":
        if not redis_url:
            raise ValueError("REDIS_URL is required for the redis notifier")
        return RedisNotifier(redis_url)
    if backend == "memory":
        return MemoryNotifier()
    raise ValueError(f"Unknown notifier backend: {backend}")
