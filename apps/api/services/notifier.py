"""Per-user progress events over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "media-events"


def user_channel(user_id: str) -> str:
    return f"{CHANNEL_PREFIX}:{user_id}"


class EventPublisher(Protocol):
    async def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        ...


class RedisPublisher:
    """Publishes JSON payloads to Redis channels."""

    def __init__(self, redis_url: Optional[str] = None) -> None:
        self.redis_url = redis_url or settings.REDIS_URL

    async def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await client.publish(channel, json.dumps(payload))
        finally:
            await client.aclose()


class ProgressNotifier:
    """
    Job-scoped publisher for progress, completion and failure events.

    Delivery is best-effort: publish errors are logged and dropped, and
    clients that subscribe late do not receive earlier events.
    """

    def __init__(self, publisher: EventPublisher, user_id: str) -> None:
        self.publisher = publisher
        self.user_id = user_id
        self.channel = user_channel(user_id)

    async def _emit(self, payload: Dict[str, Any]) -> None:
        try:
            await self.publisher.publish(self.channel, payload)
        except Exception as exc:
            logger.warning("Could not publish %s event on %s: %s", payload.get("type"), self.channel, exc)

    async def progress(self, media_id: str, percent: int, status: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"type": "progress", "media_id": media_id, "progress": int(percent)}
        if status is not None:
            payload["status"] = status
        await self._emit(payload)

    async def completed(
        self,
        media_id: str,
        status: str,
        sensitivity_status: str,
        flag_reason: str,
        duration: float,
    ) -> None:
        await self._emit(
            {
                "type": "complete",
                "media_id": media_id,
                "status": status,
                "sensitivity_status": sensitivity_status,
                "flag_reason": flag_reason,
                "duration": duration,
            }
        )

    async def failed(self, media_id: str, message: str) -> None:
        await self._emit(
            {
                "type": "failed",
                "media_id": media_id,
                "message": message or "Processing failed",
            }
        )


def default_notifier(user_id: str) -> ProgressNotifier:
    return ProgressNotifier(RedisPublisher(), user_id)


async def subscribe_user_events(user_id: str) -> AsyncIterator[Dict[str, Any]]:
    """Yield decoded events published to a user's channel until cancelled."""
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    pubsub = client.pubsub()
    await pubsub.subscribe(user_channel(user_id))
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                yield json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning("Dropping malformed event on %s", user_channel(user_id))
    finally:
        await pubsub.unsubscribe(user_channel(user_id))
        await pubsub.aclose()
        await client.aclose()
