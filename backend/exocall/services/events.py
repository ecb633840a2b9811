import json
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from exocall.core.config import settings

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "events"


class EventPublisher:
    """Best-effort fan-out of dashboard events over redis pub/sub."""

    def __init__(self, redis_url: Optional[str] = None) -> None:
        self.redis_url = redis_url or settings.redis_url
        self.client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        self.client = redis.from_url(self.redis_url, decode_responses=True)

    async def close(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None

    async def publish(self, payload: dict) -> None:
        if not self.client:
            return
        try:
            await self.client.publish(EVENTS_CHANNEL, json.dumps(payload, default=str))
        except RedisError as exc:
            logger.warning("Failed to publish %s event: %s", payload.get("type"), exc)


async def discard_event(payload: dict) -> None:
    logger.debug("Event dropped (no publisher): %s", payload.get("type"))
