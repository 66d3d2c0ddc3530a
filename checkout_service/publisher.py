"""
Checkout Service — Event publishing

Redis Pub/Sub notifies other services (fulfilment, notifications,
analytics) about orders. Publishing happens after commit, so a Redis
outage must not turn an order that already exists into an error for the
buyer: failures are logged and dropped.
"""

import json

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

from .utils.logging import get_logger

ORDER_EVENTS_CHANNEL = "order_events"

logger = get_logger(__name__)


class EventPublisher:
    def __init__(self, redis: aioredis.Redis, channel: str = ORDER_EVENTS_CHANNEL):
        self.redis = redis
        self.channel = channel

    async def publish(self, event: BaseModel) -> None:
        event_type = type(event).__name__
        message = json.dumps(
            {
                "event_type": event_type,
                "data": event.model_dump(mode="json"),
            },
            default=str,
        )
        try:
            await self.redis.publish(self.channel, message)
        except RedisError:
            logger.exception(
                "Failed to publish event",
                event_type=event_type,
                order_id=getattr(event, "order_id", None),
            )
