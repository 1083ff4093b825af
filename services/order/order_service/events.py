"""
Order Service — イベント発行

注文の保存に成功したら OrderCreated を Redis Pub/Sub の order_events チャネルに発行する。
Pub/Sub は fire-and-forget: 購読者がいなければイベントは失われる。
Redis が応答しない場合は timeout_seconds で打ち切る。
"""

import asyncio
import json

import redis.asyncio as aioredis

from .models import Order

ORDER_EVENTS_CHANNEL = "order_events"


class OrderEventPublisher:
    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str = ORDER_EVENTS_CHANNEL,
        timeout_seconds: float = 2.0,
    ):
        self.redis = redis
        self.channel = channel
        self.timeout = timeout_seconds

    async def order_created(self, order: Order) -> None:
        message = json.dumps({
            "event_type": "OrderCreated",
            "data": {
                "order_id": str(order.id),
                "user_id": order.user_id,
                "product_id": order.product_id,
                "mode": order.mode.value,
                "timestamp": order.created_at.isoformat(),
            },
        }, default=str)
        await asyncio.wait_for(
            self.redis.publish(self.channel, message), timeout=self.timeout
        )
