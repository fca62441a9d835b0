"""Redis message bus and small keyed-state helpers."""
import asyncio
import json
import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from vibefield.domain.common.errors import StorageUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def redis_guard(operation: str):
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.warning(f"[REDIS] Unavailable during {operation}: {e}")
        raise StorageUnavailableError(operation, cause=e) from e


class RedisBus:
    """Redis pub/sub plus capped lists and expiring hashes keyed per identity."""

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._redis: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis."""
        if self._url is None:
            from vibefield.settings import settings

            self._url = settings.redis_url
        self._redis = redis.from_url(self._url, decode_responses=True)

    async def disconnect(self):
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> redis.Redis:
        if not self._redis:
            await self.connect()
        return self._redis

    async def ping(self) -> bool:
        client = await self._client()
        with redis_guard("ping"):
            return bool(await client.ping())

    async def publish(self, channel: str, message: dict):
        """Publish a message to a channel."""
        client = await self._client()
        with redis_guard(f"publish {channel}"):
            await client.publish(channel, json.dumps(message))

    async def subscribe_forever(
        self, channel: str, handler: Callable[[dict], Awaitable[None]]
    ) -> None:
        """Subscribe to a channel and call handler for each message. Runs until cancelled."""
        client = await self._client()
        pubsub = client.pubsub()
        await pubsub.subscribe(channel)
        logger.info(f"[REDIS] Subscribed to {channel}")
        try:
            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if not (msg and msg.get("type") == "message" and msg.get("data")):
                    continue
                try:
                    data = json.loads(msg["data"])
                except json.JSONDecodeError:
                    logger.warning(f"[REDIS] Dropping non-JSON message on {channel}")
                    continue
                try:
                    await handler(data)
                except Exception as e:
                    logger.error(f"[REDIS] Handler for {channel} failed: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info(f"[REDIS] Subscription to {channel} cancelled")
            raise
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def push_capped(self, key: str, value: dict, max_len: int, ttl_seconds: int) -> None:
        """LPUSH value, keep the newest max_len items and refresh the key's TTL."""
        client = await self._client()
        with redis_guard(f"push_capped {key}"):
            async with client.pipeline(transaction=True) as pipe:
                pipe.lpush(key, json.dumps(value))
                pipe.ltrim(key, 0, max_len - 1)
                pipe.expire(key, ttl_seconds)
                await pipe.execute()

    async def list_range(self, key: str, count: int) -> list[dict]:
        """Newest-first items of a capped list."""
        client = await self._client()
        with redis_guard(f"list_range {key}"):
            raw = await client.lrange(key, 0, count - 1)
        return [json.loads(item) for item in raw]

    async def hash_set(self, key: str, mapping: dict[str, str], ttl_seconds: int) -> None:
        client = await self._client()
        with redis_guard(f"hash_set {key}"):
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=mapping)
                pipe.expire(key, ttl_seconds)
                await pipe.execute()

    async def hash_get(self, key: str) -> dict[str, str]:
        client = await self._client()
        with redis_guard(f"hash_get {key}"):
            return await client.hgetall(key)


# Global instance
redis_bus = RedisBus()
