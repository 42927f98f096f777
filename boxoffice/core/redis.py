"""
Redis configuration and connection management
"""

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from typing import Optional, Any
import json
import logging
import asyncio
import time

from boxoffice.config import settings
from boxoffice.core.exceptions import TransientNetworkError

logger = logging.getLogger(__name__)

# Global Redis client
redis_client: Optional[redis.Redis] = None


async def init_redis():
    """
    Initialize Redis connection
    """
    global redis_client
    try:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True
        )
        await redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


async def close_redis():
    """
    Close Redis connection
    """
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")


async def get_redis() -> redis.Redis:
    """
    Get Redis client
    """
    if not redis_client:
        await init_redis()
    return redis_client


class CircuitBreaker:
    """
    Circuit breaker for Redis operations
    """
    def __init__(self, failure_threshold=5, recovery_timeout=60, half_open_max_calls=3):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls

        self.failure_count = 0
        self.last_failure_time = None
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN
        self.half_open_calls = 0

        self._lock = asyncio.Lock()

    async def is_open(self) -> bool:
        async with self._lock:
            if self.state == "OPEN":
                if time.time() - self.last_failure_time >= self.recovery_timeout:
                    self.state = "HALF_OPEN"
                    self.half_open_calls = 0
                    return False
                return True
            return False

    async def record_success(self):
        async with self._lock:
            self.failure_count = 0
            self.half_open_calls = 0
            self.state = "CLOSED"

    async def record_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            self.half_open_calls = 0

            if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
                self.state = "OPEN"

    async def call(self, func, *args, **kwargs):
        if await self.is_open():
            raise TransientNetworkError("redis", "Circuit breaker is open")

        async with self._lock:
            if self.state == "HALF_OPEN":
                if self.half_open_calls >= self.half_open_max_calls:
                    raise TransientNetworkError("redis", "Half-open call limit exceeded")
                self.half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            await self.record_failure()
            raise TransientNetworkError("redis") from e
        await self.record_success()
        return result


class RedisManager:
    """
    Redis manager for the seat change feed
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client: Optional[redis.Redis] = client
        self.circuit_breaker = CircuitBreaker()
        self.logger = logging.getLogger(__name__)

    async def get_client(self) -> redis.Redis:
        """Get Redis client"""
        if not self.client:
            try:
                self.client = await get_redis()
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                raise TransientNetworkError("redis") from e
        return self.client

    async def ping(self) -> bool:
        client = await self.get_client()
        return await self.circuit_breaker.call(client.ping)

    async def publish(self, channel: str, message: Any) -> int:
        """Publish message to channel"""
        client = await self.get_client()
        if not isinstance(message, str):
            message = json.dumps(message)
        return await self.circuit_breaker.call(client.publish, channel, message)

    async def subscribe(self, *channels):
        """Subscribe to channels"""
        client = await self.get_client()
        pubsub = client.pubsub()
        await self.circuit_breaker.call(pubsub.subscribe, *channels)
        return pubsub


redis_manager = RedisManager()
