"""
Redis-backed webhook receipts.

Receipts are best-effort: with Redis unset or unreachable nothing is
remembered and a redelivered event is simply applied again.
"""
import logging
from typing import Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get or create the Redis client; None when REDIS_URL is not configured"""
    global redis_client

    if redis_client is None and REDIS_URL:
        # Mask password in URL for logging
        masked_url = REDIS_URL.split("@")[-1] if "@" in REDIS_URL else "****"
        logger.info(f"📡 Connecting to Redis: {masked_url}")
        redis_client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
    return redis_client


class ReceiptStore:
    """Expiring markers for webhook events that were fully applied"""

    def __init__(self, client_factory=get_redis_client):
        self._client_factory = client_factory

    def _client(self) -> Optional[redis.Redis]:
        try:
            return self._client_factory()
        except redis.RedisError as e:
            logger.warning(f"⚠️ Receipt store unavailable: {e}")
            return None

    def exists(self, key: str) -> bool:
        client = self._client()
        if client is None:
            return False
        try:
            return bool(client.exists(key))
        except redis.RedisError as e:
            logger.error(f"❌ Receipt lookup failed for {key}: {e}")
            return False

    def mark(self, key: str, ttl: int) -> bool:
        client = self._client()
        if client is None:
            return False
        try:
            client.setex(key, ttl, "1")
            logger.debug(f"🧾 Receipt stored: {key} (TTL: {ttl}s)")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Receipt write failed for {key}: {e}")
            return False


receipts = ReceiptStore()
