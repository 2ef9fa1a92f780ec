import json
import logging
import redis
from typing import Optional

from marketplace.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Create Redis client
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


class ProductCache:
    """
    Read-through Redis cache of product detail documents.

    Each product is stored as the JSON of its API response under
    ``product:<id>`` with a TTL. Every stock or detail change drops the
    entry, so a reader never sees stock older than the last committed write
    plus the time it takes the writer to invalidate.

    Redis errors are treated as cache misses so a cache outage never fails
    a request. The cache can be switched off with CACHE_ENABLED.
    """

    KEY_PREFIX = "product"

    def __init__(self, client: redis.Redis = None, ttl: int = None, enabled: bool = None):
        self.client = client or redis_client
        self.ttl = ttl or settings.CACHE_TTL
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled

    def key(self, product_id: int) -> str:
        return f"{self.KEY_PREFIX}:{product_id}"

    def get(self, product_id: int) -> Optional[dict]:
        """Cached product document, or None on a miss."""
        if not self.enabled:
            return None
        try:
            value = self.client.get(self.key(product_id))
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.warning(f"Cache read failed for product #{product_id}: {e}")
            return None

    def set(self, product_id: int, document: dict) -> bool:
        """
        Store a product document.

        Returns:
            True if successful, False otherwise
        """
        if not self.enabled:
            return False
        try:
            self.client.setex(self.key(product_id), self.ttl, json.dumps(document, default=str))
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Cache write failed for product #{product_id}: {e}")
            return False

    def invalidate(self, product_id: int) -> bool:
        """
        Drop a product's entry after its row changed.

        Returns:
            True if the delete reached Redis, False otherwise
        """
        if not self.enabled:
            return False
        try:
            self.client.delete(self.key(product_id))
            return True
        except redis.RedisError as e:
            logger.error(f"Cache invalidation failed for product #{product_id}: {e}")
            return False

    def ping(self) -> bool:
        """Raises redis.RedisError when Redis is unreachable."""
        return self.client.ping()


# Singleton cache instance
product_cache = ProductCache()
