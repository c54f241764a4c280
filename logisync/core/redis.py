import redis.asyncio as redis
from logisync.core.config import settings
import logging

logger = logging.getLogger(__name__)

class RedisClient:
    def __init__(self, url: str = None):
        self.url = url or settings.REDIS_URL
        self.redis = None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await self.redis.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            self.redis = None
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis disconnected")

    async def ping(self) -> bool:
        if not self.redis:
            await self.connect()
        return await self.redis.ping()

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message to a pub/sub channel, returns receiver count"""
        if not self.redis:
            await self.connect()
        return await self.redis.publish(channel, message)

# Global Redis client instance
redis_client = RedisClient()
