"""Daily usage counter for pro subscribers."""

from datetime import date, datetime, timedelta
from typing import Dict, Optional

from redis.asyncio import Redis

from creditsync.core.logger.logger import get_logger
from creditsync.core.service.cache.models import DailyUsage
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class SubscriberUsageStore:
    """Device-local count of AI operations a subscriber ran today.

    Uses the client wall-clock date; a stored record from any other day reads
    as zero.
    """

    def __init__(self, redis_client: Redis, daily_limit: Optional[int] = None, key_prefix: Optional[str] = None):
        self.redis = redis_client
        self.daily_limit = daily_limit or settings.SUBSCRIBER_DAILY_LIMIT
        self.key = f"{key_prefix or settings.CACHE_KEY_PREFIX}:daily_usage"

    async def get_usage(self, today: Optional[date] = None) -> DailyUsage:
        today = today or date.today()
        try:
            data = await self.redis.get(self.key)
            if data:
                usage = DailyUsage.model_validate_json(data)
                if usage.date == today:
                    return usage
        except Exception as e:
            logger.error("Failed to read daily usage", extra={"error": str(e)})
        return DailyUsage(date=today, count=0)

    async def increment(self, amount: int = 1, today: Optional[date] = None) -> DailyUsage:
        usage = await self.get_usage(today)
        usage.count += amount
        try:
            await self.redis.set(self.key, usage.model_dump_json())
        except Exception as e:
            logger.error("Failed to write daily usage", extra={"error": str(e)})
        return usage

    def rate_limit_info(self, usage: DailyUsage) -> Dict:
        """Usage summary in the shape returned with limit errors"""
        next_reset = datetime.combine(usage.date + timedelta(days=1), datetime.min.time())
        return {
            "daily_limit": self.daily_limit,
            "daily_used": usage.count,
            "daily_remaining": max(0, self.daily_limit - usage.count),
            "next_reset": next_reset.isoformat(),
        }
