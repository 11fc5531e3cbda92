import json
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from redis.asyncio import Redis

from creditsync.core.logger.logger import get_logger
from creditsync.core.service.cache.models import CachedCredits, CachedProStatus
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class CreditCache:
    """Redis store for last-known credit, subscription and recovery state.

    Nothing here is authoritative: the ledger owns balances and the purchase
    platform owns entitlements. Values are used for instant startup state and
    as the offline fallback.
    """

    def __init__(self, redis_client: Redis, key_prefix: Optional[str] = None):
        self.redis = redis_client
        self.key_prefix = f"{key_prefix or settings.CACHE_KEY_PREFIX}:"

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    async def get_credits(self) -> Optional[CachedCredits]:
        """Get cached credit counters, None if never cached"""
        try:
            data = await self.redis.get(self._key("credits_cache"))
            if not data:
                return None
            return CachedCredits.model_validate_json(data)
        except Exception as e:
            logger.error("Failed to read credits cache", extra={"error": str(e)})
            return None

    async def set_credits(self, free_credits: int, purchased_credits: int) -> None:
        try:
            cached = CachedCredits(
                free_credits=max(0, free_credits),
                purchased_credits=max(0, purchased_credits),
            )
            await self.redis.set(self._key("credits_cache"), cached.model_dump_json())
            logger.debug(
                "Cached credits",
                extra={"free_credits": cached.free_credits, "purchased_credits": cached.purchased_credits}
            )
        except Exception as e:
            logger.error("Failed to write credits cache", extra={"error": str(e)})

    async def get_pro_status(self) -> CachedProStatus:
        try:
            data = await self.redis.get(self._key("pro_status"))
            if not data:
                return CachedProStatus()
            return CachedProStatus.model_validate_json(data)
        except Exception as e:
            logger.error("Failed to read pro status cache", extra={"error": str(e)})
            return CachedProStatus()

    async def set_pro_status(self, has_pro_subscription: bool, plan_type: Optional[str] = None) -> None:
        try:
            status = CachedProStatus(has_pro_subscription=has_pro_subscription, plan_type=plan_type)
            await self.redis.set(self._key("pro_status"), status.model_dump_json())
        except Exception as e:
            logger.error("Failed to write pro status cache", extra={"error": str(e)})

    async def get_last_known_pro(self) -> bool:
        """Last certain pro status, used only to detect pro -> free transitions"""
        try:
            return await self.redis.get(self._key("last_known_pro")) == "1"
        except Exception as e:
            logger.error("Failed to read last known pro flag", extra={"error": str(e)})
            return False

    async def set_last_known_pro(self, is_pro: bool) -> None:
        try:
            await self.redis.set(self._key("last_known_pro"), "1" if is_pro else "0")
        except Exception as e:
            logger.error("Failed to write last known pro flag", extra={"error": str(e)})

    async def get_pending_recovery(self) -> bool:
        try:
            return await self.redis.get(self._key("pending_recovery")) == "1"
        except Exception as e:
            logger.error("Failed to read pending recovery flag", extra={"error": str(e)})
            return False

    async def set_pending_recovery(self, pending: bool) -> None:
        try:
            if pending:
                await self.redis.set(self._key("pending_recovery"), "1")
            else:
                await self.redis.delete(self._key("pending_recovery"))
        except Exception as e:
            logger.error("Failed to write pending recovery flag", extra={"error": str(e)})

    async def get_customer_info(self) -> Optional[Tuple[Dict[str, Any], datetime]]:
        """Cached purchase platform customer payload and when it was cached"""
        try:
            data = await self.redis.get(self._key("customer_info"))
            if not data:
                return None
            cached = json.loads(data)
            return cached["customer_info"], datetime.fromisoformat(cached["cached_at"])
        except Exception as e:
            logger.error("Failed to read customer info cache", extra={"error": str(e)})
            return None

    async def set_customer_info(self, customer_info: Dict[str, Any], cached_at: datetime) -> None:
        try:
            await self.redis.set(
                self._key("customer_info"),
                json.dumps({"customer_info": customer_info, "cached_at": cached_at.isoformat()})
            )
        except Exception as e:
            logger.error("Failed to write customer info cache", extra={"error": str(e)})

    async def _get_datetime(self, name: str) -> Optional[datetime]:
        try:
            data = await self.redis.get(self._key(name))
            return datetime.fromisoformat(data) if data else None
        except Exception as e:
            logger.error("Failed to read cached timestamp", extra={"key": name, "error": str(e)})
            return None

    async def _set_datetime(self, name: str, value: datetime) -> None:
        try:
            await self.redis.set(self._key(name), value.isoformat())
        except Exception as e:
            logger.error("Failed to write cached timestamp", extra={"key": name, "error": str(e)})

    async def get_last_online_check(self) -> Optional[datetime]:
        """When the purchase platform last answered directly"""
        return await self._get_datetime("last_online_check")

    async def set_last_online_check(self, checked_at: datetime) -> None:
        await self._set_datetime("last_online_check", checked_at)

    async def get_min_access_until(self) -> Optional[datetime]:
        """Latest subscription expiry ever seen online"""
        return await self._get_datetime("min_access_until")

    async def raise_min_access_until(self, expires: datetime) -> None:
        """Move the high-water mark forward; an earlier expiry never lowers it"""
        current = await self.get_min_access_until()
        if current is None or expires > current:
            await self._set_datetime("min_access_until", expires)

    async def get_clock_baseline(self) -> Optional[Tuple[datetime, float]]:
        """Wall time and monotonic reading from the last clock check"""
        try:
            data = await self.redis.get(self._key("clock_baseline"))
            if not data:
                return None
            baseline = json.loads(data)
            return datetime.fromisoformat(baseline["wall"]), float(baseline["monotonic"])
        except Exception as e:
            logger.error("Failed to read clock baseline", extra={"error": str(e)})
            return None

    async def set_clock_baseline(self, wall: datetime, monotonic: float) -> None:
        try:
            await self.redis.set(
                self._key("clock_baseline"),
                json.dumps({"wall": wall.isoformat(), "monotonic": monotonic})
            )
        except Exception as e:
            logger.error("Failed to write clock baseline", extra={"error": str(e)})
