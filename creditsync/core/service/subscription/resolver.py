"""
Subscription status resolver.
Turns an eventually-consistent purchase platform into a pro/free/unknown answer.

Cached customer info is evaluated offline with the grace, long-offline and
clock rollback rules; a direct fetch from the platform settles anything the
cache cannot.
"""

from datetime import datetime, timedelta
from typing import Optional

from creditsync.core.exceptions.handler import ServiceError
from creditsync.core.logger.logger import get_logger
from creditsync.core.service.cache.credit_cache import CreditCache
from creditsync.core.service.purchases.models import CustomerInfo, EntitlementInfo
from creditsync.core.service.purchases.platform.base import PurchasePlatform
from creditsync.core.service.subscription.clock import ClockGuard
from creditsync.core.service.subscription.entitlements import (
    current_subscription,
    infer_plan_type,
    subscription_entitlements,
)
from creditsync.core.service.subscription.models import (
    SubscriptionReason,
    SubscriptionState,
    SubscriptionStatus,
)
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class SubscriptionResolver:
    """Resolves pro status from cached state with a direct-fetch tie-breaker"""

    def __init__(
        self,
        platform: PurchasePlatform,
        cache: CreditCache,
        clock: Optional[ClockGuard] = None,
        grace_days: Optional[int] = None,
        long_offline_days: Optional[int] = None,
        cache_seconds: Optional[int] = None,
    ):
        self.platform = platform
        self.cache = cache
        self.clock = clock or ClockGuard(cache)
        self.grace_days = settings.OFFLINE_GRACE_PERIOD_DAYS if grace_days is None else grace_days
        if long_offline_days is None:
            long_offline_days = settings.LONG_TERM_OFFLINE_DAYS
        self.long_offline = timedelta(days=long_offline_days)
        if cache_seconds is None:
            cache_seconds = settings.CUSTOMER_INFO_CACHE_SECONDS
        self.cache_ttl = timedelta(seconds=cache_seconds)
        self.logger = logger

    def resolve_from(self, customer_info: CustomerInfo, source: str = "event") -> SubscriptionStatus:
        """Evaluate customer info that is already in hand; the answer is certain"""
        entitlements = subscription_entitlements(customer_info)
        if entitlements:
            return SubscriptionStatus(
                state=SubscriptionState.CERTAIN_PRO,
                plan_type=infer_plan_type(entitlements),
                source=source,
                reason=SubscriptionReason.ACTIVE,
            )
        return SubscriptionStatus(
            state=SubscriptionState.CERTAIN_FREE,
            source=source,
            reason=SubscriptionReason.NO_SUBSCRIPTION,
        )

    async def resolve(self) -> SubscriptionStatus:
        """
        Primary check against cached customer info. Fresh cached pro is final;
        anything else is double-checked with a direct fetch. When that fetch
        fails, cached pro (including offline grace) and states that need an
        online check stand, and everything else is UNKNOWN.
        """
        cached = await self._read_cached()
        primary = await self.evaluate_cached(cached)
        if primary.is_pro and self._is_fresh(cached):
            return primary

        try:
            customer_info = await self.platform.get_customer_info()
        except ServiceError as e:
            self.logger.warning(
                "Subscription double-check failed",
                extra={"primary_state": primary.state.value, "error": e.message}
            )
            if primary.is_pro or primary.requires_online_check:
                return primary
            return SubscriptionStatus(
                state=SubscriptionState.UNKNOWN,
                source="platform",
                message="Connect to check subscription status.",
            )

        await self.clock.record()
        secondary = self.resolve_from(customer_info, source="platform")
        if secondary.is_pro and not primary.is_pro:
            self.logger.info(
                "Subscription double-check overrode cached state",
                extra={"primary_state": primary.state.value, "plan_type": secondary.plan_type}
            )
        return secondary

    async def evaluate_cached(self, cached: Optional[CustomerInfo]) -> SubscriptionStatus:
        """
        Offline evaluation, in order: clock rollback, long-term offline with an
        expired subscription, active, cancelled, renewal grace, grace elapsed.

        The expiry used is never earlier than the latest expiry seen online.
        """
        if await self.clock.detect_tampering():
            return SubscriptionStatus(
                state=SubscriptionState.UNKNOWN,
                source="cache",
                reason=SubscriptionReason.CLOCK_TAMPERING_SUSPECTED,
                message="Please connect to verify your subscription.",
                requires_online_check=True,
            )

        if cached is None:
            return SubscriptionStatus(state=SubscriptionState.UNKNOWN, source="cache")

        current = current_subscription(cached)
        if current is None:
            return SubscriptionStatus(
                state=SubscriptionState.CERTAIN_FREE,
                source="cache",
                reason=SubscriptionReason.NO_SUBSCRIPTION,
            )

        now = self.clock.now()
        plan_type = infer_plan_type([current])
        expires = await self._effective_expiry(current)
        expired = expires is not None and now >= expires

        if expired and await self._offline_too_long(cached, now):
            return SubscriptionStatus(
                state=SubscriptionState.UNKNOWN,
                plan_type=plan_type,
                source="cache",
                reason=SubscriptionReason.EXPIRED_LONG_OFFLINE,
                message="Please go online to verify your subscription.",
                requires_online_check=True,
            )

        if current.is_active or not expired:
            return SubscriptionStatus(
                state=SubscriptionState.CERTAIN_PRO,
                plan_type=plan_type,
                source="cache",
                reason=SubscriptionReason.ACTIVE,
            )

        if not current.will_renew:
            return SubscriptionStatus(
                state=SubscriptionState.CERTAIN_FREE,
                source="cache",
                reason=SubscriptionReason.EXPIRED_CANCELLED,
                message="Subscription ended. Renew to continue using Pro features.",
            )

        since_expiry = now - expires
        if since_expiry <= timedelta(days=self.grace_days):
            return SubscriptionStatus(
                state=SubscriptionState.CERTAIN_PRO,
                plan_type=plan_type,
                source="cache",
                reason=SubscriptionReason.ACTIVE_OFFLINE_GRACE,
                message="Connect to verify renewal.",
                days_remaining=max(0, self.grace_days - since_expiry.days),
            )

        return SubscriptionStatus(
            state=SubscriptionState.UNKNOWN,
            plan_type=plan_type,
            source="cache",
            reason=SubscriptionReason.EXPIRED_GRACE_ELAPSED,
            message="Pro paused. Please connect to verify.",
            requires_online_check=True,
        )

    async def _read_cached(self) -> Optional[CustomerInfo]:
        try:
            return await self.platform.get_cached_customer_info()
        except Exception as e:
            self.logger.error("Failed to read cached customer info", extra={"error": str(e)})
            return None

    def _is_fresh(self, cached: Optional[CustomerInfo]) -> bool:
        if cached is None or cached.cached_at is None:
            return False
        return self.clock.now() - cached.cached_at <= self.cache_ttl

    async def _effective_expiry(self, entitlement: EntitlementInfo) -> Optional[datetime]:
        if entitlement.expires_date is None:
            return None
        floor = await self.cache.get_min_access_until()
        if floor is not None and floor > entitlement.expires_date:
            return floor
        return entitlement.expires_date

    async def _offline_too_long(self, cached: CustomerInfo, now: datetime) -> bool:
        last_online = await self.cache.get_last_online_check() or cached.cached_at
        if last_online is None:
            return False
        return now - last_online > self.long_offline
