"""
User state manager.
Single owner of the credit and entitlement state the UI sees. The ledger is
authoritative for balances and the purchase platform for entitlements; the
local cache only seeds startup state and covers offline periods.
"""

import asyncio
from datetime import date
from typing import Optional

from creditsync.core.exceptions.base import (
    AccountNotFoundError,
    CheckInRejectedError,
    DailyLimitExceededError,
    NoRecoveryCodeError,
    RecoveryFailedError,
    SecureStoreError,
)
from creditsync.core.exceptions.handler import ServiceError
from creditsync.core.logger.logger import get_logger
from creditsync.core.service.cache.credit_cache import CreditCache
from creditsync.core.service.cache.recovery_code_store import RecoveryCodeStore
from creditsync.core.service.cache.usage_store import SubscriberUsageStore
from creditsync.core.service.events.channel import EventChannel, Subscription
from creditsync.core.service.events.models import (
    CustomerInfoUpdated,
    EventType,
    StateChanged,
    SubscriptionExpired,
)
from creditsync.core.service.ledger.ledger_client import LedgerClient
from creditsync.core.service.ledger.models import AddCreditsResult
from creditsync.core.service.purchases.platform.base import PurchasePlatform
from creditsync.core.service.rewards.daily_rewards_service import DailyRewardsService, reward_for_day
from creditsync.core.service.rewards.models import CheckInResult
from creditsync.core.service.subscription.models import SubscriptionState, SubscriptionStatus
from creditsync.core.service.subscription.resolver import SubscriptionResolver
from creditsync.core.service.user.models import CreditData, RecoverAccountResult, UserState
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class UserStateManager:
    """Applies credit and subscription business rules on top of the ledger and caches"""

    def __init__(
        self,
        ledger: LedgerClient,
        cache: CreditCache,
        recovery_codes: RecoveryCodeStore,
        usage: SubscriberUsageStore,
        resolver: SubscriptionResolver,
        platform: PurchasePlatform,
        events: EventChannel,
        rewards: DailyRewardsService,
        free_daily_credits: Optional[int] = None,
    ):
        self.ledger = ledger
        self.cache = cache
        self.recovery_codes = recovery_codes
        self.usage = usage
        self.resolver = resolver
        self.platform = platform
        self.events = events
        self.rewards = rewards
        self.free_daily_credits = free_daily_credits or settings.FREE_DAILY_CREDITS

        self.state = UserState(free_credits=self.free_daily_credits)
        self.last_status: Optional[SubscriptionStatus] = None
        self.logger = logger

        # Serializes each credit operation with its pre-check and cache update
        self._credits_lock = asyncio.Lock()
        # Serializes pro -> free detection so one transition yields one notice
        self._status_lock = asyncio.Lock()
        self._status_task: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None

    async def initialize(self) -> UserState:
        """
        Load cached pro status, then authoritative balances from the ledger.
        Falls back to cached counters when the ledger is unreachable.
        """
        self.state.is_loading = True

        cached_pro = await self.cache.get_pro_status()
        self.state.has_pro_subscription = cached_pro.has_pro_subscription
        self.state.plan_type = cached_pro.plan_type

        await self._ensure_account()

        usage = await self.usage.get_usage()
        self.state.subscriber_usage_today = usage.count

        if self._subscription is None:
            self._subscription = self.events.subscribe(EventType.CUSTOMER_INFO_UPDATED, self.apply_customer_info)

        if self.state.recovery_code:
            await self.platform.log_in(self.state.recovery_code)

        self.state.is_loading = False
        await self._publish_state()

        await self.check_subscription_status()

        self.logger.info(
            "User state initialized",
            extra={
                "is_offline": self.state.is_offline,
                "needs_recovery": self.state.needs_recovery,
                "has_pro_subscription": self.state.has_pro_subscription,
            }
        )
        return self.state

    async def _ensure_account(self) -> None:
        """
        Load the balance for the stored recovery code, registering only when no
        code was ever stored. An unreadable code is never replaced.
        """
        try:
            code = await self.recovery_codes.get()
        except SecureStoreError as e:
            self.logger.error("Recovery code unreadable, starting offline", extra={"error": e.message})
            self.state.is_offline = True
            await self._load_cached_state()
            return
        self.state.recovery_code = code

        try:
            if code:
                balance = await self.ledger.get_balance(code)
                await self._set_counters(balance.free_credits_remaining, balance.credits)
            else:
                registered = await self.ledger.register()
                await self.recovery_codes.set(registered.recovery_code)
                self.state.recovery_code = registered.recovery_code
                await self._set_counters(registered.free_credits_remaining, registered.credits)
                self.logger.info("Registered new ledger account")
            self.state.is_offline = False
            self.state.needs_recovery = False
            await self.cache.set_pending_recovery(False)
        except AccountNotFoundError:
            self.logger.warning("Stored recovery code not found on ledger")
            await self._load_cached_counters()
            self.state.needs_recovery = True
            await self.cache.set_pending_recovery(True)
        except ServiceError as e:
            self.logger.warning("Ledger unavailable, using cached credits", extra={"error": e.message})
            self.state.is_offline = True
            await self._load_cached_state()

    async def _load_cached_state(self) -> None:
        """Offline start: counters and the pending-recovery flag from the last session"""
        await self._load_cached_counters()
        self.state.needs_recovery = await self.cache.get_pending_recovery()

    async def _recovery_code(self) -> str:
        """Current recovery code, re-read from secure storage if startup could not read it"""
        if not self.state.recovery_code:
            self.state.recovery_code = await self.recovery_codes.get()
            if self.state.recovery_code:
                await self.platform.log_in(self.state.recovery_code)
        if not self.state.recovery_code:
            raise NoRecoveryCodeError()
        return self.state.recovery_code

    async def _load_cached_counters(self) -> None:
        cached = await self.cache.get_credits()
        if cached is None:
            self.state.free_credits = self.free_daily_credits
            self.state.purchased_credits = 0
        else:
            self.state.free_credits = cached.free_credits
            self.state.purchased_credits = cached.purchased_credits

    async def _set_counters(self, free_credits: int, purchased_credits: int) -> None:
        self.state.free_credits = max(0, free_credits)
        self.state.purchased_credits = max(0, purchased_credits)
        await self.cache.set_credits(self.state.free_credits, self.state.purchased_credits)

    async def _publish_state(self) -> None:
        await self.events.publish(StateChanged(state=self.state.public_dict()))

    async def use_credits(self, cost: int = 1) -> bool:
        """
        Spend credits for one AI operation.

        Subscribers are not charged; they are held to a daily operation cap.
        Everyone else is charged by the ledger, which draws free credits first.
        Returns False without touching state when the charge does not go through.

        Raises:
            DailyLimitExceededError: Subscriber has hit today's cap; no ledger call is made.
        """
        async with self._credits_lock:
            if self.state.has_pro_subscription:
                usage = await self.usage.get_usage()
                if usage.count >= self.usage.daily_limit:
                    raise DailyLimitExceededError(self.usage.rate_limit_info(usage))
                usage = await self.usage.increment()
                self.state.subscriber_usage_today = usage.count
                await self._publish_state()
                return True

            # Advisory only; the ledger decides
            if self.state.total_credits < cost:
                self.logger.info(
                    "Not enough local credits",
                    extra={"available": self.state.total_credits, "required": cost}
                )
                return False

            try:
                code = await self._recovery_code()
            except ServiceError as e:
                self.logger.warning("Cannot use credits without a recovery code", extra={"error": e.message})
                return False

            try:
                result = await self.ledger.use_credits(code, cost)
            except ServiceError as e:
                self.logger.warning(
                    "Credit deduction failed",
                    extra={"cost": cost, "code": e.code, "error": e.message}
                )
                return False

            await self._set_counters(result.remaining_free_credits, result.remaining_credits)
            self.state.is_offline = False

        await self._publish_state()
        return True

    def check_availability(self, cost: int = 1) -> bool:
        if self.state.has_pro_subscription:
            return self.state.subscriber_usage_today < self.usage.daily_limit
        return self.state.total_credits >= cost

    def get_credit_data(self) -> CreditData:
        total = self.state.total_credits
        return CreditData(
            remaining_free=self.state.free_credits,
            purchased_credits=self.state.purchased_credits,
            total_available=total,
            free_limit=self.free_daily_credits,
            is_exhausted=total <= 0 and not self.state.has_pro_subscription,
            has_pro_subscription=self.state.has_pro_subscription,
            plan_type=self.state.plan_type,
            subscriber_usage_today=self.state.subscriber_usage_today,
            subscriber_daily_limit=self.usage.daily_limit,
        )

    async def sync_balance(self) -> UserState:
        """Refresh counters from the ledger; on failure keep them and mark offline"""
        code = await self._recovery_code()

        async with self._credits_lock:
            try:
                balance = await self.ledger.get_balance(code)
            except AccountNotFoundError:
                self.state.needs_recovery = True
                await self.cache.set_pending_recovery(True)
                raise
            except ServiceError as e:
                self.logger.warning("Balance sync failed", extra={"error": e.message})
                self.state.is_offline = True
            else:
                await self._set_counters(balance.free_credits_remaining, balance.credits)
                self.state.is_offline = False

            usage = await self.usage.get_usage()
            self.state.subscriber_usage_today = usage.count

        await self._publish_state()
        return self.state

    async def add_credits(self, amount: int, transaction_id: str) -> AddCreditsResult:
        """Grant credits through the ledger, then refresh counters from it"""
        code = await self._recovery_code()

        result = await self.ledger.add_credits(code, amount, transaction_id)
        if result.already_processed:
            self.logger.info("Credit grant already processed", extra={"transaction_id": transaction_id})
        await self.sync_balance()
        return result

    async def check_subscription_status(self) -> SubscriptionStatus:
        """
        Resolve pro status and apply it when certain.
        An unknown result leaves state as it was and is only returned for information.
        """
        status = await self.resolver.resolve()
        if status.is_certain:
            await self._apply_status(status)
        else:
            self.logger.info(
                "Subscription status unknown, keeping previous state",
                extra={"has_pro_subscription": self.state.has_pro_subscription}
            )
        return status

    async def check_subscription_status_with_timeout(self, timeout: Optional[float] = None) -> SubscriptionStatus:
        """
        Re-check raced against a timeout. On timeout the last known status is
        returned and the check keeps running, applying its result when it lands.
        """
        timeout = settings.SUBSCRIPTION_CHECK_TIMEOUT_SECONDS if timeout is None else timeout

        if self._status_task is None or self._status_task.done():
            self._status_task = asyncio.create_task(self.check_subscription_status())
            self._status_task.add_done_callback(self._on_status_task_done)

        try:
            return await asyncio.wait_for(asyncio.shield(self._status_task), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Subscription check timed out", extra={"timeout_seconds": timeout})
            return self.last_known_status()

    def _on_status_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Background subscription check failed", extra={"error": str(error)})

    def last_known_status(self) -> SubscriptionStatus:
        if self.last_status is None:
            return SubscriptionStatus(
                state=SubscriptionState.UNKNOWN,
                plan_type=self.state.plan_type,
                source="last_known",
            )
        return self.last_status.model_copy(update={"source": "last_known"})

    async def apply_customer_info(self, event: CustomerInfoUpdated) -> None:
        """Entitlement event handler; each event fully replaces pro status"""
        status = self.resolver.resolve_from(event.customer_info, source=event.source)
        await self._apply_status(status)

    async def _apply_status(self, status: SubscriptionStatus) -> None:
        async with self._status_lock:
            was_pro = await self.cache.get_last_known_pro()
            if was_pro and not status.is_pro:
                self.logger.info("Subscription expired", extra={"plan_type": self.state.plan_type})
                await self.events.publish(SubscriptionExpired(plan_type=self.state.plan_type))
            await self.cache.set_last_known_pro(status.is_pro)

            changed = (
                self.state.has_pro_subscription != status.is_pro
                or self.state.plan_type != status.plan_type
            )
            self.state.has_pro_subscription = status.is_pro
            self.state.plan_type = status.plan_type
            self.last_status = status
            await self.cache.set_pro_status(status.is_pro, status.plan_type)

        if changed:
            self.logger.info(
                "Subscription status changed",
                extra={"has_pro_subscription": status.is_pro, "plan_type": status.plan_type, "source": status.source}
            )
            await self._publish_state()

    async def recover_account(self, code: str) -> RecoverAccountResult:
        """
        Switch this device to another account (or merge into it; the ledger decides).

        Raises:
            RecoveryFailedError: The code is blank or the ledger rejected it.
        """
        code = code.strip()
        if not code:
            raise RecoveryFailedError("Please enter a recovery code")
        async with self._credits_lock:
            result = await self.ledger.recover_account(code, self.state.recovery_code)

            await self.recovery_codes.set(result.recovery_code)
            self.state.recovery_code = result.recovery_code
            await self._set_counters(result.free_credits_remaining, result.credits)
            await self.cache.set_pending_recovery(False)
            self.state.needs_recovery = False
            self.state.is_offline = False

        await self.platform.log_in(result.recovery_code)
        self.logger.info("Account recovered")
        await self._publish_state()

        return RecoverAccountResult(
            success=True,
            message=result.message,
            free_credits=self.state.free_credits,
            purchased_credits=self.state.purchased_credits,
        )

    async def claim_daily_reward(self, today: Optional[date] = None) -> CheckInResult:
        """
        Daily check-in. The reward is granted through the ledger before the
        streak is recorded, so a failed grant can be claimed again.

        Raises:
            CheckInRejectedError: Already claimed today.
        """
        today = today or date.today()
        code = await self._recovery_code()

        status = await self.rewards.get_streak_status(today)
        if not status.can_claim_today:
            raise CheckInRejectedError(current_streak=status.current_streak)

        credits = reward_for_day(status.next_streak_day)
        transaction_id = f"checkin_{code}_{today.isoformat()}"
        await self.add_credits(credits, transaction_id)

        result = await self.rewards.perform_check_in(today)
        result.credits_granted = True
        return result

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._status_task is not None and not self._status_task.done():
            self._status_task.cancel()
