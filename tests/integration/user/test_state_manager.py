"""Integration tests for the user state manager business rules."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from creditsync.core.exceptions.base import (
    AccountNotFoundError,
    CheckInRejectedError,
    DailyLimitExceededError,
    InsufficientCreditsError,
    LedgerUnavailableError,
    PurchasePlatformUnavailableError,
    RecoveryFailedError,
)
from creditsync.core.service.events.models import CustomerInfoUpdated, EventType
from creditsync.core.service.ledger.ledger_client import LedgerClient
from creditsync.core.service.ledger.models import (
    AddCreditsResult,
    Balance,
    RecoverResult,
    RegisterResult,
    UseCreditsResult,
)
from creditsync.core.service.purchases.models import CustomerInfo, EntitlementInfo
from creditsync.core.service.subscription.models import SubscriptionState
from creditsync.core.service.subscription.resolver import SubscriptionResolver
from creditsync.core.service.user.state_manager import UserStateManager

TODAY = date(2026, 10, 18)


def pro_customer(product_id: str = "ai_notes_pro_weekly_subscription") -> CustomerInfo:
    return CustomerInfo(
        original_app_user_id="CODE-1",
        entitlements={"pro": EntitlementInfo(identifier="pro", product_identifier=product_id, is_active=True)},
    )


def free_customer() -> CustomerInfo:
    return CustomerInfo(original_app_user_id="CODE-1")


@pytest.fixture
def ledger():
    mock = MagicMock()
    mock.register = AsyncMock(return_value=RegisterResult(recovery_code="NEW-CODE", credits=0, free_credits_remaining=3))
    mock.get_balance = AsyncMock(return_value=Balance(credits=0, free_credits_remaining=3))
    mock.use_credits = AsyncMock()
    mock.add_credits = AsyncMock()
    mock.recover_account = AsyncMock()
    return mock


@pytest.fixture
def platform():
    mock = MagicMock()
    mock.log_in = AsyncMock()
    mock.get_cached_customer_info = AsyncMock(return_value=None)
    mock.get_customer_info = AsyncMock(side_effect=PurchasePlatformUnavailableError())
    return mock


@pytest.fixture
def events():
    mock = MagicMock()
    mock.publish = AsyncMock()
    return mock


@pytest.fixture
def manager(ledger, credit_cache, recovery_codes, usage_store, platform, events, rewards_service):
    return UserStateManager(
        ledger=ledger,
        cache=credit_cache,
        recovery_codes=recovery_codes,
        usage=usage_store,
        resolver=SubscriptionResolver(platform, credit_cache, grace_days=7),
        platform=platform,
        events=events,
        rewards=rewards_service,
        free_daily_credits=3,
    )


def published(events, event_type):
    return [call.args[0] for call in events.publish.await_args_list if call.args[0].type == event_type]


def set_counters(manager, free, purchased, code="CODE-1"):
    manager.state.recovery_code = code
    manager.state.free_credits = free
    manager.state.purchased_credits = purchased


@pytest.mark.asyncio
class TestInitialize:

    async def test_new_user_registers_and_stores_code(self, manager, ledger, recovery_codes, platform, events):
        state = await manager.initialize()

        ledger.register.assert_awaited_once()
        assert await recovery_codes.get() == "NEW-CODE"
        assert state.recovery_code == "NEW-CODE"
        assert state.free_credits == 3
        assert state.is_loading is False
        platform.log_in.assert_awaited_once_with("NEW-CODE")
        events.subscribe.assert_called_once_with(EventType.CUSTOMER_INFO_UPDATED, manager.apply_customer_info)

    async def test_existing_user_loads_balance(self, manager, ledger, recovery_codes, credit_cache):
        await recovery_codes.set("CODE-1")
        ledger.get_balance.return_value = Balance(credits=120, free_credits_remaining=1)

        state = await manager.initialize()

        ledger.register.assert_not_awaited()
        assert (state.free_credits, state.purchased_credits) == (1, 120)
        cached = await credit_cache.get_credits()
        assert (cached.free_credits, cached.purchased_credits) == (1, 120)

    async def test_offline_falls_back_to_cache(self, manager, ledger, recovery_codes, credit_cache):
        await recovery_codes.set("CODE-1")
        await credit_cache.set_credits(2, 40)
        ledger.get_balance.side_effect = LedgerUnavailableError()

        state = await manager.initialize()

        assert state.is_offline is True
        assert (state.free_credits, state.purchased_credits) == (2, 40)

    async def test_offline_without_cache_defaults_free_to_three(self, manager, ledger, recovery_codes):
        await recovery_codes.set("CODE-1")
        ledger.get_balance.side_effect = LedgerUnavailableError()

        state = await manager.initialize()

        assert state.free_credits == 3
        assert state.purchased_credits == 0

    async def test_unknown_code_flags_recovery(self, manager, ledger, recovery_codes, credit_cache):
        await recovery_codes.set("CODE-1")
        ledger.get_balance.side_effect = AccountNotFoundError()

        state = await manager.initialize()

        assert state.needs_recovery is True
        assert await credit_cache.get_pending_recovery() is True
        ledger.register.assert_not_awaited()

    async def test_cached_pro_status_applied_before_ledger(self, manager, credit_cache, recovery_codes):
        await recovery_codes.set("CODE-1")
        await credit_cache.set_pro_status(True, "monthly")

        state = await manager.initialize()

        # Resolver is unknown (platform down), so the cached value stands
        assert state.has_pro_subscription is True
        assert state.plan_type == "monthly"


@pytest.mark.asyncio
class TestUseCredits:

    async def test_server_counters_replace_local(self, manager, ledger, credit_cache):
        set_counters(manager, free=2, purchased=0)
        ledger.use_credits.return_value = UseCreditsResult(remaining_free_credits=1, remaining_credits=0)

        assert await manager.use_credits(1) is True

        assert manager.state.free_credits == 1
        assert manager.state.purchased_credits == 0
        ledger.use_credits.assert_awaited_once_with("CODE-1", 1)
        cached = await credit_cache.get_credits()
        assert (cached.free_credits, cached.purchased_credits) == (1, 0)

    @pytest.mark.parametrize("error", [
        InsufficientCreditsError(available=1, required=2),
        LedgerUnavailableError(),
        AccountNotFoundError(),
    ])
    async def test_failed_use_leaves_state_untouched(self, manager, ledger, credit_cache, error):
        set_counters(manager, free=1, purchased=5)
        await credit_cache.set_credits(1, 5)
        ledger.use_credits.side_effect = error

        assert await manager.use_credits(2) is False

        assert manager.state.total_credits == 6
        cached = await credit_cache.get_credits()
        assert cached.free_credits + cached.purchased_credits == 6

    async def test_local_precheck_short_circuits(self, manager, ledger):
        set_counters(manager, free=0, purchased=1)

        assert await manager.use_credits(2) is False
        ledger.use_credits.assert_not_awaited()

    async def test_subscriber_not_charged_until_daily_cap(self, manager, ledger, usage_store):
        set_counters(manager, free=0, purchased=0)
        manager.state.has_pro_subscription = True

        for _ in range(usage_store.daily_limit):
            assert await manager.use_credits(1) is True

        with pytest.raises(DailyLimitExceededError) as exc_info:
            await manager.use_credits(1)

        ledger.use_credits.assert_not_awaited()
        assert manager.state.subscriber_usage_today == 3
        assert exc_info.value.rate_limit_info["daily_remaining"] == 0

    async def test_check_availability(self, manager):
        set_counters(manager, free=1, purchased=0)
        assert manager.check_availability(1) is True
        assert manager.check_availability(2) is False

        manager.state.has_pro_subscription = True
        assert manager.check_availability(50) is True

    async def test_credit_data(self, manager):
        set_counters(manager, free=0, purchased=0)
        data = manager.get_credit_data()

        assert data.is_exhausted is True
        assert data.free_limit == 3
        assert data.subscriber_daily_limit == 3


@pytest.mark.asyncio
class TestSubscriptionStatus:

    async def test_unknown_never_downgrades(self, manager, platform):
        manager.state.has_pro_subscription = True
        manager.state.plan_type = "weekly"

        status = await manager.check_subscription_status()

        assert status.state == SubscriptionState.UNKNOWN
        assert manager.state.has_pro_subscription is True
        assert manager.state.plan_type == "weekly"

    async def test_certain_free_downgrades_with_one_notice(self, manager, platform, credit_cache, events):
        await credit_cache.set_last_known_pro(True)
        manager.state.has_pro_subscription = True
        manager.state.plan_type = "monthly"
        platform.get_customer_info.side_effect = None
        platform.get_customer_info.return_value = free_customer()

        await manager.check_subscription_status()
        await manager.check_subscription_status()

        assert manager.state.has_pro_subscription is False
        assert await credit_cache.get_last_known_pro() is False
        notices = published(events, EventType.SUBSCRIPTION_EXPIRED)
        assert len(notices) == 1
        assert notices[0].plan_type == "monthly"

    async def test_certain_pro_upgrades(self, manager, platform, credit_cache):
        platform.get_customer_info.side_effect = None
        platform.get_customer_info.return_value = pro_customer("ai_notes_pro_monthly_subscription")

        status = await manager.check_subscription_status()

        assert status.state == SubscriptionState.CERTAIN_PRO
        assert manager.state.has_pro_subscription is True
        assert manager.state.plan_type == "monthly"
        assert await credit_cache.get_last_known_pro() is True
        assert (await credit_cache.get_pro_status()).has_pro_subscription is True

    async def test_entitlement_events_applied_in_order(self, manager, events):
        await manager.apply_customer_info(CustomerInfoUpdated(customer_info=pro_customer()))
        assert manager.state.has_pro_subscription is True

        await manager.apply_customer_info(CustomerInfoUpdated(customer_info=free_customer()))
        assert manager.state.has_pro_subscription is False
        assert len(published(events, EventType.SUBSCRIPTION_EXPIRED)) == 1

    async def test_timed_out_check_still_applies_result(self, manager, platform):
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return pro_customer()

        platform.get_customer_info.side_effect = slow_fetch

        status = await manager.check_subscription_status_with_timeout(timeout=0.01)

        assert status.source == "last_known"
        assert status.state == SubscriptionState.UNKNOWN
        assert manager.state.has_pro_subscription is False

        release.set()
        await manager._status_task
        assert manager.state.has_pro_subscription is True
        assert manager.last_known_status().is_pro

    async def test_fast_check_returns_fresh_status(self, manager, platform):
        platform.get_customer_info.side_effect = None
        platform.get_customer_info.return_value = pro_customer()

        status = await manager.check_subscription_status_with_timeout(timeout=1)

        assert status.is_pro
        assert status.source == "platform"


@pytest.mark.asyncio
class TestAccountAndRewards:

    async def test_recover_replaces_code_and_counters(self, manager, ledger, recovery_codes, credit_cache, platform):
        await recovery_codes.set("OLD-CODE")
        await credit_cache.set_pending_recovery(True)
        set_counters(manager, free=0, purchased=0, code="OLD-CODE")
        manager.state.needs_recovery = True
        ledger.recover_account.return_value = RecoverResult(
            recovery_code="NEW-CODE", credits=500, free_credits_remaining=3, message="Account recovered"
        )

        result = await manager.recover_account(" NEW-CODE ")

        ledger.recover_account.assert_awaited_once_with("NEW-CODE", "OLD-CODE")
        assert result.success is True
        assert await recovery_codes.get() == "NEW-CODE"
        assert (manager.state.free_credits, manager.state.purchased_credits) == (3, 500)
        assert manager.state.needs_recovery is False
        assert await credit_cache.get_pending_recovery() is False
        platform.log_in.assert_awaited_once_with("NEW-CODE")

    async def test_failed_recovery_keeps_state(self, manager, ledger, recovery_codes):
        await recovery_codes.set("OLD-CODE")
        set_counters(manager, free=2, purchased=10, code="OLD-CODE")
        ledger.recover_account.side_effect = RecoveryFailedError()

        with pytest.raises(RecoveryFailedError):
            await manager.recover_account("BAD")

        assert await recovery_codes.get() == "OLD-CODE"
        assert manager.state.total_credits == 12

    async def test_add_credits_already_processed(self, manager, ledger):
        set_counters(manager, free=3, purchased=100)
        ledger.add_credits.return_value = AddCreditsResult(success=False, already_processed=True, credits=100)
        ledger.get_balance.return_value = Balance(credits=100, free_credits_remaining=3)

        result = await manager.add_credits(100, "tx_1")

        assert result.already_processed is True
        assert manager.state.purchased_credits == 100

    async def test_daily_reward_granted_through_ledger(self, manager, ledger):
        set_counters(manager, free=3, purchased=0)
        ledger.add_credits.return_value = AddCreditsResult(success=True, credits_added=1, new_balance=1)
        ledger.get_balance.return_value = Balance(credits=1, free_credits_remaining=3)

        result = await manager.claim_daily_reward(TODAY)

        ledger.add_credits.assert_awaited_once_with("CODE-1", 1, "checkin_CODE-1_2026-10-18")
        assert result.credits_granted is True
        assert result.new_streak == 1
        assert manager.state.purchased_credits == 1

        with pytest.raises(CheckInRejectedError):
            await manager.claim_daily_reward(TODAY)
        assert ledger.add_credits.await_count == 1

    async def test_failed_grant_does_not_record_check_in(self, manager, ledger, rewards_service):
        set_counters(manager, free=3, purchased=0)
        ledger.add_credits.side_effect = LedgerUnavailableError()

        with pytest.raises(LedgerUnavailableError):
            await manager.claim_daily_reward(TODAY)

        status = await rewards_service.get_streak_status(TODAY)
        assert status.can_claim_today is True

    async def test_blank_recovery_code_rejected_before_ledger(self, manager, ledger):
        set_counters(manager, free=2, purchased=10, code="OLD-CODE")

        with pytest.raises(RecoveryFailedError):
            await manager.recover_account("   ")

        ledger.recover_account.assert_not_awaited()
        assert manager.state.recovery_code == "OLD-CODE"


def captive_portal_ledger() -> LedgerClient:
    base_url = "http://ledger.test/api"
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>captive portal</html>"))
    return LedgerClient(base_url=base_url, client=httpx.AsyncClient(base_url=base_url, transport=transport))


@pytest.mark.asyncio
class TestLedgerAndStoreFailures:

    async def test_malformed_ledger_response_declines_use(self, manager, credit_cache):
        manager.ledger = captive_portal_ledger()
        set_counters(manager, free=2, purchased=0)
        await credit_cache.set_credits(2, 0)

        assert await manager.use_credits(1) is False

        assert (manager.state.free_credits, manager.state.purchased_credits) == (2, 0)
        cached = await credit_cache.get_credits()
        assert (cached.free_credits, cached.purchased_credits) == (2, 0)

    async def test_malformed_ledger_response_starts_offline(self, manager, recovery_codes, credit_cache):
        manager.ledger = captive_portal_ledger()
        await recovery_codes.set("CODE-1")
        await credit_cache.set_credits(1, 40)

        state = await manager.initialize()

        assert state.is_offline is True
        assert state.is_loading is False
        assert (state.free_credits, state.purchased_credits) == (1, 40)

    async def test_unreadable_code_never_registers_new_account(
        self, manager, ledger, recovery_codes, credit_cache, redis_client, platform
    ):
        await recovery_codes.set("EXISTING-CODE")
        await credit_cache.set_credits(1, 250)
        store_get = redis_client.get
        failed = []

        async def flaky_get(key):
            if key.endswith("user_recovery_code") and not failed:
                failed.append(key)
                raise ConnectionError("redis blip")
            return await store_get(key)

        redis_client.get = flaky_get

        state = await manager.initialize()

        ledger.register.assert_not_awaited()
        assert state.is_offline is True
        assert (state.free_credits, state.purchased_credits) == (1, 250)
        assert await recovery_codes.get() == "EXISTING-CODE"

        await manager.sync_balance()

        ledger.get_balance.assert_awaited_once_with("EXISTING-CODE")
        assert manager.state.recovery_code == "EXISTING-CODE"
        assert manager.state.is_offline is False
        platform.log_in.assert_awaited_once_with("EXISTING-CODE")

    async def test_offline_restart_keeps_pending_recovery(self, manager, ledger, recovery_codes, credit_cache):
        await recovery_codes.set("CODE-1")
        await credit_cache.set_pending_recovery(True)
        ledger.get_balance.side_effect = LedgerUnavailableError()

        state = await manager.initialize()

        assert state.is_offline is True
        assert state.needs_recovery is True

    async def test_found_account_clears_pending_recovery(self, manager, recovery_codes, credit_cache):
        await recovery_codes.set("CODE-1")
        await credit_cache.set_pending_recovery(True)

        state = await manager.initialize()

        assert state.needs_recovery is False
        assert await credit_cache.get_pending_recovery() is False
