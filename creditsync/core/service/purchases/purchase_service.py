"""Purchase service: records store purchases and grants credit packs through the ledger."""

import asyncio
from typing import Dict, List, Optional

from creditsync.core.exceptions.base import (
    NoRecoveryCodeError,
    PurchasePlatformUnavailableError,
)
from creditsync.core.exceptions.handler import ServiceError
from creditsync.core.logger.logger import get_logger
from creditsync.core.service.cache.recovery_code_store import RecoveryCodeStore
from creditsync.core.service.events.channel import EventChannel
from creditsync.core.service.events.models import CustomerInfoUpdated
from creditsync.core.service.ledger.ledger_client import LedgerClient
from creditsync.core.service.purchases.models import (
    CustomerInfo,
    Offerings,
    PurchaseOutcome,
    PurchaseResult,
    RestoreResult,
    StoreReceipt,
    StoreTransaction,
)
from creditsync.core.service.purchases.platform.base import PurchasePlatform
from creditsync.core.service.subscription.entitlements import subscription_entitlements
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


# Product IDs (must match the store and RevenueCat)
PRODUCT_IDS = {
    # Subscriptions
    "WEEKLY_SUBSCRIPTION": "ai_notes_pro_weekly_subscription",
    "MONTHLY_SUBSCRIPTION": "ai_notes_pro_monthly_subscription",

    # One-time credit packs
    "LITE_PACK": "ai_notes_lite_pack_credits",
    "POWER_PACK": "ai_notes_power_pack_credits",
    "PRO_PACK": "ai_notes_pro_pack_credits",
    "ELITE_PACK": "ai_notes_elite_pack_credits",
    "ULTIMATE_PACK": "ai_notes_ultimate_pack_credits",
    "MEGA_PACK": "ai_notes_mega_pack_credits",
    "SUPREME_PACK": "ai_notes_supreme_pack_credits",
}

# Subscriptions grant unlimited use, not credits
CREDITS_PER_PRODUCT: Dict[str, int] = {
    PRODUCT_IDS["WEEKLY_SUBSCRIPTION"]: 0,
    PRODUCT_IDS["MONTHLY_SUBSCRIPTION"]: 0,
    PRODUCT_IDS["LITE_PACK"]: 100,
    PRODUCT_IDS["POWER_PACK"]: 350,
    PRODUCT_IDS["PRO_PACK"]: 550,
    PRODUCT_IDS["ELITE_PACK"]: 900,
    PRODUCT_IDS["ULTIMATE_PACK"]: 1800,
    PRODUCT_IDS["MEGA_PACK"]: 3500,
    PRODUCT_IDS["SUPREME_PACK"]: 5000,
}


def credit_transaction_id(customer_info: CustomerInfo, transaction: StoreTransaction) -> str:
    """
    Ledger idempotency key for a store transaction.
    Purchase and restore derive the same key, so one real purchase grants once.
    """
    return f"{customer_info.original_app_user_id}_{transaction.transaction_id}"


class PurchaseService:
    """Purchases, restores and credit grants for completed store transactions"""

    def __init__(
        self,
        platform: PurchasePlatform,
        ledger: LedgerClient,
        recovery_codes: RecoveryCodeStore,
        events: Optional[EventChannel] = None,
        restore_timeout: Optional[float] = None,
    ):
        self.platform = platform
        self.ledger = ledger
        self.recovery_codes = recovery_codes
        self.events = events
        self.restore_timeout = restore_timeout or settings.RESTORE_TIMEOUT_SECONDS
        self.logger = logger

    async def _recovery_code(self) -> str:
        code = await self.recovery_codes.get()
        if not code:
            raise NoRecoveryCodeError()
        return code

    async def _publish(self, customer_info: CustomerInfo, source: str) -> None:
        if self.events is not None:
            await self.events.publish(CustomerInfoUpdated(customer_info=customer_info, source=source))

    async def get_offerings(self) -> Offerings:
        return await self.platform.get_offerings()

    async def purchase_product(self, receipt: StoreReceipt) -> PurchaseResult:
        """
        Record a store purchase and grant its credits.

        Raises:
            PurchaseCancelledError: The user cancelled; callers should stay silent.
        """
        outcome = await self.platform.purchase_product(receipt)
        return await self._complete_purchase(outcome)

    async def purchase_package(self, package_id: str, receipt: StoreReceipt) -> PurchaseResult:
        outcome = await self.platform.purchase_package(package_id, receipt)
        return await self._complete_purchase(outcome)

    async def _complete_purchase(self, outcome: PurchaseOutcome) -> PurchaseResult:
        product_id = outcome.product_identifier
        customer_info = outcome.customer_info
        credits = CREDITS_PER_PRODUCT.get(product_id, 0)
        await self._publish(customer_info, "purchase")

        if credits <= 0:
            return PurchaseResult(success=True, product_id=product_id, credits=0)

        transactions = [
            t for t in customer_info.non_subscription_transactions if t.product_identifier == product_id
        ]
        if not transactions:
            # Restore picks it up once the platform reports the transaction
            self.logger.warning("Purchased transaction not reported yet", extra={"product_id": product_id})
            return PurchaseResult(
                success=True,
                product_id=product_id,
                credits=credits,
                error="Credits pending, restore purchases to retry",
            )

        latest = max(transactions, key=lambda t: t.purchase_date.timestamp() if t.purchase_date else 0)
        transaction_id = credit_transaction_id(customer_info, latest)

        try:
            code = await self._recovery_code()
            grant = await self.ledger.add_credits(code, credits, transaction_id)
        except ServiceError as e:
            self.logger.warning(
                "Failed to add credits to server",
                extra={"product_id": product_id, "transaction_id": transaction_id, "error": e.message}
            )
            return PurchaseResult(
                success=True,
                product_id=product_id,
                credits=credits,
                transaction_id=transaction_id,
                error=e.message,
            )

        return PurchaseResult(
            success=True,
            product_id=product_id,
            credits=credits,
            credits_granted=grant.success,
            already_processed=grant.already_processed,
            transaction_id=transaction_id,
        )

    async def restore_purchases(self) -> RestoreResult:
        """
        Re-read purchases from the platform and grant any credit pack the ledger
        has not seen. Raced against the restore timeout.
        """
        try:
            customer_info = await asyncio.wait_for(self.platform.restore_purchases(), timeout=self.restore_timeout)
        except asyncio.TimeoutError:
            self.logger.error("Restore timed out", extra={"timeout_seconds": self.restore_timeout})
            raise PurchasePlatformUnavailableError("Restore timed out")

        await self._publish(customer_info, "restore")
        code = await self._recovery_code()

        credit_transactions = [
            t for t in customer_info.non_subscription_transactions
            if CREDITS_PER_PRODUCT.get(t.product_identifier, 0) > 0
        ]
        results = await asyncio.gather(
            *(self._restore_transaction(code, customer_info, t) for t in credit_transactions)
        )

        total = 0
        processed: List[str] = []
        failed: List[str] = []
        for transaction, granted in zip(credit_transactions, results):
            if granted is None:
                failed.append(transaction.transaction_id)
            elif granted > 0:
                total += granted
                processed.append(transaction.product_identifier)

        active = [e.identifier for e in subscription_entitlements(customer_info)]
        self.logger.info(
            "Purchases restored",
            extra={"total_credits_restored": total, "failed": len(failed), "active_entitlements": active}
        )
        return RestoreResult(
            success=True,
            total_credits_restored=total,
            processed_products=processed,
            active_entitlements=active,
            failed_transactions=failed,
        )

    async def _restore_transaction(
        self, code: str, customer_info: CustomerInfo, transaction: StoreTransaction
    ) -> Optional[int]:
        """Credits newly granted for one transaction, 0 if already processed, None on failure"""
        credits = CREDITS_PER_PRODUCT[transaction.product_identifier]
        transaction_id = credit_transaction_id(customer_info, transaction)
        try:
            grant = await self.ledger.add_credits(code, credits, transaction_id)
        except ServiceError as e:
            self.logger.warning(
                "Failed to restore transaction",
                extra={"transaction_id": transaction_id, "error": e.message}
            )
            return None

        if grant.already_processed:
            self.logger.debug("Transaction already restored", extra={"transaction_id": transaction_id})
            return 0
        return credits

    async def check_pro_access(self) -> bool:
        customer_info = await self.platform.get_customer_info()
        return bool(subscription_entitlements(customer_info))
