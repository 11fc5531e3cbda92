"""
RevenueCat purchase platform over the REST API (v1).

The device runs the native store sheet and hands the receipt to this service,
which records it with RevenueCat and reads back the subscriber's entitlements.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from creditsync.core.exceptions.base import (
    PurchaseCancelledError,
    PurchaseFailedError,
    PurchasePlatformUnavailableError,
)
from creditsync.core.http_client import create_client
from creditsync.core.service.cache.credit_cache import CreditCache
from creditsync.core.service.purchases.models import (
    CustomerInfo,
    EntitlementInfo,
    Offering,
    Offerings,
    Package,
    PurchaseOutcome,
    StoreReceipt,
    StoreTransaction,
)
from creditsync.core.service.purchases.platform.base import PurchasePlatform
from creditsync.core.service.subscription.entitlements import current_subscription
from creditsync.infra.config.settings import get_settings

settings = get_settings()

IGNORED_WEBHOOK_EVENTS = {"TEST", "SUBSCRIBER_ALIAS", "TRANSFER"}


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_subscriber(payload: Dict[str, Any], now: Optional[datetime] = None) -> CustomerInfo:
    """
    Build CustomerInfo from a ``/subscribers`` (or ``/receipts``) response.
    Entitlement activity is evaluated against ``now``.
    """
    now = now or datetime.now(timezone.utc)
    subscriber = payload.get("subscriber", {})
    subscriptions = subscriber.get("subscriptions", {}) or {}

    entitlements: Dict[str, EntitlementInfo] = {}
    for identifier, raw in (subscriber.get("entitlements", {}) or {}).items():
        product_id = raw.get("product_identifier", "")
        expires = _parse_date(raw.get("expires_date"))
        grace_expires = _parse_date(raw.get("grace_period_expires_date"))
        is_active = expires is None or expires > now or (grace_expires is not None and grace_expires > now)

        subscription = subscriptions.get(product_id, {})
        will_renew = bool(subscription) and not (
            subscription.get("unsubscribe_detected_at")
            or subscription.get("billing_issues_detected_at")
            or subscription.get("refunded_at")
        )

        entitlements[identifier] = EntitlementInfo(
            identifier=identifier,
            product_identifier=product_id,
            is_active=is_active,
            will_renew=will_renew,
            expires_date=expires,
            purchase_date=_parse_date(raw.get("purchase_date")),
            period_type=subscription.get("period_type"),
            store=subscription.get("store"),
        )

    transactions = []
    for product_id, purchases in (subscriber.get("non_subscriptions", {}) or {}).items():
        for purchase in purchases:
            transactions.append(StoreTransaction(
                transaction_id=purchase.get("store_transaction_id") or purchase["id"],
                product_identifier=product_id,
                purchase_date=_parse_date(purchase.get("purchase_date")),
                store=purchase.get("store"),
            ))

    purchased_ids = list(dict.fromkeys(
        [t.product_identifier for t in transactions] + list(subscriptions.keys())
    ))

    return CustomerInfo(
        original_app_user_id=subscriber.get("original_app_user_id", ""),
        entitlements=entitlements,
        non_subscription_transactions=transactions,
        all_purchased_product_ids=purchased_ids,
        request_date=_parse_date(payload.get("request_date")),
    )


class RevenueCatPlatform(PurchasePlatform):
    """RevenueCat REST client with a local customer info cache"""

    name = "revenuecat"

    def __init__(
        self,
        cache: CreditCache,
        api_key: Optional[str] = None,
        platform: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self.cache = cache
        self.api_key = api_key or settings.REVENUECAT_API_KEY
        self.platform = platform or settings.REVENUECAT_PLATFORM
        self.client = client
        self._initialized = False

    async def initialize(self) -> bool:
        if self._initialized:
            return True
        if not self.api_key:
            self.logger.warning(f"RevenueCat API key not set for platform: {self.platform}")
            return False

        if self.client is None:
            self.client = create_client(
                "purchases",
                base_url=settings.REVENUECAT_API_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "X-Platform": self.platform,
                },
            )
        self._initialized = True
        self.logger.info("RevenueCat initialized", extra={"platform": self.platform})
        return True

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    def _require_user(self) -> str:
        if not self._initialized:
            raise PurchasePlatformUnavailableError("Purchase platform not configured")
        if not self.app_user_id:
            raise PurchasePlatformUnavailableError("No purchase platform user set")
        return self.app_user_id

    def _subscriber_path(self, app_user_id: str) -> str:
        return f"/subscribers/{quote(app_user_id, safe='')}"

    async def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, json=json_body)
        except httpx.TimeoutException:
            self.logger.error("RevenueCat request timed out", extra={"method": method})
            raise PurchasePlatformUnavailableError("Purchase platform timed out")
        except httpx.RequestError as e:
            self.logger.error("RevenueCat connection error", extra={"method": method, "error": str(e)})
            raise PurchasePlatformUnavailableError(f"Failed to reach purchase platform: {e}")

        if response.status_code >= 500:
            raise PurchasePlatformUnavailableError(details={"status_code": response.status_code})

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            self.logger.error(
                "RevenueCat rejected request",
                extra={"status_code": response.status_code, "rc_code": data.get("code")}
            )
            raise PurchaseFailedError(
                data.get("message") or "Purchase platform rejected the request",
                details={"status_code": response.status_code, "code": data.get("code")},
            )
        return data

    async def _store_and_parse(self, payload: Dict[str, Any]) -> CustomerInfo:
        now = datetime.now(timezone.utc)
        await self.cache.set_customer_info(payload, now)
        await self.cache.set_last_online_check(now)

        customer_info = parse_subscriber(payload, now)
        current = current_subscription(customer_info)
        if current is not None and current.expires_date is not None:
            await self.cache.raise_min_access_until(current.expires_date)
        return customer_info

    async def get_customer_info(self) -> CustomerInfo:
        app_user_id = self._require_user()
        payload = await self._request("GET", self._subscriber_path(app_user_id))
        return await self._store_and_parse(payload)

    async def get_cached_customer_info(self) -> Optional[CustomerInfo]:
        cached = await self.cache.get_customer_info()
        if cached is None:
            return None
        payload, cached_at = cached
        age = (datetime.now(timezone.utc) - cached_at).total_seconds()
        self.logger.debug("Using cached customer info", extra={"age_seconds": round(age)})
        return parse_subscriber(payload).model_copy(update={"cached_at": cached_at})

    async def get_offerings(self) -> Offerings:
        app_user_id = self._require_user()
        data = await self._request("GET", f"{self._subscriber_path(app_user_id)}/offerings")

        offerings = {}
        for raw in data.get("offerings", []):
            offering = Offering(
                identifier=raw["identifier"],
                description=raw.get("description"),
                packages=[
                    Package(identifier=p["identifier"], product_identifier=p["platform_product_identifier"])
                    for p in raw.get("packages", [])
                ],
            )
            offerings[offering.identifier] = offering

        return Offerings(current=offerings.get(data.get("current_offering_id")), all=offerings)

    async def purchase_product(self, receipt: StoreReceipt) -> PurchaseOutcome:
        if receipt.user_cancelled or not receipt.fetch_token:
            raise PurchaseCancelledError(receipt.product_id)

        app_user_id = self._require_user()
        payload = await self._request(
            "POST",
            "/receipts",
            {
                "app_user_id": app_user_id,
                "fetch_token": receipt.fetch_token,
                "product_id": receipt.product_id,
            },
        )
        customer_info = await self._store_and_parse(payload)
        self.logger.info("Purchase recorded", extra={"product_id": receipt.product_id})
        return PurchaseOutcome(product_identifier=receipt.product_id, customer_info=customer_info)

    async def purchase_package(self, package_id: str, receipt: StoreReceipt) -> PurchaseOutcome:
        offerings = await self.get_offerings()
        package = next(
            (p for offering in offerings.all.values() for p in offering.packages if p.identifier == package_id),
            None,
        )
        if package is None:
            raise PurchaseFailedError(f"Unknown package: {package_id}")
        if package.product_identifier != receipt.product_id:
            raise PurchaseFailedError(
                "Receipt does not match package",
                details={"package_product": package.product_identifier, "receipt_product": receipt.product_id},
            )
        return await self.purchase_product(receipt)

    async def restore_purchases(self) -> CustomerInfo:
        # Receipts are already on RevenueCat; restoring means reading them back
        return await self.get_customer_info()

    async def parse_webhook(self, payload: Dict[str, Any]) -> Optional[str]:
        event = payload.get("event") or {}
        event_type = event.get("type")
        if event_type in IGNORED_WEBHOOK_EVENTS:
            self.logger.info("Ignoring webhook event", extra={"event_type": event_type})
            return None

        user_ids = {event.get("app_user_id"), event.get("original_app_user_id"), *(event.get("aliases") or [])}
        if self.app_user_id and self.app_user_id in user_ids:
            return self.app_user_id

        self.logger.info("Webhook for another user ignored", extra={"event_type": event_type})
        return None
