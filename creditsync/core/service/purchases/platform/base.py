"""
Purchase platform abstraction.
Concrete platforms wrap a third-party subscription service and report
entitlements as ``CustomerInfo``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from creditsync.core.logger.logger import get_logger
from creditsync.core.service.purchases.models import (
    CustomerInfo,
    Offerings,
    PurchaseOutcome,
    StoreReceipt,
)


class PurchasePlatform(ABC):
    """
    Abstract base class for purchase/subscription platforms.
    Each platform implementation should inherit from this class.
    """

    name: str = "base"

    def __init__(self):
        self.app_user_id: Optional[str] = None
        self.logger = get_logger(f"{__name__}.{self.name}")

    @abstractmethod
    async def initialize(self) -> bool:
        """Prepare the platform client; returns False when it is not configured"""
        pass

    async def log_in(self, app_user_id: str) -> None:
        """Link subsequent purchases to an app user id (the recovery code)"""
        self.app_user_id = app_user_id
        self.logger.info("Purchase platform user set")

    @abstractmethod
    async def get_offerings(self) -> Offerings:
        pass

    @abstractmethod
    async def purchase_product(self, receipt: StoreReceipt) -> PurchaseOutcome:
        """
        Record a completed store purchase.

        Raises:
            PurchaseCancelledError: The user dismissed the store sheet.
            PurchaseFailedError: The platform rejected the purchase.
        """
        pass

    @abstractmethod
    async def purchase_package(self, package_id: str, receipt: StoreReceipt) -> PurchaseOutcome:
        pass

    @abstractmethod
    async def restore_purchases(self) -> CustomerInfo:
        pass

    @abstractmethod
    async def get_customer_info(self) -> CustomerInfo:
        """Direct fetch from the platform; slower but current"""
        pass

    @abstractmethod
    async def get_cached_customer_info(self) -> Optional[CustomerInfo]:
        """Last known customer info without network access, None if unknown"""
        pass

    @abstractmethod
    async def parse_webhook(self, payload: Dict[str, Any]) -> Optional[str]:
        """Return the app user id a platform webhook refers to, None to ignore it"""
        pass

    async def aclose(self) -> None:
        pass
