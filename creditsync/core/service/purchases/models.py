"""Models for the purchase platform adapter."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class EntitlementInfo(BaseModel):
    """An entitlement as reported by the purchase platform"""
    identifier: str
    product_identifier: str
    is_active: bool
    will_renew: bool = False
    expires_date: Optional[datetime] = None  # None for lifetime grants
    purchase_date: Optional[datetime] = None
    period_type: Optional[str] = None
    store: Optional[str] = None


class StoreTransaction(BaseModel):
    """A one-time (non-subscription) purchase"""
    transaction_id: str
    product_identifier: str
    purchase_date: Optional[datetime] = None
    store: Optional[str] = None


class CustomerInfo(BaseModel):
    original_app_user_id: str
    entitlements: Dict[str, EntitlementInfo] = Field(default_factory=dict)
    non_subscription_transactions: List[StoreTransaction] = Field(default_factory=list)
    all_purchased_product_ids: List[str] = Field(default_factory=list)
    request_date: Optional[datetime] = None
    cached_at: Optional[datetime] = None  # set when read back from the local cache

    @property
    def active_entitlements(self) -> Dict[str, EntitlementInfo]:
        return {key: ent for key, ent in self.entitlements.items() if ent.is_active}


class Package(BaseModel):
    identifier: str
    product_identifier: str


class Offering(BaseModel):
    identifier: str
    description: Optional[str] = None
    packages: List[Package] = Field(default_factory=list)


class Offerings(BaseModel):
    current: Optional[Offering] = None
    all: Dict[str, Offering] = Field(default_factory=dict)


class StoreReceipt(BaseModel):
    """What the device hands over after the native store sheet closes"""
    product_id: str = Field(..., min_length=1, description="Store product identifier")
    fetch_token: Optional[str] = Field(None, description="App Store receipt or Play purchase token")
    user_cancelled: bool = Field(default=False, description="Store sheet dismissed by the user")


class PurchaseOutcome(BaseModel):
    product_identifier: str
    customer_info: CustomerInfo


class PurchaseResult(BaseModel):
    """Result of a purchase after credits were granted"""
    success: bool
    product_id: str
    credits: int = 0
    credits_granted: bool = False
    already_processed: bool = False
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class RestoreResult(BaseModel):
    success: bool
    total_credits_restored: int = 0
    processed_products: List[str] = Field(default_factory=list)
    active_entitlements: List[str] = Field(default_factory=list)
    failed_transactions: List[str] = Field(default_factory=list)
