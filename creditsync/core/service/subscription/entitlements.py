"""Entitlement filtering shared by the resolver and the purchase service."""

from datetime import datetime, timezone
from typing import List, Optional

from creditsync.core.service.purchases.models import CustomerInfo, EntitlementInfo
from creditsync.infra.config.settings import get_settings

settings = get_settings()

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def is_credit_pack(entitlement: EntitlementInfo, marker: Optional[str] = None) -> bool:
    """One-time credit packs may surface as entitlements but never mean pro"""
    return (marker or settings.CREDIT_PACK_MARKER) in (entitlement.product_identifier or "")


def subscription_entitlements(customer_info: CustomerInfo, marker: Optional[str] = None) -> List[EntitlementInfo]:
    """Active entitlements that come from a recurring subscription, in platform order"""
    return [
        entitlement for entitlement in customer_info.entitlements.values()
        if entitlement.is_active and not is_credit_pack(entitlement, marker)
    ]


def current_subscription(customer_info: CustomerInfo, marker: Optional[str] = None) -> Optional[EntitlementInfo]:
    """
    The subscription entitlement that decides pro status offline: the first
    active one, otherwise the one that expired last. Credit packs never count.
    """
    candidates = [e for e in customer_info.entitlements.values() if not is_credit_pack(e, marker)]
    if not candidates:
        return None
    for entitlement in candidates:
        if entitlement.is_active:
            return entitlement
    return max(candidates, key=lambda e: e.expires_date or _NEVER)


def infer_plan_type(entitlements: List[EntitlementInfo]) -> Optional[str]:
    if not entitlements:
        return None
    if "weekly" in entitlements[0].product_identifier:
        return "weekly"
    return "monthly"
