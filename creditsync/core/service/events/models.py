from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    CUSTOMER_INFO_UPDATED = "customerInfoUpdated"
    SUBSCRIPTION_EXPIRED = "subscriptionExpired"
    STATE_CHANGED = "stateChanged"


class Event(BaseModel):
    type: EventType
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CustomerInfoUpdated(Event):
    """Purchase platform reported a (possibly) changed entitlement set"""
    type: EventType = EventType.CUSTOMER_INFO_UPDATED
    customer_info: Any  # CustomerInfo; typed loosely to keep events free of platform imports
    source: str = "webhook"
    platform_event_type: Optional[str] = None


class SubscriptionExpired(Event):
    """One-time notice that a certain pro -> free transition happened"""
    type: EventType = EventType.SUBSCRIPTION_EXPIRED
    plan_type: Optional[str] = None
    message: str = "Your Pro subscription has ended. Renew to keep unlimited access."


class StateChanged(Event):
    type: EventType = EventType.STATE_CHANGED
    state: Dict[str, Any]
