from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SubscriptionState(str, Enum):
    CERTAIN_PRO = "certain_pro"
    CERTAIN_FREE = "certain_free"
    UNKNOWN = "unknown"


class SubscriptionReason(str, Enum):
    ACTIVE = "active"
    ACTIVE_OFFLINE_GRACE = "active_offline_grace"
    EXPIRED_CANCELLED = "expired_cancelled"
    EXPIRED_GRACE_ELAPSED = "expired_grace_elapsed"
    EXPIRED_LONG_OFFLINE = "expired_long_offline"
    CLOCK_TAMPERING_SUSPECTED = "clock_tampering_suspected"
    NO_SUBSCRIPTION = "no_subscription"


class SubscriptionStatus(BaseModel):
    """Resolved subscription state. UNKNOWN must never be read as free."""
    state: SubscriptionState
    plan_type: Optional[str] = None
    source: str = Field(default="none", description="cache, platform, event or last_known")
    reason: Optional[SubscriptionReason] = None
    message: Optional[str] = None
    requires_online_check: bool = Field(default=False, description="Only a successful online check can settle this state")
    days_remaining: Optional[int] = Field(default=None, description="Days left of offline grace")
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_certain(self) -> bool:
        return self.state != SubscriptionState.UNKNOWN

    @property
    def is_pro(self) -> bool:
        return self.state == SubscriptionState.CERTAIN_PRO
