from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class UserState(BaseModel):
    """In-memory credit and entitlement state shown to the UI"""
    recovery_code: Optional[str] = None
    free_credits: int = Field(default=3, ge=0)
    purchased_credits: int = Field(default=0, ge=0)
    has_pro_subscription: bool = False
    plan_type: Optional[str] = None
    is_offline: bool = False
    needs_recovery: bool = False
    is_loading: bool = True
    subscriber_usage_today: int = Field(default=0, ge=0)

    @property
    def total_credits(self) -> int:
        return self.free_credits + self.purchased_credits

    def public_dict(self) -> Dict[str, Any]:
        """State safe to broadcast; the recovery code stays out of events"""
        return self.model_dump(exclude={"recovery_code"})


class CreditData(BaseModel):
    remaining_free: int
    purchased_credits: int
    total_available: int
    free_limit: int
    is_exhausted: bool
    has_pro_subscription: bool
    plan_type: Optional[str] = None
    subscriber_usage_today: int = 0
    subscriber_daily_limit: int


class RecoverAccountResult(BaseModel):
    success: bool
    message: Optional[str] = None
    free_credits: int
    purchased_credits: int
