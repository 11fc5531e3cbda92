from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class CachedCredits(BaseModel):
    """Last known credit counters. Fallback only, the ledger is authoritative."""
    free_credits: int = Field(..., ge=0)
    purchased_credits: int = Field(..., ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CachedProStatus(BaseModel):
    has_pro_subscription: bool = False
    plan_type: Optional[str] = None


class DailyUsage(BaseModel):
    """Subscriber AI operations for one calendar day"""
    date: date
    count: int = Field(default=0, ge=0)
