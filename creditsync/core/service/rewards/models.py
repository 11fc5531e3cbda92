from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class StreakReward(BaseModel):
    day: int
    credits: int


class DailyRewardsData(BaseModel):
    """Persisted check-in record. Device-local, never synced."""
    last_check_in_date: Optional[date] = None
    current_streak: int = Field(default=0, ge=0, le=5)
    today_checked_in: bool = False
    total_credits_earned: int = Field(default=0, ge=0)


class CheckInResult(BaseModel):
    success: bool
    message: str
    credits: int
    new_streak: int
    is_streak_bonus: bool = False
    credits_granted: bool = False
    error: Optional[str] = None
    data: DailyRewardsData


class StreakStatus(BaseModel):
    current_streak: int
    next_streak_day: int
    can_claim_today: bool
    today_checked_in: bool
    rewards: List[StreakReward]
