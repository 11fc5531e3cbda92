"""Daily check-in streak with a five day reward cycle."""

from datetime import date, timedelta
from typing import Optional

from redis.asyncio import Redis

from creditsync.core.exceptions.base import CheckInRejectedError
from creditsync.core.logger.logger import get_logger
from creditsync.core.service.rewards.models import (
    CheckInResult,
    DailyRewardsData,
    StreakReward,
    StreakStatus,
)
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()

STREAK_LENGTH = 5

STREAK_REWARDS = [
    StreakReward(day=1, credits=1),
    StreakReward(day=2, credits=1),
    StreakReward(day=3, credits=2),
    StreakReward(day=4, credits=2),
    StreakReward(day=5, credits=4),  # Bonus day
]


def reward_for_day(day: int) -> int:
    reward = next((r for r in STREAK_REWARDS if r.day == day), None)
    return reward.credits if reward else 1


def next_streak(data: DailyRewardsData, today: date) -> int:
    """Streak day a check-in on ``today`` would land on"""
    if data.last_check_in_date == today - timedelta(days=1):
        return (data.current_streak % STREAK_LENGTH) + 1
    if data.last_check_in_date == today:
        return data.current_streak
    return 1


class DailyRewardsService:
    """Check-in streak persisted in the local store"""

    def __init__(self, redis_client: Redis, key_prefix: Optional[str] = None):
        self.redis = redis_client
        self.key = f"{key_prefix or settings.CACHE_KEY_PREFIX}:daily_rewards_data"

    async def load(self, today: Optional[date] = None) -> DailyRewardsData:
        today = today or date.today()
        try:
            raw = await self.redis.get(self.key)
            if not raw:
                return DailyRewardsData()
            data = DailyRewardsData.model_validate_json(raw)
        except Exception as e:
            logger.error("Error loading daily rewards data", extra={"error": str(e)})
            return DailyRewardsData()

        if data.last_check_in_date != today:
            data.today_checked_in = False
        return data

    async def save(self, data: DailyRewardsData) -> None:
        try:
            await self.redis.set(self.key, data.model_dump_json())
        except Exception as e:
            logger.error("Error saving daily rewards data", extra={"error": str(e)})

    async def perform_check_in(self, today: Optional[date] = None) -> CheckInResult:
        """
        Claim today's reward.

        Raises:
            CheckInRejectedError: Today was already claimed; the streak is unchanged.
        """
        today = today or date.today()
        data = await self.load(today)

        if data.last_check_in_date == today and data.today_checked_in:
            raise CheckInRejectedError(current_streak=data.current_streak)

        new_streak = next_streak(data, today)
        credits = reward_for_day(new_streak)

        updated = data.model_copy(update={
            "last_check_in_date": today,
            "current_streak": new_streak,
            "today_checked_in": True,
            "total_credits_earned": data.total_credits_earned + credits,
        })
        await self.save(updated)

        logger.info("Daily check-in", extra={"streak": new_streak, "credits": credits})
        return CheckInResult(
            success=True,
            message=f"You earned {credits} credit{'s' if credits > 1 else ''}!",
            credits=credits,
            new_streak=new_streak,
            is_streak_bonus=new_streak == STREAK_LENGTH,
            data=updated,
        )

    async def get_streak_status(self, today: Optional[date] = None) -> StreakStatus:
        today = today or date.today()
        data = await self.load(today)
        yesterday = today - timedelta(days=1)

        display_streak = data.current_streak
        # A missed day breaks the streak; it restarts at 1 on the next check-in
        if data.last_check_in_date not in (today, yesterday):
            display_streak = 0

        today_checked_in = data.today_checked_in and data.last_check_in_date == today
        return StreakStatus(
            current_streak=display_streak,
            next_streak_day=next_streak(data, today),
            can_claim_today=not today_checked_in,
            today_checked_in=today_checked_in,
            rewards=STREAK_REWARDS,
        )
