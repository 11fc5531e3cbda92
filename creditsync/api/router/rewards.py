from fastapi import APIRouter, Depends

from creditsync.core.dependencies import get_rewards_service, get_state_manager
from creditsync.core.service.rewards.daily_rewards_service import DailyRewardsService
from creditsync.core.service.rewards.models import CheckInResult, StreakStatus
from creditsync.core.service.user.state_manager import UserStateManager

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/streak", response_model=StreakStatus)
async def get_streak(rewards: DailyRewardsService = Depends(get_rewards_service)) -> StreakStatus:
    return await rewards.get_streak_status()


@router.post(
    "/check-in",
    response_model=CheckInResult,
    responses={409: {"description": "Already claimed today"}}
)
async def check_in(manager: UserStateManager = Depends(get_state_manager)) -> CheckInResult:
    return await manager.claim_daily_reward()
