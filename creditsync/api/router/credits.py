"""Credit balance and spending endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from creditsync.api.models.request_models import UseCreditsRequest
from creditsync.api.models.response_models import UseCreditsResponse
from creditsync.core.dependencies import get_state_manager
from creditsync.core.logger.logger import logger
from creditsync.core.service.user.models import CreditData
from creditsync.core.service.user.state_manager import UserStateManager

router = APIRouter(
    tags=["credits"],
    responses={
        402: {"description": "Insufficient credits"},
        429: {"description": "Subscriber daily limit reached"},
    }
)


@router.get("/user/state")
async def get_user_state(manager: UserStateManager = Depends(get_state_manager)) -> Dict[str, Any]:
    """Full UI state, including the recovery code shown in settings."""
    return manager.state.model_dump()


@router.get("/credits", response_model=CreditData)
async def get_credits(manager: UserStateManager = Depends(get_state_manager)) -> CreditData:
    return manager.get_credit_data()


@router.post("/credits/use", response_model=UseCreditsResponse)
async def use_credits(
    request: UseCreditsRequest,
    manager: UserStateManager = Depends(get_state_manager)
) -> UseCreditsResponse:
    """
    Spend credits for one AI operation.

    Subscribers over their daily cap get a 429 with the rate limit info.
    A charge that does not go through returns success=false and unchanged credits.
    """
    success = await manager.use_credits(request.cost)
    if not success:
        logger.info("Credit use declined", extra={"cost": request.cost})
    return UseCreditsResponse(
        success=success,
        message=None if success else "Not enough credits",
        credits=manager.get_credit_data(),
    )


@router.post("/credits/sync")
async def sync_credits(manager: UserStateManager = Depends(get_state_manager)) -> Dict[str, Any]:
    state = await manager.sync_balance()
    return {"success": not state.is_offline, "is_offline": state.is_offline, "credits": manager.get_credit_data()}
