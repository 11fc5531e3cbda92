from typing import Optional

from fastapi import APIRouter, Depends, Query

from creditsync.core.dependencies import get_state_manager
from creditsync.core.service.subscription.models import SubscriptionStatus
from creditsync.core.service.user.state_manager import UserStateManager

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.get("/status", response_model=SubscriptionStatus)
async def get_subscription_status(
    timeout: Optional[float] = Query(None, gt=0, le=30, description="Seconds to wait before using the last known status"),
    manager: UserStateManager = Depends(get_state_manager)
) -> SubscriptionStatus:
    """
    Foreground re-check raced against a timeout.
    An ``unknown`` state is informational; the stored pro status is left as it was.
    """
    return await manager.check_subscription_status_with_timeout(timeout)
