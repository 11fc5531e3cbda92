from fastapi import APIRouter, Depends

from creditsync.api.models.request_models import RecoverAccountRequest
from creditsync.core.dependencies import get_state_manager
from creditsync.core.service.user.models import RecoverAccountResult
from creditsync.core.service.user.state_manager import UserStateManager

router = APIRouter(prefix="/account", tags=["account"])


@router.post(
    "/recover",
    response_model=RecoverAccountResult,
    responses={400: {"description": "Invalid recovery code"}}
)
async def recover_account(
    request: RecoverAccountRequest,
    manager: UserStateManager = Depends(get_state_manager)
) -> RecoverAccountResult:
    """Switch this device to the account behind ``code``; the ledger decides whether to merge."""
    return await manager.recover_account(request.code)
