"""Purchase, restore and offering endpoints."""

from typing import Union

from fastapi import APIRouter, Depends

from creditsync.api.models.request_models import PurchasePackageRequest, PurchaseProductRequest
from creditsync.api.models.response_models import CancelledPurchaseResponse
from creditsync.core.dependencies import get_purchase_service, get_state_manager
from creditsync.core.exceptions.base import PurchaseCancelledError
from creditsync.core.exceptions.handler import ServiceError
from creditsync.core.logger.logger import logger
from creditsync.core.service.purchases.models import (
    Offerings,
    PurchaseResult,
    RestoreResult,
    StoreReceipt,
)
from creditsync.core.service.purchases.purchase_service import PurchaseService
from creditsync.core.service.user.state_manager import UserStateManager

router = APIRouter(
    prefix="/purchases",
    tags=["purchases"],
    responses={
        502: {"description": "Purchase failed"},
        503: {"description": "Purchase platform unavailable"},
    }
)


@router.get("/offerings", response_model=Offerings)
async def get_offerings(service: PurchaseService = Depends(get_purchase_service)) -> Offerings:
    return await service.get_offerings()


@router.post("/product", response_model=Union[PurchaseResult, CancelledPurchaseResponse])
async def purchase_product(
    request: PurchaseProductRequest,
    service: PurchaseService = Depends(get_purchase_service),
    manager: UserStateManager = Depends(get_state_manager)
):
    receipt = StoreReceipt(**request.model_dump())
    try:
        result = await service.purchase_product(receipt)
    except PurchaseCancelledError as e:
        logger.info("Purchase cancelled by user", extra={"product_id": e.product_id})
        return CancelledPurchaseResponse(product_id=e.product_id)

    await _refresh_balance(manager, result.credits)
    return result


@router.post("/package", response_model=Union[PurchaseResult, CancelledPurchaseResponse])
async def purchase_package(
    request: PurchasePackageRequest,
    service: PurchaseService = Depends(get_purchase_service),
    manager: UserStateManager = Depends(get_state_manager)
):
    receipt = StoreReceipt(**request.model_dump(exclude={"package_id"}))
    try:
        result = await service.purchase_package(request.package_id, receipt)
    except PurchaseCancelledError as e:
        logger.info("Purchase cancelled by user", extra={"product_id": e.product_id})
        return CancelledPurchaseResponse(product_id=e.product_id)

    await _refresh_balance(manager, result.credits)
    return result


@router.post("/restore", response_model=RestoreResult)
async def restore_purchases(
    service: PurchaseService = Depends(get_purchase_service),
    manager: UserStateManager = Depends(get_state_manager)
) -> RestoreResult:
    result = await service.restore_purchases()
    await _refresh_balance(manager, result.total_credits_restored)
    return result


async def _refresh_balance(manager: UserStateManager, credits: int) -> None:
    """Pull the new balance after a grant; subscriptions update through the event stream"""
    if credits > 0 and manager.state.recovery_code:
        try:
            await manager.sync_balance()
        except ServiceError as e:
            logger.warning("Balance refresh after purchase failed", extra={"error": e.message})
