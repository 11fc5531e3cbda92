"""Webhook endpoint for purchase platform entitlement changes."""

import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from creditsync.api.models.response_models import WebhookResponse
from creditsync.core.dependencies import get_event_channel, get_purchase_platform
from creditsync.core.logger.logger import logger
from creditsync.core.service.events.channel import EventChannel
from creditsync.core.service.events.models import CustomerInfoUpdated
from creditsync.core.service.purchases.platform.base import PurchasePlatform
from creditsync.infra.config.settings import settings

router = APIRouter(prefix="/webhook", tags=["webhook"])


def verify_webhook_auth(authorization: Optional[str] = Header(None)) -> None:
    """Compare the Authorization header with the value configured on the platform dashboard"""
    expected = settings.REVENUECAT_WEBHOOK_AUTH
    if not expected:
        return
    provided = (authorization or "").encode()
    accepted = [secrets.compare_digest(provided, value.encode()) for value in (expected, f"Bearer {expected}")]
    if not any(accepted):
        logger.warning("Webhook rejected: bad authorization")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook authorization")


@router.post("/revenuecat", response_model=WebhookResponse, dependencies=[Depends(verify_webhook_auth)])
async def revenuecat_webhook(
    payload: Dict[str, Any],
    platform: PurchasePlatform = Depends(get_purchase_platform),
    events: EventChannel = Depends(get_event_channel)
) -> WebhookResponse:
    """
    Entitlement change notice. The payload only says *that* something changed,
    so the subscriber is re-fetched before the change is published.
    """
    app_user_id = await platform.parse_webhook(payload)
    if app_user_id is None:
        return WebhookResponse(message="Webhook ignored")

    event_type = (payload.get("event") or {}).get("type")
    customer_info = await platform.get_customer_info()
    await events.publish(
        CustomerInfoUpdated(customer_info=customer_info, source="webhook", platform_event_type=event_type)
    )

    logger.info("Webhook processed", extra={"event_type": event_type})
    return WebhookResponse(message="Webhook processed")
