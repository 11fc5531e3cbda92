from typing import Optional

from pydantic import BaseModel

from creditsync.core.service.user.models import CreditData


class UseCreditsResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    credits: CreditData


class CancelledPurchaseResponse(BaseModel):
    """User dismissed the store sheet; the UI shows nothing"""
    success: bool = False
    cancelled: bool = True
    product_id: Optional[str] = None


class WebhookResponse(BaseModel):
    message: str
