from typing import Optional

from pydantic import BaseModel, Field


class UseCreditsRequest(BaseModel):
    """Request model for spending credits on one AI operation."""
    cost: int = Field(default=1, ge=1, le=1000, description="Credits the operation costs")


class RecoverAccountRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=128, description="Recovery code of the account to switch to")


class PurchaseProductRequest(BaseModel):
    """Store result for a purchase by product id."""
    product_id: str = Field(..., min_length=1)
    fetch_token: Optional[str] = Field(None, description="App Store receipt or Play purchase token")
    user_cancelled: bool = False


class PurchasePackageRequest(PurchaseProductRequest):
    package_id: str = Field(..., min_length=1, description="Offering package identifier")
