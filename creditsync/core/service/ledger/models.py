"""Wire models for the credit ledger API. The backend speaks camelCase."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LedgerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RegisterResult(LedgerModel):
    recovery_code: str = Field(..., alias="recoveryCode")
    credits: int = Field(default=0, ge=0)
    free_credits_remaining: int = Field(default=0, ge=0, alias="freeCreditsRemaining")

    @property
    def total_available(self) -> int:
        return self.credits + self.free_credits_remaining


class Balance(LedgerModel):
    credits: int = Field(default=0, ge=0)
    free_credits_remaining: int = Field(default=0, ge=0, alias="freeCreditsRemaining")
    total_available: Optional[int] = Field(default=None, alias="totalAvailable")


class AddCreditsResult(LedgerModel):
    """Outcome of a credit grant.

    ``already_processed`` means the transaction id was seen before and nothing
    was added; it is a benign outcome, not an error.
    """
    success: bool
    already_processed: bool = Field(default=False, alias="alreadyProcessed")
    credits_added: int = Field(default=0, alias="creditsAdded")
    new_balance: Optional[int] = Field(default=None, alias="newBalance")
    credits: Optional[int] = None
    message: Optional[str] = None


class UseCreditsResult(LedgerModel):
    credits_used: int = Field(default=0, alias="creditsUsed")
    remaining_credits: int = Field(..., ge=0, alias="remainingCredits")
    remaining_free_credits: int = Field(..., ge=0, alias="remainingFreeCredits")
    total_available: Optional[int] = Field(default=None, alias="totalAvailable")


class RecoverResult(LedgerModel):
    recovery_code: str = Field(..., alias="recoveryCode")
    credits: int = Field(default=0, ge=0)
    free_credits_remaining: int = Field(default=0, ge=0, alias="freeCreditsRemaining")
    total_available: Optional[int] = Field(default=None, alias="totalAvailable")
    message: Optional[str] = None
