"""Domain errors raised by the credit, purchase and rewards services."""

from typing import Any, Dict, Optional

from creditsync.core.exceptions.handler import ServiceError, ServiceErrorCode


class LedgerUnavailableError(ServiceError):
    """Ledger could not be reached (connection error, timeout, 5xx)."""

    def __init__(self, message: str = "Credit service unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.LEDGER_UNAVAILABLE,
            message=message,
            status_code=503,
            details=details,
        )


class LedgerRequestError(ServiceError):
    """Ledger answered with an unexpected non-2xx status."""

    def __init__(self, message: str = "Credit service request failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.LEDGER_REQUEST_FAILED,
            message=message,
            status_code=502,
            details=details,
        )


class AccountNotFoundError(ServiceError):
    def __init__(self, message: str = "User not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.ACCOUNT_NOT_FOUND,
            message=message,
            status_code=404,
            details=details,
        )


class InsufficientCreditsError(ServiceError):
    def __init__(self, available: int = 0, required: int = 0):
        self.available = available
        self.required = required
        super().__init__(
            code=ServiceErrorCode.INSUFFICIENT_CREDITS,
            message="Insufficient credits",
            status_code=402,
            details={"available": available, "required": required},
        )


class RecoveryFailedError(ServiceError):
    def __init__(self, message: str = "Invalid recovery code"):
        super().__init__(
            code=ServiceErrorCode.RECOVERY_FAILED,
            message=message,
            status_code=400,
        )


class NoRecoveryCodeError(ServiceError):
    def __init__(self, message: str = "No recovery code found"):
        super().__init__(
            code=ServiceErrorCode.NO_RECOVERY_CODE,
            message=message,
            status_code=409,
        )


class DailyLimitExceededError(ServiceError):
    """Pro subscriber hit the daily AI operation cap."""

    def __init__(self, rate_limit_info: Dict[str, Any]):
        self.rate_limit_info = rate_limit_info
        super().__init__(
            code=ServiceErrorCode.DAILY_LIMIT_EXCEEDED,
            message="Daily limit reached. Try again tomorrow.",
            status_code=429,
            details={"rate_limit_info": rate_limit_info},
        )


class PurchaseCancelledError(ServiceError):
    """User dismissed the store sheet. Not a failure."""

    def __init__(self, product_id: Optional[str] = None):
        self.product_id = product_id
        super().__init__(
            code=ServiceErrorCode.PURCHASE_CANCELLED,
            message="Purchase cancelled",
            status_code=499,
            details={"product_id": product_id} if product_id else None,
        )


class PurchaseFailedError(ServiceError):
    def __init__(self, message: str = "Purchase failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.PURCHASE_FAILED,
            message=message,
            status_code=502,
            details=details,
        )


class PurchasePlatformUnavailableError(ServiceError):
    def __init__(self, message: str = "Purchase platform unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.PURCHASE_PLATFORM_UNAVAILABLE,
            message=message,
            status_code=503,
            details=details,
        )


class CheckInRejectedError(ServiceError):
    def __init__(self, message: str = "Already claimed today!", current_streak: int = 0):
        self.current_streak = current_streak
        super().__init__(
            code=ServiceErrorCode.CHECK_IN_REJECTED,
            message=message,
            status_code=409,
            details={"current_streak": current_streak},
        )


class SecureStoreError(ServiceError):
    def __init__(self, message: str = "Secure storage unavailable"):
        super().__init__(
            code=ServiceErrorCode.SECURE_STORE_ERROR,
            message=message,
            status_code=500,
        )
