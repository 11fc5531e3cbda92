"""
Client for the remote credit ledger.
The ledger is the source of truth for balances; this client never caches.
"""

from typing import Any, Dict, NoReturn, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from creditsync.core.exceptions.base import (
    AccountNotFoundError,
    InsufficientCreditsError,
    LedgerRequestError,
    LedgerUnavailableError,
    RecoveryFailedError,
)
from creditsync.core.http_client import create_client
from creditsync.core.logger.logger import get_logger
from creditsync.core.service.ledger.models import (
    AddCreditsResult,
    Balance,
    RecoverResult,
    RegisterResult,
    UseCreditsResult,
)
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()

ModelT = TypeVar("ModelT", bound=BaseModel)


class LedgerClient:
    """Typed operations against the credit ledger HTTP API"""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or settings.LEDGER_API_URL).rstrip("/")
        self.client = client or create_client("ledger", base_url=self.base_url)
        self.logger = logger

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Send a request, mapping transport failures and 5xx to LedgerUnavailableError"""
        try:
            response = await self.client.request(method, path, json=json_body)
        except httpx.TimeoutException:
            self.logger.error("Ledger request timed out", extra={"method": method, "path": _redact(path)})
            raise LedgerUnavailableError("Credit service timed out")
        except httpx.RequestError as e:
            self.logger.error(
                "Ledger connection error",
                extra={"method": method, "path": _redact(path), "error": str(e)}
            )
            raise LedgerUnavailableError(f"Failed to connect to credit service: {e}")

        self.logger.debug(
            "Ledger response received",
            extra={"method": method, "path": _redact(path), "status_code": response.status_code}
        )

        if response.status_code >= 500:
            self.logger.error(
                "Ledger returned server error",
                extra={"status_code": response.status_code, "response_text": response.text[:500]}
            )
            raise LedgerUnavailableError(details={"status_code": response.status_code})

        return response

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        """JSON object body of a 2xx response; anything else is a malformed response"""
        try:
            data = response.json()
        except ValueError as e:
            self._malformed(response, e)
        if not isinstance(data, dict):
            self._malformed(response, TypeError(f"expected a JSON object, got {type(data).__name__}"))
        return data

    def _validate(self, model: Type[ModelT], response: httpx.Response, data: Dict[str, Any]) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            self._malformed(response, e)

    def _malformed(self, response: httpx.Response, error: Exception) -> NoReturn:
        self.logger.error(
            "Malformed ledger response",
            extra={
                "status_code": response.status_code,
                "error": str(error),
                "response_text": response.text[:200],
            }
        )
        raise LedgerRequestError("Malformed ledger response", details={"status_code": response.status_code})

    async def register(self) -> RegisterResult:
        """Create a new ledger account and return its recovery code"""
        response = await self._request("POST", "/credits/register")
        if response.status_code not in (200, 201):
            raise LedgerRequestError("Failed to register user", details={"status_code": response.status_code})

        result = self._validate(RegisterResult, response, self._decode(response))
        self.logger.info("Registered new ledger account", extra={"credits": result.credits})
        return result

    async def get_balance(self, code: str) -> Balance:
        """
        Get current balances for an account.

        Raises:
            AccountNotFoundError: The code is unknown to the ledger, callers should
                start the recovery flow rather than treat it as a network failure.
        """
        response = await self._request("GET", f"/credits/balance/{code}")
        if response.status_code == 404:
            raise AccountNotFoundError()
        if response.status_code != 200:
            raise LedgerRequestError("Failed to get balance", details={"status_code": response.status_code})

        return self._validate(Balance, response, self._decode(response))

    async def add_credits(self, code: str, amount: int, transaction_id: str) -> AddCreditsResult:
        """
        Grant purchased credits, guarded by a caller-supplied transaction id.

        A transaction id the ledger has already seen comes back with
        ``already_processed=True`` and no second grant.
        """
        response = await self._request(
            "POST",
            "/credits/add",
            {"code": code, "credits": amount, "transactionId": transaction_id}
        )
        if response.status_code == 404:
            raise AccountNotFoundError()
        if response.status_code != 200:
            raise LedgerRequestError("Failed to add credits", details={"status_code": response.status_code})

        data = self._decode(response)
        if data.get("alreadyProcessed"):
            self.logger.info("Credit grant already processed", extra={"transaction_id": transaction_id})
            return AddCreditsResult(
                success=False,
                already_processed=True,
                credits=data.get("credits"),
                message="This purchase was already processed",
            )

        result = self._validate(AddCreditsResult, response, {**data, "success": True})
        self.logger.info(
            "Credits added",
            extra={"transaction_id": transaction_id, "credits_added": result.credits_added}
        )
        return result

    async def use_credits(self, code: str, amount: int) -> UseCreditsResult:
        """
        Deduct credits. The ledger draws free credits before purchased ones and
        returns both counters.

        Raises:
            InsufficientCreditsError: Balance too low, with available/required amounts.
        """
        response = await self._request("POST", "/credits/use", {"code": code, "amount": amount})

        if response.status_code != 200:
            error_data = _safe_json(response)
            if error_data.get("error") == "Insufficient credits":
                raise InsufficientCreditsError(
                    available=error_data.get("available", 0),
                    required=error_data.get("required", amount),
                )
            if response.status_code == 404:
                raise AccountNotFoundError()
            raise LedgerRequestError(
                error_data.get("error") or "Failed to use credits",
                details={"status_code": response.status_code}
            )

        return self._validate(UseCreditsResult, response, self._decode(response))

    async def recover_account(self, new_code: str, current_code: Optional[str] = None) -> RecoverResult:
        """
        Switch to (or merge into) the account identified by ``new_code``.
        The current code lets the backend decide between merge and switch.
        """
        body: Dict[str, Any] = {"code": new_code}
        if current_code:
            body["currentCode"] = current_code

        response = await self._request("POST", "/credits/recover", body)
        if response.status_code != 200:
            error_data = _safe_json(response)
            raise RecoveryFailedError(error_data.get("message") or "Invalid recovery code")

        result = self._validate(RecoverResult, response, self._decode(response))
        self.logger.info("Account recovered", extra={"credits": result.credits})
        return result


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
        return data if isinstance(data, dict) else {}
    except ValueError:
        return {}


def _redact(path: str) -> str:
    # Recovery codes are bearer secrets
    if path.startswith("/credits/balance/"):
        return "/credits/balance/***"
    return path
