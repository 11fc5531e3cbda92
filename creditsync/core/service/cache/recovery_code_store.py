from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from redis.asyncio import Redis

from creditsync.core.exceptions.base import SecureStoreError
from creditsync.core.logger.logger import get_logger
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class RecoveryCodeStore:
    """Encrypted storage for the device's single recovery code"""

    def __init__(self, redis_client: Redis, encryption_key: Optional[str] = None, key_prefix: Optional[str] = None):
        key = encryption_key or settings.SECURE_STORE_KEY
        if not key:
            raise SecureStoreError("SECURE_STORE_KEY is not configured")
        try:
            self.fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise SecureStoreError(f"Invalid SECURE_STORE_KEY: {e}")

        self.redis = redis_client
        self.key = f"{key_prefix or settings.CACHE_KEY_PREFIX}:user_recovery_code"

    async def get(self) -> Optional[str]:
        """
        Get the stored recovery code, None only when no code was ever stored.

        Raises:
            SecureStoreError: The store could not be read or the code could not be decrypted.
        """
        try:
            encrypted = await self.redis.get(self.key)
        except Exception as e:
            logger.error("Error getting recovery code", extra={"error": str(e)})
            raise SecureStoreError("Failed to read recovery code")

        if not encrypted:
            return None
        try:
            return self.fernet.decrypt(encrypted.encode()).decode()
        except InvalidToken:
            logger.error("Stored recovery code could not be decrypted")
            raise SecureStoreError("Stored recovery code could not be decrypted")

    async def set(self, code: str) -> None:
        """Store the recovery code, replacing any previous one"""
        try:
            encrypted = self.fernet.encrypt(code.encode()).decode()
            await self.redis.set(self.key, encrypted)
            logger.info("Recovery code stored")
        except Exception as e:
            logger.error("Error storing recovery code", extra={"error": str(e)})
            raise SecureStoreError("Failed to store recovery code")

    async def clear(self) -> None:
        try:
            await self.redis.delete(self.key)
            logger.info("Recovery code cleared")
        except Exception as e:
            logger.error("Error clearing recovery code", extra={"error": str(e)})
            raise SecureStoreError("Failed to clear recovery code")
