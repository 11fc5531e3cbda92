"""
Shared test fixtures.
Redis is replaced by an in-memory double exposing the handful of async
commands the stores use; HTTP backends are faked with httpx.MockTransport.
"""

from typing import Any, Dict, List, Optional

import pytest
from cryptography.fernet import Fernet

from creditsync.core.service.cache.credit_cache import CreditCache
from creditsync.core.service.cache.recovery_code_store import RecoveryCodeStore
from creditsync.core.service.cache.usage_store import SubscriberUsageStore
from creditsync.core.service.rewards.daily_rewards_service import DailyRewardsService


class InMemoryRedis:
    """Async key-value double with decode_responses=True semantics"""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: Any) -> bool:
        self._check()
        self.store[key] = value if isinstance(value, str) else str(value)
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def ping(self) -> bool:
        self._check()
        return True


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def fernet_key():
    return Fernet.generate_key().decode()


@pytest.fixture
def credit_cache(redis_client):
    return CreditCache(redis_client, key_prefix="test")


@pytest.fixture
def recovery_codes(redis_client, fernet_key):
    return RecoveryCodeStore(redis_client, encryption_key=fernet_key, key_prefix="test")


@pytest.fixture
def usage_store(redis_client):
    return SubscriberUsageStore(redis_client, daily_limit=3, key_prefix="test")


@pytest.fixture
def rewards_service(redis_client):
    return DailyRewardsService(redis_client, key_prefix="test")


@pytest.fixture
def subscriber_payload():
    """Builder for RevenueCat ``GET /subscribers/{id}`` responses"""

    def build(
        entitlements: Optional[Dict[str, Dict[str, Any]]] = None,
        subscriptions: Optional[Dict[str, Dict[str, Any]]] = None,
        non_subscriptions: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        original_app_user_id: str = "$RCAnonymousID:abc123",
    ) -> Dict[str, Any]:
        return {
            "request_date": "2026-10-18T10:00:00Z",
            "subscriber": {
                "original_app_user_id": original_app_user_id,
                "entitlements": entitlements or {},
                "subscriptions": subscriptions or {},
                "non_subscriptions": non_subscriptions or {},
            },
        }

    return build
