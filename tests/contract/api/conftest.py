"""
Contract test fixtures.
The app is built without running startup, and collaborators on ``app.state``
are replaced with mocks.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from creditsync.app import create_app
from creditsync.core.service.user.models import CreditData, UserState


def credit_data(**overrides) -> CreditData:
    values = dict(
        remaining_free=2,
        purchased_credits=100,
        total_available=102,
        free_limit=3,
        is_exhausted=False,
        has_pro_subscription=False,
        plan_type=None,
        subscriber_usage_today=0,
        subscriber_daily_limit=100,
    )
    values.update(overrides)
    return CreditData(**values)


@pytest.fixture
def state_manager():
    manager = MagicMock()
    manager.state = UserState(recovery_code="CODE-1", free_credits=2, purchased_credits=100, is_loading=False)
    manager.get_credit_data.return_value = credit_data()
    manager.use_credits = AsyncMock(return_value=True)
    manager.sync_balance = AsyncMock(return_value=manager.state)
    manager.recover_account = AsyncMock()
    manager.claim_daily_reward = AsyncMock()
    manager.check_subscription_status_with_timeout = AsyncMock()
    return manager


@pytest.fixture
def app(state_manager, redis_client):
    app = create_app()
    app.state.redis = redis_client
    app.state.state_manager = state_manager
    app.state.purchase_service = MagicMock()
    app.state.purchase_platform = MagicMock()
    app.state.rewards_service = MagicMock()
    app.state.app_config_service = MagicMock()
    app.state.events = MagicMock()
    app.state.events.publish = AsyncMock()
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
