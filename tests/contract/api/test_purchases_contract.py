"""Contract tests for purchase, webhook and app config endpoints."""

from unittest.mock import AsyncMock, patch

from creditsync.core.exceptions.base import PurchaseCancelledError, PurchasePlatformUnavailableError
from creditsync.core.service.app_config.app_config_service import AppConfig
from creditsync.core.service.events.models import EventType
from creditsync.core.service.purchases.models import (
    CustomerInfo,
    Offering,
    Offerings,
    Package,
    PurchaseResult,
    RestoreResult,
)

RECEIPT = {"product_id": "ai_notes_lite_pack_credits", "fetch_token": "token-1"}


def test_offerings(client, app):
    offering = Offering(identifier="default", packages=[
        Package(identifier="$rc_weekly", product_identifier="ai_notes_pro_weekly_subscription"),
    ])
    app.state.purchase_service.get_offerings = AsyncMock(
        return_value=Offerings(current=offering, all={"default": offering})
    )

    data = client.get("/api/v1/purchases/offerings").json()

    assert data["current"]["packages"][0]["identifier"] == "$rc_weekly"


def test_purchase_product_refreshes_balance(client, app, state_manager):
    app.state.purchase_service.purchase_product = AsyncMock(return_value=PurchaseResult(
        success=True, product_id=RECEIPT["product_id"], credits=100, credits_granted=True,
        transaction_id="rc-user_GPA.1",
    ))

    response = client.post("/api/v1/purchases/product", json=RECEIPT)

    assert response.status_code == 200
    assert response.json()["credits_granted"] is True
    receipt = app.state.purchase_service.purchase_product.await_args.args[0]
    assert receipt.fetch_token == "token-1"
    state_manager.sync_balance.assert_awaited_once()


def test_cancelled_purchase_is_not_an_error(client, app, state_manager):
    app.state.purchase_service.purchase_product = AsyncMock(
        side_effect=PurchaseCancelledError(RECEIPT["product_id"])
    )

    response = client.post("/api/v1/purchases/product", json={**RECEIPT, "user_cancelled": True})

    assert response.status_code == 200
    assert response.json() == {"success": False, "cancelled": True, "product_id": RECEIPT["product_id"]}
    state_manager.sync_balance.assert_not_awaited()


def test_purchase_package(client, app):
    app.state.purchase_service.purchase_package = AsyncMock(return_value=PurchaseResult(
        success=True, product_id="ai_notes_pro_weekly_subscription",
    ))

    response = client.post(
        "/api/v1/purchases/package",
        json={"package_id": "$rc_weekly", "product_id": "ai_notes_pro_weekly_subscription", "fetch_token": "t"},
    )

    assert response.status_code == 200
    package_id, receipt = app.state.purchase_service.purchase_package.await_args.args
    assert package_id == "$rc_weekly"
    assert receipt.product_id == "ai_notes_pro_weekly_subscription"


def test_restore(client, app, state_manager):
    app.state.purchase_service.restore_purchases = AsyncMock(return_value=RestoreResult(
        success=True, total_credits_restored=350, processed_products=["ai_notes_power_pack_credits"],
    ))

    data = client.post("/api/v1/purchases/restore").json()

    assert data["total_credits_restored"] == 350
    state_manager.sync_balance.assert_awaited_once()


def test_restore_platform_down(client, app):
    app.state.purchase_service.restore_purchases = AsyncMock(
        side_effect=PurchasePlatformUnavailableError("Restore timed out")
    )

    response = client.post("/api/v1/purchases/restore")

    assert response.status_code == 503
    assert response.json()["error"]["message"] == "Restore timed out"


def test_webhook_publishes_refetched_customer_info(client, app):
    customer_info = CustomerInfo(original_app_user_id="CODE-1")
    app.state.purchase_platform.parse_webhook = AsyncMock(return_value="CODE-1")
    app.state.purchase_platform.get_customer_info = AsyncMock(return_value=customer_info)

    with patch("creditsync.api.router.webhook.settings") as mock_settings:
        mock_settings.REVENUECAT_WEBHOOK_AUTH = "hook-secret"
        response = client.post(
            "/webhook/revenuecat",
            json={"event": {"type": "EXPIRATION", "app_user_id": "CODE-1"}},
            headers={"Authorization": "Bearer hook-secret"},
        )

    assert response.status_code == 200
    assert response.json()["message"] == "Webhook processed"
    event = app.state.events.publish.await_args.args[0]
    assert event.type == EventType.CUSTOMER_INFO_UPDATED
    assert event.platform_event_type == "EXPIRATION"
    assert event.customer_info is customer_info


def test_webhook_rejects_bad_auth(client, app):
    app.state.purchase_platform.parse_webhook = AsyncMock(return_value="CODE-1")

    with patch("creditsync.api.router.webhook.settings") as mock_settings:
        mock_settings.REVENUECAT_WEBHOOK_AUTH = "hook-secret"
        response = client.post("/webhook/revenuecat", json={"event": {}}, headers={"Authorization": "wrong"})

    assert response.status_code == 401
    app.state.purchase_platform.parse_webhook.assert_not_awaited()


def test_webhook_for_other_user_ignored(client, app):
    app.state.purchase_platform.parse_webhook = AsyncMock(return_value=None)

    with patch("creditsync.api.router.webhook.settings") as mock_settings:
        mock_settings.REVENUECAT_WEBHOOK_AUTH = None
        response = client.post("/webhook/revenuecat", json={"event": {"type": "RENEWAL", "app_user_id": "x"}})

    assert response.json()["message"] == "Webhook ignored"
    app.state.events.publish.assert_not_awaited()


def test_app_config(client, app):
    app.state.app_config_service.fetch_app_config = AsyncMock(return_value=AppConfig(
        latestVersion="1.2.0", storeUrl="https://apps.apple.com/app/id1",
        current_version="1.0.0", update_available=True, store_name="App Store",
    ))

    data = client.get("/config/app", params={"platform": "ios"}).json()

    assert data["config"]["update_available"] is True
    assert data["config"]["latest_version"] == "1.2.0"


def test_app_config_unavailable(client, app):
    app.state.app_config_service.fetch_app_config = AsyncMock(return_value=None)

    assert client.get("/config/app", params={"platform": "android"}).json() == {"config": None}


def test_app_config_rejects_unknown_platform(client):
    assert client.get("/config/app", params={"platform": "web"}).status_code == 422


def test_webhook_accepts_raw_and_bearer_auth(client, app):
    app.state.purchase_platform.parse_webhook = AsyncMock(return_value=None)

    with patch("creditsync.api.router.webhook.settings") as mock_settings:
        mock_settings.REVENUECAT_WEBHOOK_AUTH = "hook-secret"
        raw = client.post("/webhook/revenuecat", json={"event": {}}, headers={"Authorization": "hook-secret"})
        bearer = client.post("/webhook/revenuecat", json={"event": {}}, headers={"Authorization": "Bearer hook-secret"})
        prefix = client.post("/webhook/revenuecat", json={"event": {}}, headers={"Authorization": "hook-secre"})
        missing = client.post("/webhook/revenuecat", json={"event": {}})

    assert raw.status_code == 200
    assert bearer.status_code == 200
    assert prefix.status_code == 401
    assert missing.status_code == 401
