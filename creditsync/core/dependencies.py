"""
FastAPI dependency injection functions.
Every collaborator is built once at startup and owned by ``app.state``.
"""

from fastapi import Request

from creditsync.core.service.app_config.app_config_service import AppConfigService
from creditsync.core.service.events.channel import EventChannel
from creditsync.core.service.purchases.platform.base import PurchasePlatform
from creditsync.core.service.purchases.purchase_service import PurchaseService
from creditsync.core.service.rewards.daily_rewards_service import DailyRewardsService
from creditsync.core.service.user.state_manager import UserStateManager
from creditsync.core.service.websocket.manager import ConnectionManager


def get_state_manager(request: Request) -> UserStateManager:
    return request.app.state.state_manager


def get_purchase_service(request: Request) -> PurchaseService:
    return request.app.state.purchase_service


def get_purchase_platform(request: Request) -> PurchasePlatform:
    return request.app.state.purchase_platform


def get_rewards_service(request: Request) -> DailyRewardsService:
    return request.app.state.rewards_service


def get_app_config_service(request: Request) -> AppConfigService:
    return request.app.state.app_config_service


def get_event_channel(request: Request) -> EventChannel:
    return request.app.state.events


def get_ws_manager(request: Request) -> ConnectionManager:
    return request.app.state.ws_manager
