from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from creditsync.api.middleware.logging.request_logging import RequestLoggingMiddleware
from creditsync.api.router import (
    account,
    config,
    credits,
    health,
    purchases,
    rewards,
    subscription,
    webhook,
    websocket,
)
from creditsync.core.exceptions.handler import GlobalErrorHandler, ServiceError
from creditsync.core.logger.logger import logger
from creditsync.core.service.app_config.app_config_service import AppConfigService
from creditsync.core.service.cache.credit_cache import CreditCache
from creditsync.core.service.cache.recovery_code_store import RecoveryCodeStore
from creditsync.core.service.cache.usage_store import SubscriberUsageStore
from creditsync.core.service.events.channel import EventChannel
from creditsync.core.service.ledger.ledger_client import LedgerClient
from creditsync.core.service.purchases.platform.revenuecat import RevenueCatPlatform
from creditsync.core.service.purchases.purchase_service import PurchaseService
from creditsync.core.service.rewards.daily_rewards_service import DailyRewardsService
from creditsync.core.service.subscription.resolver import SubscriptionResolver
from creditsync.core.service.user.state_manager import UserStateManager
from creditsync.core.service.websocket.manager import ConnectionManager
from creditsync.infra.config.redis import get_redis
from creditsync.infra.config.settings import settings


async def init_services(app: FastAPI) -> None:
    """Build every collaborator once and hang it on ``app.state``"""
    redis_client = await get_redis()
    app.state.redis = redis_client

    cache = CreditCache(redis_client)
    recovery_codes = RecoveryCodeStore(redis_client)
    events = EventChannel()
    ledger = LedgerClient()

    platform = RevenueCatPlatform(cache)
    if not await platform.initialize():
        logger.warning("Purchase platform not configured, purchases are disabled")

    app.state.events = events
    app.state.ledger = ledger
    app.state.purchase_platform = platform
    app.state.rewards_service = DailyRewardsService(redis_client)
    app.state.app_config_service = AppConfigService()
    app.state.purchase_service = PurchaseService(platform, ledger, recovery_codes, events)
    app.state.state_manager = UserStateManager(
        ledger=ledger,
        cache=cache,
        recovery_codes=recovery_codes,
        usage=SubscriberUsageStore(redis_client),
        resolver=SubscriptionResolver(platform, cache),
        platform=platform,
        events=events,
        rewards=app.state.rewards_service,
    )

    app.state.ws_manager.attach(events)
    await events.start()
    await app.state.state_manager.initialize()


async def close_services(app: FastAPI) -> None:
    state = app.state
    if hasattr(state, "state_manager"):
        await state.state_manager.close()
    if hasattr(state, "events"):
        state.ws_manager.detach()
        await state.events.stop()
    for name in ("ledger", "purchase_platform", "app_config_service"):
        if hasattr(state, name):
            await getattr(state, name).aclose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="""
AI Notes credit sync - local service behind the AI Notes client.

## Services
- **Credits**: free daily and purchased credits, backed by the remote ledger
- **Subscription**: pro status resolved from the purchase platform
- **Purchases**: credit packs and subscriptions, restore
- **Rewards**: daily check-in streak
- **Events**: WebSocket push of state changes
        """,
        version=settings.APP_VERSION,
        docs_url="/",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,  # 10 minutes
    )

    # Request logging middleware (should be first to catch all requests)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(ServiceError, GlobalErrorHandler.service_error_handler)
    app.add_exception_handler(RequestValidationError, GlobalErrorHandler.validation_error_handler)
    app.add_exception_handler(Exception, GlobalErrorHandler.general_exception_handler)

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(credits.router, prefix="/api/v1")
    app.include_router(account.router, prefix="/api/v1")
    app.include_router(subscription.router, prefix="/api/v1")
    app.include_router(purchases.router, prefix="/api/v1")
    app.include_router(rewards.router, prefix="/api/v1")

    app.include_router(config.router)  # /config endpoints
    app.include_router(webhook.router)  # /webhook endpoints
    app.include_router(websocket.router)  # /ws endpoint

    app.state.ws_manager = ConnectionManager()

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "Starting credit sync service",
            extra={"service": settings.APP_NAME, "version": settings.APP_VERSION}
        )
        try:
            await init_services(app)
        except ServiceError as e:
            logger.error("Failed to initialize services on startup", extra={"error": e.message})
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info(
            "Shutting down credit sync service",
            extra={"service": settings.APP_NAME, "version": settings.APP_VERSION}
        )
        await close_services(app)

    return app
