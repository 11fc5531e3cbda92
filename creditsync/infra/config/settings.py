from typing import List, Optional
from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # App Settings
    APP_NAME: str = "AI Notes Credit Sync"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Server Settings
    HOST: str = "127.0.0.1"
    PORT: int = 8080

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:8081",  # Expo dev server
        "http://localhost:19006",  # Expo web
        "null"  # For file:// protocol
    ]

    # Redis Settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 10
    CACHE_KEY_PREFIX: str = "ainotes"

    # Credit Ledger Backend
    LEDGER_API_URL: str = "https://ai-notes-app-backend-h9r0.onrender.com/api"

    # HTTP Client Settings (seconds)
    HTTP_DEFAULT_TIMEOUT: float = 10.0
    HTTP_LEDGER_TIMEOUT: float = 15.0
    HTTP_PURCHASES_TIMEOUT: float = 20.0
    HTTP_APP_CONFIG_TIMEOUT: float = 5.0
    HTTP_MAX_CONNECTIONS: int = 20
    HTTP_MAX_KEEPALIVE_CONNECTIONS: int = 5

    # Purchase Platform (RevenueCat REST API)
    REVENUECAT_API_URL: str = "https://api.revenuecat.com/v1"
    REVENUECAT_API_KEY: Optional[str] = None
    REVENUECAT_PLATFORM: str = "ios"  # ios or android
    REVENUECAT_WEBHOOK_AUTH: Optional[str] = None  # Authorization header value sent by webhooks
    CUSTOMER_INFO_CACHE_SECONDS: int = 300  # cached pro status younger than this skips the direct fetch
    OFFLINE_GRACE_PERIOD_DAYS: int = 7
    LONG_TERM_OFFLINE_DAYS: int = 7
    MAX_CLOCK_BACKWARD_JUMP_MINUTES: int = 30

    # Credit Rules
    FREE_DAILY_CREDITS: int = 3
    SUBSCRIBER_DAILY_LIMIT: int = 100  # AI operations per day for pro subscribers
    CREDIT_PACK_MARKER: str = "_pack_credits"

    # Timeouts for user-facing races (seconds)
    SUBSCRIPTION_CHECK_TIMEOUT_SECONDS: float = 3.0
    RESTORE_TIMEOUT_SECONDS: float = 15.0

    # Secure Storage
    SECURE_STORE_KEY: Optional[str] = None  # Fernet key protecting the recovery code

    # App Update Config
    APP_VERSION_URL: str = "https://raw.githubusercontent.com/taptapcreate/ai-notes-app-version/main/version.json"
    CLIENT_APP_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"
        case_sensitive = True

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
