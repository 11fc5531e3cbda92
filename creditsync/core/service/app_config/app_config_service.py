"""Remote app version config used to prompt for store updates."""

from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from creditsync.core.http_client import create_client
from creditsync.core.logger.logger import get_logger
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()

STORE_NAMES = {"ios": "App Store", "android": "Play Store"}


class PlatformVersionInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    latest_version: str = Field(alias="latestVersion")
    store_url: Optional[str] = Field(default=None, alias="storeUrl")
    force_update: bool = Field(default=False, alias="forceUpdate")
    message: Optional[str] = None


class AppConfig(PlatformVersionInfo):
    current_version: str
    update_available: bool
    store_name: str


def parse_version(version: str) -> List[int]:
    parts = []
    for part in version.strip().split("."):
        try:
            parts.append(int(part))
        except ValueError:
            parts.append(0)
    return parts


def is_update_needed(current_version: str, latest_version: str) -> bool:
    """True when ``latest_version`` is strictly newer, comparing dotted parts left to right"""
    current = parse_version(current_version)
    latest = parse_version(latest_version)

    for i, latest_part in enumerate(latest):
        current_part = current[i] if i < len(current) else 0
        if latest_part > current_part:
            return True
        if latest_part < current_part:
            return False
    return False


class AppConfigService:
    def __init__(
        self,
        url: Optional[str] = None,
        current_version: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.APP_VERSION_URL
        self.current_version = current_version or settings.CLIENT_APP_VERSION
        self.client = client or create_client("app_config")

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch_app_config(self, platform: str) -> Optional[AppConfig]:
        """Fetch the version block for ``platform``; any failure returns None"""
        try:
            response = await self.client.get(self.url, headers={"Cache-Control": "no-cache"})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Config fetch error", extra={"error": str(e)})
            return None

        platform_data = data.get(platform) if isinstance(data, dict) else None
        if not platform_data:
            return None

        try:
            info = PlatformVersionInfo.model_validate(platform_data)
        except ValidationError as e:
            logger.warning("Invalid app config", extra={"platform": platform, "error": str(e)})
            return None

        return AppConfig(
            **info.model_dump(by_alias=True),
            current_version=self.current_version,
            update_available=is_update_needed(self.current_version, info.latest_version),
            store_name=STORE_NAMES.get(platform, "Store"),
        )
