"""App update config endpoint."""

from fastapi import APIRouter, Depends, Query

from creditsync.core.dependencies import get_app_config_service
from creditsync.core.service.app_config.app_config_service import AppConfigService

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/app")
async def get_app_config(
    platform: str = Query(..., pattern="^(ios|android)$"),
    service: AppConfigService = Depends(get_app_config_service)
):
    """
    Latest store version for ``platform`` and whether this build should update.
    Returns ``{"config": null}`` when the remote config cannot be read.
    """
    config = await service.fetch_app_config(platform)
    return {"config": config.model_dump() if config else None}
