from datetime import datetime
from typing import Dict

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


async def check_redis_health(request: Request) -> Dict[str, str]:
    """Check Redis connection health."""
    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is None:
        return {"status": "not_initialized"}
    try:
        await redis_client.ping()
        return {"status": "healthy", "message": "Connected"}
    except Exception as e:
        return {"status": "unhealthy", "message": f"Connection failed: {str(e)}"}


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    """Service status: local store, ledger connectivity and WebSocket clients."""
    redis_health = await check_redis_health(request)

    ledger_status = "unknown"
    manager = getattr(request.app.state, "state_manager", None)
    if manager is not None:
        ledger_status = "offline" if manager.state.is_offline else "online"

    ws_clients = 0
    if hasattr(request.app.state, "ws_manager"):
        ws_clients = request.app.state.ws_manager.get_connection_count()

    overall = "ok" if redis_health["status"] == "healthy" and ledger_status == "online" else "degraded"
    return {
        "status": overall,
        "services": {
            "redis": redis_health["status"],
            "ledger": ledger_status,
            "websocket": f"{ws_clients} clients connected",
        },
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }
