"""
HTTP client configuration for the ledger and purchase platform clients.
NO RETRY mechanisms - callers fall back to cached state instead.
NO GLOBAL instances - each client manages its own lifecycle.
"""

import httpx
from typing import Optional, Dict, Any

from creditsync.infra.config.settings import get_settings

settings = get_settings()


class HTTPClientConfig:
    """HTTP client configuration shared by outbound clients"""

    @classmethod
    def get_timeout(cls, service: str) -> float:
        """Get timeout for specific service"""
        timeout_map = {
            "default": settings.HTTP_DEFAULT_TIMEOUT,
            "ledger": settings.HTTP_LEDGER_TIMEOUT,
            "purchases": settings.HTTP_PURCHASES_TIMEOUT,
            "app_config": settings.HTTP_APP_CONFIG_TIMEOUT,
        }
        return timeout_map.get(service, settings.HTTP_DEFAULT_TIMEOUT)

    @classmethod
    def get_base_headers(cls) -> Dict[str, str]:
        """Get base headers for HTTP requests"""
        return {
            "User-Agent": f"AINotes-CreditSync/{settings.APP_VERSION}",
            "Accept": "application/json",
        }

    @classmethod
    def create_client_config(cls, service: str = "default", timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Create HTTP client configuration (NOT the client itself).
        Each client should create its own instance using this config.

        Args:
            service: Service name for timeout configuration
            timeout: Override timeout (optional)

        Returns:
            Dict with client configuration
        """
        client_timeout = timeout or cls.get_timeout(service)

        return {
            "timeout": client_timeout,
            "limits": httpx.Limits(
                max_connections=settings.HTTP_MAX_CONNECTIONS,
                max_keepalive_connections=settings.HTTP_MAX_KEEPALIVE_CONNECTIONS
            ),
            "headers": cls.get_base_headers(),
            "follow_redirects": False,
        }


def create_client(service: str = "default", **kwargs) -> httpx.AsyncClient:
    """
    Create an HTTP client for a service.
    WARNING: Remember to close the client after use!

    Args:
        service: Service name for configuration
        **kwargs: Additional httpx.AsyncClient arguments (base_url, transport, headers)

    Returns:
        httpx.AsyncClient: Configured client (must be closed!)
    """
    config = HTTPClientConfig.create_client_config(service)
    extra_headers = kwargs.pop("headers", None)
    if extra_headers:
        config["headers"] = {**config["headers"], **extra_headers}
    config.update(kwargs)
    return httpx.AsyncClient(**config)
