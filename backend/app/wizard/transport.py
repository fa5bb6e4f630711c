"""
Transports carrying wizard actions to the API proxy
"""
from typing import Any, Dict, Optional, Protocol

import httpx

from app.core.logging_config import LoggingConfig
from app.services.api_proxy import ACTION_PREFIX, ApiProxy

logger = LoggingConfig.get_logger(__name__)


class TransportError(Exception):
    """Raised when the proxy cannot be reached or answers with a non-2xx status"""
    pass


class ProxyTransport(Protocol):
    async def call(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...


class LocalTransport:
    """Calls the API proxy in-process"""

    def __init__(self, api_proxy: ApiProxy):
        self.api_proxy = api_proxy

    async def call(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.api_proxy.handle(action, data)


class HttpTransport:
    """
    Calls a running service over HTTP: fetches a nonce from the widget config and
    POSTs ``{action, nonce, data}`` to the proxy endpoint
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._nonce: Optional[str] = None
        self._proxy_path = "/api/proxy"

    async def _load_config(self):
        try:
            response = await self._client.get(f"{self.base_url}/api/widget/config")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to load widget config: {e}") from e

        try:
            config = response.json()
        except ValueError as e:
            raise TransportError(f"Widget config is not JSON: {e}") from e
        self._nonce = config.get("nonce")
        self._proxy_path = config.get("api_proxy") or self._proxy_path

    async def _post(self, action: str, data: Dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(
                f"{self.base_url}{self._proxy_path}",
                json={"action": f"{ACTION_PREFIX}{action}", "nonce": self._nonce, "data": data},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"API call failed: {e}") from e

    async def call(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if self._nonce is None:
            await self._load_config()

        response = await self._post(action, data)
        if response.status_code == 403:
            # Nonce expired, refresh once
            logger.info("Refreshing proxy nonce", extra={"action": action})
            await self._load_config()
            response = await self._post(action, data)

        if not response.is_success:
            raise TransportError(f"API call failed: {response.status_code} {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"API call returned a non-JSON body: {e}") from e

    async def aclose(self):
        await self._client.aclose()
