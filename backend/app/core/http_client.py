"""
HTTP client adapter used for every outbound webhook/API call
"""
import json
from typing import Any, Dict, Optional, Tuple

import httpx

from app.core.config import get_settings
from app.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class HttpClient:
    """
    Thin wrapper over httpx.AsyncClient that always returns an envelope:
    ``{success, data, error, status, raw_body}``
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        verify: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.verify = verify if verify is not None else settings.http_verify_ssl
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily created shared client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify,
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        url: str,
        method: str = "POST",
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        form: bool = False,
        auth: Optional[Tuple[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Execute a request

        Args:
            url: Absolute URL
            method: HTTP method
            data: JSON body, form fields (form=True) or query params (GET)
            headers: Extra headers
            form: Send data url-encoded instead of JSON
            auth: Basic auth (username, password)
        """
        method = method.upper()
        kwargs: Dict[str, Any] = {"headers": headers or {}}
        if auth:
            kwargs["auth"] = auth

        if data is not None:
            if method == "GET":
                kwargs["params"] = data
            elif form:
                kwargs["data"] = data
            else:
                kwargs["json"] = data

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                f"HTTP request failed: {e}",
                extra={"url": url, "method": method, "error_type": type(e).__name__}
            )
            return {
                "success": False,
                "data": None,
                "error": str(e) or type(e).__name__,
                "status": 0,
            }

        status = response.status_code
        raw_body = response.text
        try:
            body = response.json() if raw_body else None
        except json.JSONDecodeError:
            body = raw_body

        success = 200 <= status < 300
        return {
            "success": success,
            "data": body,
            "error": None if success else f"HTTP {status}",
            "status": status,
            "raw_body": raw_body,
        }

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
