"""
n8n webhook client

All business persistence (users, charges, orders, LOAs, pricing rows) lives behind
n8n workflows; this client is the only place that knows their URLs.
"""
from typing import Any, Dict, List, Optional

from app.core.cache import TransientCache
from app.core.config import Settings, get_settings
from app.core.errors import ErrorCode, error_response
from app.core.http_client import HttpClient
from app.core.logging_config import LoggingConfig
from app.core.security import is_valid_email, log_blocked_access, sanitize_input, validate_field_access

logger = LoggingConfig.get_logger(__name__)

PRICING_CACHE_PREFIX = "aipw_pricing_"


class N8nClient:
    """Client for the n8n webhook endpoints with built-in field access validation"""

    def __init__(
        self,
        http_client: HttpClient,
        cache: Optional[TransientCache] = None,
        settings: Optional[Settings] = None
    ):
        self.http_client = http_client
        self.cache = cache
        self.settings = settings or get_settings()

    async def select(
        self,
        table_name: str,
        columns: List[str],
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = 50,
        sort: Optional[Any] = None
    ) -> Dict[str, Any]:
        """Execute a select query; blocked fields are refused before any network call"""
        validation = validate_field_access(table_name, columns)
        if not validation["valid"]:
            audit = log_blocked_access(table_name, validation["blocked_field"])
            logger.warning(
                "security: blocked field access",
                extra={
                    "event": audit["event"],
                    "table": table_name,
                    "field": validation["blocked_field"],
                }
            )
            return error_response(validation["error"], ErrorCode.BLOCKED_FIELD)

        payload = [
            {
                "table_name": table_name,
                "columns": list(columns),
                "filters": filters or {},
                "page": page,
                "limit": limit,
                "sort": sort if sort is not None else [],
            }
        ]
        return await self._request(self.settings.n8n_select_url, payload)

    async def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        user_data = sanitize_input(user_data)
        if not is_valid_email(user_data.get("email")):
            return error_response("Valid email address is required", ErrorCode.INVALID_EMAIL)
        return await self._request(self.settings.n8n_create_user_url, user_data)

    async def charge_customer(self, charge_data: Dict[str, Any]) -> Dict[str, Any]:
        charge_data = sanitize_input(charge_data)

        for field in ("total_to_charge", "stripe_token", "card_token", "email"):
            if not charge_data.get(field):
                return error_response(f"Required field missing: {field}", ErrorCode.MISSING_FIELD)

        try:
            amount = float(charge_data["total_to_charge"])
        except (TypeError, ValueError):
            amount = 0
        if amount <= 0:
            return error_response("Total to charge must be greater than zero.", ErrorCode.INVALID_AMOUNT)

        return await self._request(self.settings.n8n_charge_customer_url, charge_data)

    async def get_pricing(
        self,
        sales_generated_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
        cache_ttl: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Get the active pricing rows (``cost_json``) for a sales id, cached per id.
        Coupon lookups bypass the cache.
        """
        sales_generated_id = sales_generated_id or self.settings.default_sales_generated_id
        ttl = cache_ttl if cache_ttl is not None else self.settings.pricing_cache_ttl_seconds
        cache_key = f"{PRICING_CACHE_PREFIX}{sales_generated_id}"
        use_cache = self.cache is not None and not coupon_code

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return {"success": True, "data": cached, "error": None, "cached": True}

        filters: Dict[str, Any] = {"sales_generated_id": sales_generated_id, "Active": 1}
        if coupon_code:
            filters["coupon_code"] = coupon_code

        result = await self.select(self.settings.pricing_table, ["cost_json"], filters)

        if result.get("success") and result.get("data"):
            if use_cache:
                self.cache.set(cache_key, result["data"], ttl)
            return {"success": True, "data": result["data"], "error": None, "cached": False}

        return result

    async def submit_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(self.settings.n8n_submit_order_url, payload)

    async def validate_coupon(self, data: Dict[str, Any]) -> Dict[str, Any]:
        coupon_code = (data or {}).get("coupon_code")
        if not coupon_code:
            return error_response("Coupon code is required", ErrorCode.MISSING_FIELD)
        return await self._request(self.settings.n8n_validate_coupon_url, {"coupon_code": coupon_code})

    async def submit_porting_loa(self, email_payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(self.settings.n8n_porting_loa_url, email_payload)

    async def update_loa_signature(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(self.settings.n8n_update_loa_signature_url, payload)

    async def get_loa_by_uuid(self, uuid: str) -> Dict[str, Any]:
        """Fetch a porting LOA record; ``data`` is the first matching row or None"""
        result = await self.select(
            self.settings.porting_loa_table,
            ["*"],
            {"uuid": uuid},
            limit=1,
        )
        if not result.get("success"):
            return result

        rows = result.get("data")
        if isinstance(rows, list):
            record = rows[0] if rows else None
        else:
            record = rows or None
        return {"success": True, "data": record, "error": None}

    async def _request(
        self,
        url: str,
        data: Any,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        merged_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        merged_headers.update(headers or {})

        try:
            response = await self.http_client.request(url, method=method, data=data, headers=merged_headers)
        except Exception as e:
            logger.error(
                "api_error",
                exc_info=True,
                extra={"url": url, "method": method, "error": str(e)}
            )
            return error_response(str(e), ErrorCode.UPSTREAM_ERROR)

        logger.info(
            "api_request",
            extra={"url": url, "method": method, "status": response.get("status", "unknown")}
        )
        return response
