"""
Legacy (non-wizard) order form processing: validate the submitted form and
create the customer account through n8n
"""
from datetime import datetime
from typing import Any, Dict, List

from app.core import catalog
from app.core.logging_config import LoggingConfig
from app.core.security import is_valid_email, sanitize_input
from app.services.n8n_client import N8nClient
from app.services.phone_validator import PhoneValidator

logger = LoggingConfig.get_logger(__name__)

# Agent level slugs used by the older form
LEGACY_AGENT_LEVELS = {
    "essential": "Quick",
    "responsive": "Advanced",
    "conversational": "Conversational",
}


def _resolve_agent_level(level: Any) -> str:
    if not isinstance(level, str):
        return ""
    if level in catalog.AGENT_LEVELS:
        return level
    return LEGACY_AGENT_LEVELS.get(level, "")


class OrderProcessor:
    """Processes the single-page order form"""

    def __init__(self, n8n_client: N8nClient, phone_validator: PhoneValidator):
        self.n8n_client = n8n_client
        self.phone_validator = phone_validator

    async def process_order(self, form_data: Dict[str, Any], client_ip: str = "unknown") -> Dict[str, Any]:
        """
        Validate the form, normalise porting numbers and create the user

        Returns:
            dict with success, data and errors
        """
        form_data = sanitize_input(form_data or {})

        errors = self.validate_order_data(form_data)
        if errors:
            return {"success": False, "data": None, "errors": errors}

        phones: List[Dict[str, Any]] = []
        if self._orders_calls(form_data):
            phone_result = self.process_phone_numbers(form_data)
            if not phone_result["valid"]:
                return {"success": False, "data": None, "errors": phone_result["errors"]}
            phones = phone_result["data"]

        user_data = self.build_user_data(form_data, phones, client_ip)
        user_result = await self.n8n_client.create_user(user_data)

        if not user_result.get("success"):
            logger.error("Failed to create user", extra={"error": user_result.get("error")})
            return {
                "success": False,
                "data": None,
                "errors": [f"Failed to create user account: {user_result.get('error')}"],
            }

        user = user_result.get("data")
        logger.info(
            "Order processed successfully",
            extra={"user_id": user.get("id", "unknown") if isinstance(user, dict) else "unknown"}
        )
        return {
            "success": True,
            "data": {"user": user, "phones": phones, "order": form_data},
            "errors": [],
        }

    def _orders_calls(self, form_data: Dict[str, Any]) -> bool:
        products = form_data.get("selected_products") or []
        return isinstance(products, list) and any(
            catalog.normalize_product(product) == catalog.CALLS_PRODUCT for product in products
        )

    def validate_order_data(self, data: Dict[str, Any]) -> List[str]:
        errors = []

        if not is_valid_email(data.get("email")):
            errors.append("Valid email address is required")
        if not data.get("first_name"):
            errors.append("First name is required")
        if not data.get("last_name"):
            errors.append("Last name is required")

        products = data.get("selected_products")
        if not products or not isinstance(products, list):
            errors.append("At least one product must be selected")
        else:
            for product in products:
                if not catalog.is_known_product(product):
                    errors.append(f"Invalid product: {product}")

        if self._orders_calls(data) and not _resolve_agent_level(data.get("agent_level")):
            errors.append("Valid agent level is required for AI Calls")

        return errors

    def process_phone_numbers(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        phones = []
        errors = []

        calls = form_data.get("ai_calls") or {}
        port_numbers = calls.get("port_numbers") if isinstance(calls, dict) else None

        for index, entry in enumerate(port_numbers or []):
            number = entry.get("number") if isinstance(entry, dict) else None
            if not number:
                continue

            validation = self.phone_validator.validate(number)
            if not validation["valid"]:
                errors.append(
                    f"Phone number #{index + 1} is invalid: {validation['error']} (provided: {number})"
                )
                continue

            phones.append({
                "number": validation["e164"],
                "country": validation["country"],
                "national": validation["national"],
                "provider": entry.get("provider", ""),
            })

        return {"valid": not errors, "data": phones, "errors": errors}

    def build_user_data(self, form_data: Dict[str, Any], phones: List[Dict[str, Any]], client_ip: str = "unknown") -> Dict[str, Any]:
        calls = form_data.get("ai_calls") or {}
        return {
            "email": form_data.get("email", ""),
            "first_name": form_data.get("first_name", ""),
            "last_name": form_data.get("last_name", ""),
            "company": form_data.get("company", ""),
            "phone_number": form_data.get("phone_number", ""),
            "selected_products": [catalog.normalize_product(p) for p in form_data.get("selected_products", [])],
            "agent_level": _resolve_agent_level(form_data.get("agent_level")) or "Quick",
            "selected_addons": form_data.get("selected_addons", []),
            "call_setup_type": calls.get("setup_type", ""),
            "port_numbers": phones,
            "script": calls.get("script", ""),
            "metadata": {
                "source": "widget",
                "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                "ip_address": client_ip,
            },
        }

    async def get_pricing(self, data: Dict[str, Any]) -> Dict[str, Any]:
        data = data or {}
        return await self.n8n_client.get_pricing(
            sales_generated_id=data.get("sales_generated_id"),
            coupon_code=data.get("coupon_code"),
        )

    def get_products(self) -> Dict[str, Any]:
        return catalog.PRODUCTS

    def get_addons(self) -> Dict[str, str]:
        return catalog.ADDONS

    def get_agent_levels(self) -> Dict[str, str]:
        return catalog.AGENT_LEVELS
