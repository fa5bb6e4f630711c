"""
API proxy: the only entry point the browser widget talks to.

Webhook URLs never leave the server; the widget sends an action name plus data,
the action is checked against an allow-list and dispatched to a handler that
returns the uniform ``{success, data, error}`` envelope.
"""
import asyncio
import base64
import binascii
import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.config import Settings, get_settings
from app.core.errors import ErrorCode, ProxyError, error_response, success_response
from app.core.logging_config import LoggingConfig
from app.core.security import sanitize_input
from app.services.loa_generator import (
    PdfGenerationError,
    PortingLOAGenerator,
    html_to_pdf,
    render_porting_email,
)
from app.services.n8n_client import N8nClient
from app.services.phone_validator import PhoneValidator
from app.services.pricing import expected_charge_cents, order_charges

logger = LoggingConfig.get_logger(__name__)

ACTION_PREFIX = "aipw_"

ALLOWED_ACTIONS = (
    "charge_customer",
    "complete_order",
    "send_porting_loa",
    "get_pricing",
    "create_user",
    "validate_phone",
    "submit_porting_loa",
    "validate_coupon",
    "get_loa_by_uuid",
    "update_loa_signature",
)

CHARGE_REQUIRED_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone_number",
    "stripe_token",
    "card_token",
    "total_to_charge",
    "products",
)


def _amount(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _decode_html(encoded: str) -> str:
    """Decode base64 HTML produced by the browser (btoa is latin-1)"""
    try:
        raw = base64.b64decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise ProxyError(f"Invalid LOA HTML encoding: {e}", ErrorCode.LOA_SUBMIT_FAILED) from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


async def _render_pdf(html: str) -> bytes:
    # xhtml2pdf is synchronous
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, html_to_pdf, html)


def _user_id(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("user_id") or value.get("userId") or value.get("id") or "")
    return str(value)


def _pdf_attachment(filename: str, content: str, mime_type: str = "application/pdf") -> Dict[str, str]:
    return {
        "filename": filename,
        "content": content,
        "encoding": "base64",
        "type": mime_type,
    }


def _utility_bill_attachment(data: Dict[str, Any], name: str) -> Optional[Dict[str, str]]:
    if not data.get("utility_bill_base64"):
        return None
    extension = data.get("utility_bill_extension") or "pdf"
    return _pdf_attachment(
        f"utility_bill_{name}.{extension}",
        data["utility_bill_base64"],
        data.get("utility_bill_mime_type") or "application/pdf",
    )


class ApiProxy:
    """Allow-listed action router in front of the n8n webhooks"""

    def __init__(
        self,
        n8n_client: N8nClient,
        phone_validator: Optional[PhoneValidator] = None,
        settings: Optional[Settings] = None
    ):
        self.n8n_client = n8n_client
        self.phone_validator = phone_validator or PhoneValidator()
        self.settings = settings or get_settings()

    async def handle(self, action: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Handle a proxied request

        Args:
            action: Action name, with or without the ``aipw_`` prefix
            data: Request data (sanitised before dispatch)

        Returns:
            Response envelope
        """
        action = (action or "").strip()
        if action.startswith(ACTION_PREFIX):
            action = action[len(ACTION_PREFIX):]

        if action not in ALLOWED_ACTIONS:
            logger.warning("Invalid API action attempted", extra={"action": action})
            return error_response("Invalid action", ErrorCode.INVALID_ACTION)

        data = sanitize_input(data if isinstance(data, dict) else {})
        logger.info("API proxy request", extra={"action": action, "data_keys": sorted(data.keys())})

        handler = getattr(self, f"_handle_{action}", None)
        if handler is None:
            return error_response("Handler not implemented", ErrorCode.NOT_IMPLEMENTED)

        try:
            return await handler(data)
        except ProxyError as e:
            logger.warning(
                f"API proxy request rejected: {e.message}",
                extra={"action": action, "error_code": e.error_code.value}
            )
            return e.to_dict()
        except Exception as e:
            logger.error(
                f"API proxy error: {e}",
                exc_info=True,
                extra={"action": action, "error_type": type(e).__name__}
            )
            return error_response(str(e), ErrorCode.PROXY_ERROR)

    def _sales_generated_id(self, data: Dict[str, Any]) -> str:
        return data.get("sales_generated_id") or self.settings.default_sales_generated_id

    async def _current_cost_json(self, sales_generated_id: str) -> List[Dict[str, Any]]:
        """Fetch the active pricing rows straight from n8n (never cached)"""
        result = await self.n8n_client.select(
            self.settings.pricing_table,
            ["cost_json"],
            {"sales_generated_id": sales_generated_id, "Active": 1},
        )
        if not result.get("success") or not result.get("data"):
            raise ProxyError("Unable to retrieve pricing information", ErrorCode.PRICING_NOT_FOUND)

        rows = result["data"]
        pricing = rows[0] if isinstance(rows, list) else rows
        cost_json = pricing.get("cost_json") if isinstance(pricing, dict) else None
        if isinstance(cost_json, str):
            try:
                cost_json = json.loads(cost_json)
            except json.JSONDecodeError:
                cost_json = None

        if not cost_json:
            raise ProxyError("Pricing data not found", ErrorCode.PRICING_NOT_FOUND)
        return cost_json

    async def _handle_charge_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for field in CHARGE_REQUIRED_FIELDS:
            if not data.get(field):
                raise ProxyError(f"Required field missing: {field}", ErrorCode.MISSING_FIELD)

        if _amount(data["total_to_charge"]) <= 0:
            raise ProxyError("Total to charge must be greater than zero.", ErrorCode.INVALID_AMOUNT)

        products = data["products"] if isinstance(data["products"], list) else [data["products"]]
        sales_generated_id = self._sales_generated_id(data)
        cost_json = await self._current_cost_json(sales_generated_id)

        # Client sends cents
        expected = expected_charge_cents(cost_json, len(products))
        if expected != int(round(_amount(data["total_to_charge"]))):
            logger.warning(
                "Charge amount does not match current pricing",
                extra={"expected": expected, "product_count": len(products)}
            )
            raise ProxyError("Invalid Pricing Package.", ErrorCode.INVALID_AMOUNT)

        first_name = data.get("first_name", "")
        last_name = data.get("last_name", "")
        charge_data = {
            "name": f"{first_name} {last_name}".strip(),
            "first_name": first_name,
            "last_name": last_name,
            "email": data.get("email", ""),
            "phone_number": data.get("phone_number", ""),
            "address_line_1": data.get("shipping_address", ""),
            "address_line_2": "",
            "city": data.get("shipping_city", ""),
            "state": data.get("shipping_state", ""),
            "Country": data.get("shipping_country") or "US",
            "Zip_Code": data.get("shipping_zip", ""),
            "stripe_token": data["stripe_token"],
            "card_token": data["card_token"],
            "total_to_charge": expected,
            "sales_generated_id": sales_generated_id,
        }

        result = await self.n8n_client.charge_customer(charge_data)

        payment_method = result.get("data", {}).get("payment_method") if isinstance(result.get("data"), dict) else None
        if result.get("success") and isinstance(payment_method, dict):
            payment_method.pop("card_token", None)

        return result

    async def _handle_complete_order(self, data: Dict[str, Any]) -> Dict[str, Any]:
        products = data.get("products") or []
        if not isinstance(products, list):
            products = [products]
        payment = data.get("payment") or {}
        call_setup = data.get("call_setup") or None

        logger.info(
            "Starting order completion",
            extra={"has_payment": bool(payment), "products": products}
        )

        if _amount(data.get("total_to_charge")) <= 0:
            raise ProxyError("Total to charge must be greater than zero.", ErrorCode.INVALID_AMOUNT)

        cost_json = await self._current_cost_json(self._sales_generated_id(data))
        charges = order_charges(cost_json, products, call_setup if isinstance(call_setup, dict) else None)

        order_payload = {
            "products": products,
            "addons": data.get("addons") or [],
            "user_setup_total": data.get("setup_total", 0),
            "user_weekly_cost": data.get("weekly_cost", 0),
            "user_by_minute_cost": data.get("by_minute_cost", 0),
            "payment": payment,
            "call_setup": call_setup,
            "submitted_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "setup_total": charges.setup_total,
            "weekly_cost": charges.weekly_cost,
            "by_minute_charge": charges.by_minute_charge,
        }

        logger.info(
            "Submitting order to n8n",
            extra={"products_count": len(products), "has_call_setup": bool(call_setup)}
        )
        result = await self.n8n_client.submit_order(order_payload)

        if not result.get("success"):
            logger.error("Order submission failed", extra={"error": result.get("error")})
            return result

        upstream = result.get("data") if isinstance(result.get("data"), dict) else {}
        order_id = upstream.get("order_id") or f"order_{uuid.uuid4().hex[:13]}"
        charge_id = payment.get("charge_id") if isinstance(payment, dict) else None

        logger.info("Order completed successfully", extra={"order_id": order_id, "charge_id": charge_id})
        return success_response({
            "order_id": order_id,
            "charge_id": charge_id,
            "message": "Order completed successfully",
        })

    async def _handle_get_pricing(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.n8n_client.get_pricing(
            sales_generated_id=data.get("sales_generated_id") or None,
            coupon_code=data.get("coupon_code") or None,
        )

    async def _handle_validate_coupon(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("coupon_code"):
            raise ProxyError("Coupon code is required", ErrorCode.MISSING_FIELD)
        return await self.n8n_client.validate_coupon(data)

    async def _handle_create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.n8n_client.create_user(data)

    async def _handle_validate_phone(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("phone"):
            raise ProxyError("Phone number is required", ErrorCode.MISSING_PHONE)

        result = self.phone_validator.validate(data["phone"], data.get("country") or None)
        return {
            "success": result["valid"],
            "data": result,
            "error": result["error"],
        }

    def _customer_body(self, info: Dict[str, Any], data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        first_name = info.get("first_name", "")
        last_name = info.get("last_name", "")
        return {
            "name": f"{first_name} {last_name}".strip(),
            "first_name": first_name,
            "last_name": last_name,
            "email": info.get("email", ""),
            "phone_number": info.get("phone_number", ""),
            "address_line_1": info.get("shipping_address") or info.get("address", ""),
            "address_line_2": "",
            "city": info.get("shipping_city") or info.get("city", ""),
            "state": info.get("shipping_state") or info.get("state", ""),
            "Country": info.get("shipping_country") or "US",
            "Zip_Code": info.get("shipping_zip") or info.get("zip", ""),
            "user_id": user_id,
            "numbers_to_port": data.get("numbers_to_port") or [],
            "submitted_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "sales_generated_id": self._sales_generated_id(data),
        }

    def _email_payload(
        self,
        subject: str,
        customer_body: Dict[str, Any],
        attachments: List[Dict[str, str]]
    ) -> Dict[str, Any]:
        return {
            "sender_name": self.settings.loa_sender_name,
            "recipient_email": customer_body.get("email") or self.settings.loa_fallback_recipient,
            "subject": f"{subject} - {customer_body['first_name']} {customer_body['last_name']}".rstrip(),
            "messagebody": render_porting_email(customer_body, customer_body["numbers_to_port"]),
            "attachment": attachments,
            "body": customer_body,
        }

    async def _handle_submit_porting_loa(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("userId"):
            raise ProxyError("User ID is required", ErrorCode.MISSING_USER_ID)
        if not data.get("loa_html"):
            raise ProxyError("LOA HTML is required", ErrorCode.MISSING_LOA_HTML)
        if not data.get("numbers_to_port") or not isinstance(data["numbers_to_port"], list):
            raise ProxyError("Phone numbers array is required", ErrorCode.MISSING_PHONE_NUMBERS)

        user_id = _user_id(data["userId"])
        try:
            pdf = await _render_pdf(_decode_html(data["loa_html"]))
        except PdfGenerationError as e:
            raise ProxyError(f"Failed to submit LOA: {e}", ErrorCode.LOA_SUBMIT_FAILED) from e

        pdf_base64 = base64.b64encode(pdf).decode("ascii")
        logger.info("LOA PDF generated", extra={"size": len(pdf_base64)})

        payment_info = data.get("paymentInfo") if isinstance(data.get("paymentInfo"), dict) else {}
        customer_body = self._customer_body(payment_info, data, user_id)

        attachments = [
            _pdf_attachment(f"porting_loa_{user_id}_{datetime.now().strftime('%Y%m%d')}.pdf", pdf_base64)
        ]
        utility_bill = _utility_bill_attachment(data, user_id)
        if utility_bill:
            attachments.append(utility_bill)

        email_payload = self._email_payload("Porting LOA Submission", customer_body, attachments)

        logger.info(
            "Submitting porting LOA to n8n",
            extra={"recipient": email_payload["recipient_email"], "attachment_count": len(attachments)}
        )
        result = await self.n8n_client.submit_porting_loa(email_payload)

        if not result.get("success"):
            logger.error("Porting LOA submission failed", extra={"error": result.get("error")})
            raise ProxyError(
                f"Failed to submit LOA: {result.get('error') or 'Unknown error'}",
                ErrorCode.LOA_SUBMIT_FAILED
            )

        return success_response({"message": "LOA form submitted successfully"})

    async def _handle_send_porting_loa(self, data: Dict[str, Any]) -> Dict[str, Any]:
        customer = data.get("customer")
        if not isinstance(customer, dict) or not customer:
            raise ProxyError("Required field missing: customer", ErrorCode.MISSING_FIELD)
        numbers = data.get("numbers_to_port")
        if not numbers or not isinstance(numbers, list):
            raise ProxyError("Phone numbers array is required", ErrorCode.MISSING_PHONE_NUMBERS)

        raw_numbers = [
            (entry.get("phone_number") or entry.get("number") or "") if isinstance(entry, dict) else str(entry)
            for entry in numbers
        ]
        batch = self.phone_validator.validate_batch(raw_numbers, data.get("country") or None)
        if not batch["valid"]:
            raise ProxyError("; ".join(batch["errors"]), ErrorCode.INVALID_PHONE)

        normalized = []
        for entry, result in zip(numbers, batch["results"]):
            if not result["e164"]:
                continue
            provider = ""
            if isinstance(entry, dict):
                provider = entry.get("service_provider") or entry.get("provider") or ""
            normalized.append({"phone_number": result["e164"], "service_provider": provider})

        if not normalized:
            raise ProxyError("Phone numbers array is required", ErrorCode.MISSING_PHONE_NUMBERS)

        generator = PortingLOAGenerator(customer, normalized, self.settings.loa_company_name)
        pdf = await asyncio.get_running_loop().run_in_executor(None, generator.get_base64)
        if not pdf["success"]:
            raise ProxyError(f"Failed to generate LOA: {pdf['error']}", ErrorCode.PDF_FAILED)

        user_id = _user_id(data.get("userId") or customer.get("user_id") or "")
        customer_body = self._customer_body(customer, {**data, "numbers_to_port": normalized}, user_id)
        attachments = [_pdf_attachment(pdf["filename"], pdf["base64"])]

        result = await self.n8n_client.submit_porting_loa(
            self._email_payload("Porting LOA Request", customer_body, attachments)
        )
        if not result.get("success"):
            raise ProxyError(
                f"Failed to send LOA: {result.get('error') or 'Unknown error'}",
                ErrorCode.LOA_SUBMIT_FAILED
            )

        return success_response({"message": "LOA sent successfully", "filename": pdf["filename"]})

    async def _handle_get_loa_by_uuid(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("uuid"):
            raise ProxyError("UUID is required", ErrorCode.MISSING_UUID)

        result = await self.n8n_client.get_loa_by_uuid(data["uuid"])
        if not result.get("success"):
            return result
        if not result.get("data"):
            raise ProxyError("LOA not found", ErrorCode.LOA_NOT_FOUND)
        return success_response(result["data"])

    async def _handle_update_loa_signature(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("uuid"):
            raise ProxyError("UUID is required", ErrorCode.MISSING_UUID)
        if not data.get("loa_html"):
            raise ProxyError("LOA HTML is required", ErrorCode.MISSING_LOA_HTML)

        loa_uuid = data["uuid"]
        try:
            pdf = await _render_pdf(_decode_html(data["loa_html"]))
        except PdfGenerationError as e:
            raise ProxyError(f"Failed to generate signed LOA: {e}", ErrorCode.PDF_FAILED) from e

        attachments = [
            _pdf_attachment(
                f"signed_loa_{loa_uuid}_{datetime.now().strftime('%Y%m%d')}.pdf",
                base64.b64encode(pdf).decode("ascii"),
            )
        ]
        utility_bill = _utility_bill_attachment(data, loa_uuid)
        if utility_bill:
            attachments.append(utility_bill)

        result = await self.n8n_client.update_loa_signature({
            "uuid": loa_uuid,
            "signed": True,
            "signed_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "attachment": attachments,
        })
        if not result.get("success"):
            logger.error("LOA signature update failed", extra={"uuid": loa_uuid, "error": result.get("error")})
            raise ProxyError(
                f"Failed to submit LOA: {result.get('error') or 'Unknown error'}",
                ErrorCode.LOA_SUBMIT_FAILED
            )

        return success_response({"message": "LOA signed successfully", "uuid": loa_uuid})
