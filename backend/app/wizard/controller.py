"""
Order wizard controller

Drives the multi-step order flow: product selection, call setup, number
configuration, payment and (for ported numbers) the signed LOA. All server
interaction goes through a ProxyTransport so the same controller runs against
an in-process proxy or a deployed service.
"""
import base64
import json
from typing import Any, Dict, Iterable, List, Optional, Union

from app.core import catalog
from app.core.logging_config import LoggingConfig
from app.services.loa_generator import render_signed_loa
from app.services.phone_validator import PhoneValidator
from app.services.pricing import PricingCatalog, Quote
from app.wizard.state import (
    PortingNumber,
    UtilityBill,
    WizardState,
    safe_payment_info,
)
from app.wizard.steps import (
    CALL_SETUP_STEP,
    CONFIGURE_STEP,
    PAYMENT_STEP,
    PORTING_LOA_STEP,
    PRODUCTS_STEP,
    Step,
    get_step,
)
from app.wizard.transport import ProxyTransport, TransportError

logger = LoggingConfig.get_logger(__name__)

BILLING_FIELDS = ("address", "city", "state", "zip", "country")


class WizardError(Exception):
    """Invalid selection or step transition"""
    pass


class OrderWizard:
    """Step machine plus selection state of the order widget"""

    def __init__(
        self,
        transport: ProxyTransport,
        phone_validator: Optional[PhoneValidator] = None,
        state: Optional[WizardState] = None
    ):
        self.transport = transport
        self.phone_validator = phone_validator or PhoneValidator()
        self.state = state or WizardState()
        self.pricing = PricingCatalog()

    @property
    def step(self) -> Step:
        return get_step(self.state.current_step)

    @property
    def orders_calls(self) -> bool:
        return catalog.CALLS_PRODUCT in self.state.selected_products

    @property
    def is_porting(self) -> bool:
        return self.orders_calls and self.state.setup_type == "byo"

    # Selection

    def toggle_product(self, product: str) -> bool:
        """Toggle a product, returns True when it is now selected"""
        product = catalog.normalize_product(product)
        if product not in catalog.PRODUCTS:
            raise WizardError(f"Unknown product: {product}")

        if product in self.state.selected_products:
            self.state.selected_products.remove(product)
            return False
        self.state.selected_products.append(product)
        return True

    def toggle_addon(self, addon: str) -> bool:
        if addon not in catalog.ADDONS and addon not in self.pricing.addons:
            raise WizardError(f"Unknown addon: {addon}")

        if addon in self.state.selected_addons:
            self.state.selected_addons.remove(addon)
            return False
        self.state.selected_addons.append(addon)
        return True

    def accept_terms(self, accepted: bool = True):
        self.state.terms_accepted = accepted

    def select_setup_type(self, setup_type: str):
        if setup_type not in catalog.CALL_SETUP_TYPES:
            raise WizardError(f"Unknown setup type: {setup_type}")
        self.state.setup_type = setup_type

    def select_agent_quality(self, quality: str):
        for level in catalog.AGENT_LEVELS:
            if level.lower() == (quality or "").lower():
                self.state.agent_quality = level
                return
        raise WizardError(f"Unknown agent quality: {quality}")

    def select_assignment_type(self, assignment_type: str):
        if assignment_type not in catalog.ASSIGNMENT_TYPES:
            raise WizardError(f"Unknown assignment type: {assignment_type}")
        self.state.assignment_type = assignment_type

    def select_phone_number_type(self, number_type: str):
        if number_type not in catalog.PHONE_NUMBER_TYPES:
            raise WizardError(f"Unknown phone number type: {number_type}")
        self.state.phone_number_type = number_type

    def set_number_count(self, count: int):
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise WizardError("Number count must be at least 1")
        self.state.number_count = count

    # Navigation

    def _forward_target(self) -> int:
        """Step reached by next() from the current step, WizardError when blocked"""
        current = self.state.current_step

        if current == PRODUCTS_STEP:
            if not self.state.selected_products:
                raise WizardError("Select at least one product")
            if not self.state.terms_accepted:
                raise WizardError("Terms must be accepted")
            return CALL_SETUP_STEP if self.orders_calls else PAYMENT_STEP

        if current == CALL_SETUP_STEP:
            if not self.state.setup_type:
                raise WizardError("Select how to set up your phone numbers")
            if not self.state.agent_quality:
                raise WizardError("Select an agent quality")
            return CONFIGURE_STEP

        if current == CONFIGURE_STEP:
            if not self.state.phone_number_type:
                raise WizardError("Select a phone number type")
            if not self.state.assignment_type:
                raise WizardError("Select an assignment type")
            if self.state.number_count < 1:
                raise WizardError("Number count must be at least 1")
            return PAYMENT_STEP

        if current == PAYMENT_STEP:
            raise WizardError("Payment step advances through submit_payment()")

        raise WizardError("Porting LOA step completes through submit_porting_loa()")

    def _backward_target(self) -> int:
        current = self.state.current_step

        if current == PRODUCTS_STEP:
            raise WizardError("Already on the first step")
        if current == PAYMENT_STEP:
            return CONFIGURE_STEP if self.orders_calls else PRODUCTS_STEP
        if current == PORTING_LOA_STEP:
            return PAYMENT_STEP
        return current - 1

    def can_advance(self) -> bool:
        try:
            self._forward_target()
        except WizardError:
            return False
        return True

    def next(self) -> Step:
        self.state.current_step = self._forward_target()
        return self.step

    def back(self) -> Step:
        self.state.current_step = self._backward_target()
        return self.step

    def go_to(self, step_id: int) -> Step:
        """Jump to an earlier step or to the step next() would reach"""
        try:
            get_step(step_id)
        except KeyError:
            raise WizardError(f"Unknown step: {step_id}")

        if step_id == self.state.current_step:
            return self.step
        if step_id < self.state.current_step:
            if step_id in (CALL_SETUP_STEP, CONFIGURE_STEP) and not self.orders_calls:
                raise WizardError("Call setup steps require the calls product")
            self.state.current_step = step_id
            return self.step
        if step_id != self._forward_target():
            raise WizardError(f"Cannot jump from step {self.state.current_step} to step {step_id}")

        self.state.current_step = step_id
        return self.step

    # Pricing

    async def load_pricing(self, sales_generated_id: Optional[str] = None) -> bool:
        """Load pricing through the proxy, falling back to fixed pricing on failure"""
        pricing_id = sales_generated_id or self.state.sales_generated_id
        try:
            response = await self.transport.call("get_pricing", {
                "sales_generated_id": pricing_id or "",
                "coupon_code": self.state.coupon_code or None,
            })
        except TransportError as e:
            logger.warning(f"Pricing request failed, using fallback pricing: {e}")
            self.pricing = PricingCatalog.fallback()
            return False

        rows = response.get("data") if response.get("success") else None
        cost_json = rows[0].get("cost_json") if isinstance(rows, list) and rows and isinstance(rows[0], dict) else None
        try:
            if isinstance(cost_json, str):
                cost_json = json.loads(cost_json)
            pricing = PricingCatalog.from_cost_json(cost_json) if cost_json else None
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Unreadable pricing data, using fallback pricing: {e}")
            pricing = None

        if pricing is None:
            logger.warning("Pricing unavailable, using fallback pricing", extra={"error": response.get("error")})
            self.pricing = PricingCatalog.fallback()
            return False

        self.pricing = pricing
        return True

    def quote(self) -> Quote:
        number_count = self.state.number_count if self.orders_calls else 0
        return self.pricing.quote(self.state.selected_products, self.state.selected_addons, number_count)

    async def apply_coupon(self, code: str) -> Dict[str, Any]:
        """Validate a coupon; a valid one switches the pricing package and reloads pricing"""
        code = (code or "").strip()
        if not code:
            raise WizardError("Please enter a coupon code")

        response = await self.transport.call("validate_coupon", {"coupon_code": code})
        data = response.get("data") if isinstance(response.get("data"), dict) else {}
        if response.get("success") and data.get("sales_generated_id"):
            self.state.sales_generated_id = data["sales_generated_id"]
            self.state.coupon_code = code
            await self.load_pricing(data["sales_generated_id"])
        return response

    # Submission

    async def submit_payment(
        self,
        payment_info: Dict[str, Any],
        stripe_token: str,
        card_token: str
    ) -> Dict[str, Any]:
        """
        Charge the setup fee. On success the porting flow moves to the LOA step,
        every other flow completes the order immediately.

        Returns:
            The charge envelope (porting) or the complete_order envelope
        """
        if self.state.current_step != PAYMENT_STEP:
            raise WizardError("Payment can only be submitted from the payment step")

        info = safe_payment_info(dict(payment_info))
        if not info.get("billing_address"):
            for field in BILLING_FIELDS:
                info[f"billing_{field}"] = info.get(f"shipping_{field}")
        self.state.payment_info = info

        charge = {
            **info,
            "stripe_token": stripe_token,
            "card_token": card_token,
            "total_to_charge": self.quote().setup,
            "payment_info": info,
            "products": list(self.state.selected_products),
            "sales_generated_id": self.state.sales_generated_id,
        }
        response = await self.transport.call("charge_customer", charge)

        if not response.get("success"):
            logger.warning("Payment failed", extra={"error": response.get("error")})
            return response

        self.state.user_id = response.get("data")
        if self.is_porting:
            self.state.current_step = PORTING_LOA_STEP
            return response

        return await self.complete_order()

    def set_porting_numbers(
        self,
        numbers: Iterable[Union[PortingNumber, Dict[str, Any]]],
        default_country: Optional[str] = None
    ) -> List[PortingNumber]:
        """Validate the numbers to port and store them in E.164 form"""
        entries = [
            entry if isinstance(entry, PortingNumber) else PortingNumber(**entry)
            for entry in numbers
        ]
        entries = [entry for entry in entries if entry.phone_number]
        if not entries:
            raise WizardError("At least one phone number to port is required")

        batch = self.phone_validator.validate_batch([entry.phone_number for entry in entries], default_country)
        if not batch["valid"]:
            raise WizardError("; ".join(batch["errors"]))

        self.state.porting_numbers = [
            PortingNumber(phone_number=result["e164"], service_provider=entry.service_provider)
            for entry, result in zip(entries, batch["results"])
        ]
        return self.state.porting_numbers

    def attach_utility_bill(self, content: Union[bytes, str], filename: str, mime_type: Optional[str] = None) -> UtilityBill:
        self.state.utility_bill = UtilityBill.from_content(content, filename, mime_type)
        return self.state.utility_bill

    async def submit_porting_loa(
        self,
        printed_name: str,
        signed_date: Optional[str] = None,
        signature: Optional[str] = None,
        business_name: str = ""
    ) -> Dict[str, Any]:
        """Render and submit the signed LOA, then complete the order"""
        if self.state.current_step != PORTING_LOA_STEP:
            raise WizardError("LOA can only be submitted from the porting LOA step")
        if not self.state.user_id:
            raise WizardError("Payment must succeed before submitting the LOA")
        if not self.state.porting_numbers:
            raise WizardError("At least one phone number to port is required")
        if not printed_name:
            raise WizardError("Printed name is required")

        numbers = [entry.model_dump() for entry in self.state.porting_numbers]
        html = render_signed_loa(
            self.state.payment_info,
            numbers,
            printed_name=printed_name,
            signed_date=signed_date,
            signature=signature,
            business_name=business_name,
        )
        self.state.loa_form_data = {
            "business_name": business_name,
            "printed_name": printed_name,
            "date": signed_date,
            "signature": signature,
        }

        payload = {
            "userId": self.state.user_id,
            "loa_html": base64.b64encode(html.encode("utf-8")).decode("ascii"),
            "numbers_to_port": numbers,
            "paymentInfo": self.state.payment_info,
            "sales_generated_id": self.state.sales_generated_id,
        }
        if self.state.utility_bill:
            payload.update(self.state.utility_bill.as_payload())

        response = await self.transport.call("submit_porting_loa", payload)
        if not response.get("success"):
            logger.warning("LOA submission failed", extra={"error": response.get("error")})
            return response

        return await self.complete_order()

    def _call_setup(self) -> Optional[Dict[str, Any]]:
        if not self.orders_calls:
            return None

        quality = self.pricing.agent_quality.get(self.state.agent_quality or "")
        return {
            "setup_type": self.state.setup_type,
            "number_count": self.state.number_count,
            "assignment_type": self.state.assignment_type,
            "phone_number_type": self.state.phone_number_type,
            "agent_quality": self.state.agent_quality,
            "agent_quality_pricing": quality.model_dump() if quality else None,
            "numbers_to_port": [entry.model_dump() for entry in self.state.porting_numbers] if self.is_porting else [],
        }

    async def complete_order(self) -> Dict[str, Any]:
        """Submit the order; the wizard state is cleared on success"""
        quote = self.quote()
        response = await self.transport.call("complete_order", {
            "products": list(self.state.selected_products),
            "addons": list(self.state.selected_addons),
            "setup_total": quote.setup,
            "weekly_cost": quote.weekly,
            "total_to_charge": quote.setup,
            "sales_generated_id": self.state.sales_generated_id,
            "payment": self.state.payment_info,
            "call_setup": self._call_setup(),
        })

        if not response.get("success"):
            logger.warning("Order completion failed", extra={"error": response.get("error")})
            return response

        data = response.get("data") if isinstance(response.get("data"), dict) else {}
        self.state = WizardState(completed=True, order_id=data.get("order_id"))
        return response

    # Persistence

    def saved_state(self) -> Dict[str, Any]:
        """Serializable state without card tokens, signature or uploaded files"""
        saved = self.state.model_dump(exclude={"utility_bill", "loa_form_data"})
        saved["payment_info"] = safe_payment_info(saved["payment_info"])
        return saved

    @classmethod
    def restore(
        cls,
        saved: Dict[str, Any],
        transport: ProxyTransport,
        phone_validator: Optional[PhoneValidator] = None
    ) -> "OrderWizard":
        data = dict(saved or {})
        if "phone_numbers" in data and "porting_numbers" not in data:
            data["porting_numbers"] = data.pop("phone_numbers")
        data["payment_info"] = safe_payment_info(data.get("payment_info") or {})
        return cls(transport, phone_validator, WizardState.model_validate(data))
