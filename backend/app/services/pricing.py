"""
Pricing rules over the ``cost_json`` rows returned by the pricing webhook.

Two views exist: PricingCatalog is what the wizard shows the customer (all
amounts in cents), the module functions are the authoritative server-side
figures used when charging and completing an order.
"""
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from app.core.catalog import CHAT_PRODUCT, EMAILS_PRODUCT, normalize_product

FALLBACK_SETUP_CENTS = 99999
FALLBACK_WEEKLY_CENTS = 15000

SETUP_FEE_TYPES = {
    "1": "1 Service",
    "2": "2 Services",
    "3+": "3+ Services",
}

ADDON_NAME_MAPPING = {
    "Transcription & Call Recordings": "Transcriptions & Recordings",
    "QA": "Quality Assurance",
}


def parse_rate(value: Any) -> int:
    """Convert a number or a dollar string ("$99.00", "1,200") into integer cents"""
    if value is None or value == "" or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(round(value * 100))
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    try:
        return int(round(float(cleaned) * 100))
    except ValueError:
        return 0


def _dollars(value: Any) -> float:
    return parse_rate(value) / 100


def _setup_key(product_count: int) -> Optional[str]:
    if product_count <= 0:
        return None
    if product_count >= 3:
        return "3+"
    return str(product_count)


class AgentQualityRate(BaseModel):
    name: str
    description: str = ""
    phone_per_minute: int = 0
    phone_per_minute_overage: int = 0
    call_threshold: float = 0


class RateItem(BaseModel):
    """Weekly priced item (product or addon)"""
    weekly: int = 0
    type: Optional[str] = None
    frequency: Optional[str] = None
    threshold: float = 0
    overage: int = 0
    cost_per_lead: int = 0


class Quote(BaseModel):
    """Customer-facing totals in cents"""
    setup: int = 0
    weekly: int = 0
    total: int = 0


class OrderCharges(BaseModel):
    """Server-side order totals in dollars"""
    setup_total: float = 0
    weekly_cost: float = 0
    by_minute_charge: float = 0
    number_price: float = 0


class PricingCatalog(BaseModel):
    setup_fees: Dict[str, int] = Field(default_factory=dict)
    agent_quality: Dict[str, AgentQualityRate] = Field(default_factory=dict)
    products: Dict[str, RateItem] = Field(default_factory=dict)
    addons: Dict[str, RateItem] = Field(default_factory=dict)
    phone_number_weekly_cost: int = 0
    is_fallback: bool = False

    @classmethod
    def from_cost_json(cls, items: Iterable[Dict[str, Any]]) -> "PricingCatalog":
        catalog = cls()
        for item in items or []:
            catalog._add_item(item)
        return catalog

    @classmethod
    def fallback(cls) -> "PricingCatalog":
        return cls(is_fallback=True)

    def _add_item(self, item: Dict[str, Any]):
        item_type = item.get("type")
        name = item.get("name")
        frequency = item.get("frequency")

        if name == "One Time Charge" and frequency == "One Time":
            for key, fee_type in SETUP_FEE_TYPES.items():
                if item_type == fee_type:
                    self.setup_fees[key] = parse_rate(item.get("cost"))

        elif name in ("Inbound Calls", "Outbound Calls") and frequency == "Weekly" and item_type:
            threshold = item.get("call_threshold")
            # Inbound and outbound rows carry the same rates
            self.agent_quality[item_type] = AgentQualityRate(
                name=item_type,
                description=item.get("description") or (
                    self.agent_quality[item_type].description if item_type in self.agent_quality else ""
                ),
                phone_per_minute=parse_rate(item.get("phone_per_minute")),
                phone_per_minute_overage=parse_rate(item.get("phone_per_minute_overage")),
                call_threshold=threshold if isinstance(threshold, (int, float)) else 0,
            )

        elif name in ("Email Agents", "Chat Agents") and frequency == "Weekly":
            prefix = "email" if name == "Email Agents" else "chat"
            threshold = item.get(f"{prefix}_threshold")
            product = EMAILS_PRODUCT if name == "Email Agents" else CHAT_PRODUCT
            self.products[product] = RateItem(
                weekly=parse_rate(item.get("cost")),
                type=item_type,
                frequency=frequency,
                threshold=threshold if isinstance(threshold, (int, float)) else 0,
                overage=parse_rate(item.get(f"{prefix}_cost_overage")),
            )

        elif item_type == "Addons":
            key = ADDON_NAME_MAPPING.get(name, name)
            self.addons[key] = RateItem(
                weekly=parse_rate(item.get("cost")),
                type=item_type,
                frequency=frequency,
            )

        elif name == "QA":
            self.addons[f"Quality Assurance ({item_type})"] = RateItem(
                weekly=parse_rate(item.get("cost")),
                cost_per_lead=parse_rate(item.get("cost_per_lead")),
                type=item_type,
                frequency=frequency,
            )

        elif item_type == "Price Per Number" and frequency == "Weekly":
            self.phone_number_weekly_cost = parse_rate(item.get("cost_per_number"))

    def setup_fee(self, product_count: int) -> int:
        key = _setup_key(product_count)
        return self.setup_fees.get(key, 0) if key else 0

    def quote(self, products: List[str], addons: List[str], number_count: int = 0) -> Quote:
        """Compute setup/weekly totals (cents) for the current selection"""
        if self.is_fallback:
            return Quote(
                setup=FALLBACK_SETUP_CENTS,
                weekly=FALLBACK_WEEKLY_CENTS,
                total=FALLBACK_SETUP_CENTS + FALLBACK_WEEKLY_CENTS,
            )

        setup = self.setup_fee(len(products))

        weekly = 0
        for product in products:
            rate = self.products.get(normalize_product(product))
            if rate:
                weekly += rate.weekly

        for addon in addons:
            rate = self.addons.get(addon)
            if rate:
                weekly += rate.weekly

        weekly += max(number_count, 0) * self.phone_number_weekly_cost

        return Quote(setup=setup, weekly=weekly, total=setup + weekly)


def setup_fee_for(cost_json: Iterable[Dict[str, Any]], product_count: int) -> float:
    """Setup fee in dollars for the number of ordered services"""
    fee_type = SETUP_FEE_TYPES.get(_setup_key(product_count) or "")
    fee = 0.0
    for item in cost_json or []:
        if fee_type and item.get("type") == fee_type:
            fee = _dollars(item.get("cost"))
    return fee


def expected_charge_cents(cost_json: Iterable[Dict[str, Any]], product_count: int) -> int:
    return int(round(setup_fee_for(cost_json, product_count) * 100))


def order_charges(
    cost_json: Iterable[Dict[str, Any]],
    products: List[str],
    call_setup: Optional[Dict[str, Any]] = None
) -> OrderCharges:
    """
    Authoritative order totals: setup fee plus phone numbers, per-minute rate of the
    chosen agent quality and weekly email/chat agent costs
    """
    cost_json = list(cost_json or [])
    call_setup = call_setup or {}
    agent_quality = call_setup.get("agent_quality")
    try:
        number_count = int(call_setup.get("number_count") or 0)
    except (TypeError, ValueError):
        number_count = 0

    ordered = {normalize_product(product) for product in products}
    has_email = EMAILS_PRODUCT in ordered
    has_chat = CHAT_PRODUCT in ordered

    number_price = 0.0
    by_minute = 0.0
    weekly = 0.0

    for item in cost_json:
        item_type = item.get("type")
        name = item.get("name")

        if item_type == "Price Per Number":
            number_price = number_count * _dollars(item.get("cost_per_number"))

        if name == "Inbound Calls" and agent_quality and item_type == agent_quality:
            by_minute += _dollars(item.get("phone_per_minute"))

        if name == "Email Agents" and has_email:
            weekly += _dollars(item.get("cost"))

        if name == "Chat Agents" and has_chat:
            weekly += _dollars(item.get("cost"))

    setup = setup_fee_for(cost_json, len(products))
    return OrderCharges(
        setup_total=round(setup + number_price, 2),
        weekly_cost=round(weekly, 2),
        by_minute_charge=round(by_minute, 2),
        number_price=round(number_price, 2),
    )
