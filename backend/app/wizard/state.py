"""
Mutable selection state of the order wizard
"""
import base64
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from app.wizard.steps import PRODUCTS_STEP

# Never persisted or logged
SENSITIVE_PAYMENT_KEYS = frozenset({"stripe_token", "card_token"})


class PortingNumber(BaseModel):
    phone_number: str = ""
    service_provider: str = ""


class UtilityBill(BaseModel):
    """Utility bill attached to a porting request, base64 encoded"""
    base64: str
    filename: str
    mime_type: str = "application/pdf"
    extension: str = "pdf"

    @classmethod
    def from_content(
        cls,
        content: Union[bytes, str],
        filename: str,
        mime_type: Optional[str] = None
    ) -> "UtilityBill":
        """Build from raw bytes or an already base64-encoded string"""
        if isinstance(content, bytes):
            encoded = base64.b64encode(content).decode("ascii")
        else:
            encoded = content.split(",", 1)[1] if content.startswith("data:") else content
        extension = PurePath(filename).suffix.lstrip(".").lower() or "pdf"
        return cls(
            base64=encoded,
            filename=filename,
            mime_type=mime_type or "application/pdf",
            extension=extension,
        )

    def as_payload(self) -> Dict[str, str]:
        return {
            "utility_bill_base64": self.base64,
            "utility_bill_filename": self.filename,
            "utility_bill_mime_type": self.mime_type,
            "utility_bill_extension": self.extension,
        }


class WizardState(BaseModel):
    current_step: int = PRODUCTS_STEP
    selected_products: List[str] = Field(default_factory=list)
    selected_addons: List[str] = Field(default_factory=list)
    setup_type: Optional[str] = None
    number_count: int = 0
    assignment_type: Optional[str] = None
    phone_number_type: Optional[str] = None
    agent_quality: Optional[str] = None
    payment_info: Dict[str, Any] = Field(default_factory=dict)
    terms_accepted: bool = False
    porting_numbers: List[PortingNumber] = Field(default_factory=list)
    loa_form_data: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[Any] = None
    utility_bill: Optional[UtilityBill] = None
    coupon_code: str = ""
    sales_generated_id: str = ""
    completed: bool = False
    order_id: Optional[str] = None


def safe_payment_info(payment_info: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payment_info.items() if key not in SENSITIVE_PAYMENT_KEYS}
