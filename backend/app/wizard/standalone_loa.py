"""
Standalone LOA signing: a customer opens a link carrying the LOA uuid, reviews
the numbers recorded for the request and signs
"""
import base64
import json
from typing import Any, Dict, List, Optional, Union

from app.core.logging_config import LoggingConfig
from app.services.loa_generator import render_signed_loa
from app.wizard.controller import WizardError
from app.wizard.state import UtilityBill
from app.wizard.transport import ProxyTransport

logger = LoggingConfig.get_logger(__name__)

STATUS_FORM = "form"
STATUS_ALREADY_SIGNED = "already_signed"
STATUS_ERROR = "error"
STATUS_SIGNED = "signed"


def _parse_numbers(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Failed to parse LOA phone numbers")
            return []
    return [entry for entry in value or [] if isinstance(entry, dict)]


class StandaloneLoaSession:
    def __init__(self, transport: ProxyTransport):
        self.transport = transport
        self.status: Optional[str] = None
        self.error: Optional[str] = None
        self.record: Dict[str, Any] = {}
        self.numbers: List[Dict[str, Any]] = []
        self.utility_bill: Optional[UtilityBill] = None

    @property
    def uuid(self) -> Optional[str]:
        return self.record.get("uuid")

    async def load(self, uuid: str) -> str:
        """Fetch the LOA; returns ``form``, ``already_signed`` or ``error``"""
        response = await self.transport.call("get_loa_by_uuid", {"uuid": uuid})

        if not response.get("success") or not isinstance(response.get("data"), dict):
            self.status = STATUS_ERROR
            self.error = response.get("error") or "LOA not found"
            return self.status

        self.record = {"uuid": uuid, **response["data"]}
        self.numbers = _parse_numbers(self.record.get("phone_numbers_and_providers"))
        self.status = STATUS_ALREADY_SIGNED if self.record.get("signed") else STATUS_FORM
        return self.status

    def attach_utility_bill(self, content: Union[bytes, str], filename: str, mime_type: Optional[str] = None) -> UtilityBill:
        self.utility_bill = UtilityBill.from_content(content, filename, mime_type)
        return self.utility_bill

    async def submit(
        self,
        printed_name: str,
        signed_date: Optional[str] = None,
        signature: Optional[str] = None,
        business_name: str = "",
        customer: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if self.status != STATUS_FORM:
            raise WizardError("LOA is not open for signing")
        if not printed_name:
            raise WizardError("Printed name is required")

        html = render_signed_loa(
            customer or self.record,
            self.numbers,
            printed_name=printed_name,
            signed_date=signed_date,
            signature=signature,
            business_name=business_name,
        )
        payload = {
            "uuid": self.uuid,
            "loa_html": base64.b64encode(html.encode("utf-8")).decode("ascii"),
        }
        if self.utility_bill:
            payload.update(self.utility_bill.as_payload())

        response = await self.transport.call("update_loa_signature", payload)
        if response.get("success"):
            self.status = STATUS_SIGNED
        else:
            self.error = response.get("error")
        return response
