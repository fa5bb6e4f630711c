"""
Twilio phone number service: port-in requests and number provisioning
"""
from typing import Any, Dict, Optional

from app.core.config import Settings, get_settings
from app.core.http_client import HttpClient
from app.core.logging_config import LoggingConfig
from app.core.security import is_valid_e164

logger = LoggingConfig.get_logger(__name__)


class TwilioPortingService:
    """
    Client for Twilio's IncomingPhoneNumbers and AvailablePhoneNumbers APIs.
    Every method returns an envelope and never raises.
    """

    def __init__(
        self,
        http_client: HttpClient,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        settings = settings or get_settings()
        self.http_client = http_client
        self.account_sid = account_sid or settings.twilio_account_sid or ""
        self.auth_token = auth_token or settings.twilio_auth_token or ""
        self.base_url = settings.twilio_base_url

    @property
    def account_url(self) -> str:
        return f"{self.base_url}/Accounts/{self.account_sid}"

    def _number_url(self, sid: str) -> str:
        return f"{self.account_url}/IncomingPhoneNumbers/{sid}.json"

    async def _request(self, method: str, url: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.http_client.request(
            url,
            method=method,
            data=data,
            form=True,
            auth=(self.account_sid, self.auth_token),
        )

    async def create_port_in_request(self, porting_data: Dict[str, Any]) -> Dict[str, Any]:
        phone_number = porting_data.get("phone_number")
        if not phone_number:
            error = "Phone number is required"
        elif not is_valid_e164(phone_number):
            error = "Phone number must be in E.164 format (+1234567890)"
        else:
            error = None

        if error:
            logger.error(f"Port-in request failed: {error}")
            return {"success": False, "port_in_sid": None, "data": None, "error": error}

        response = await self._request(
            "POST",
            f"{self.account_url}/IncomingPhoneNumbers/Local.json",
            {
                "PhoneNumber": phone_number,
                "FriendlyName": porting_data.get("friendly_name") or "Ported Number",
                "VoiceUrl": porting_data.get("voice_url") or "",
                "VoiceMethod": "POST",
                "StatusCallback": porting_data.get("status_callback") or "",
                "StatusCallbackMethod": "POST",
            }
        )
        if not response["success"]:
            return {**response, "port_in_sid": None}

        data = response["data"] or {}
        logger.info("Port-in request created", extra={"sid": data.get("sid"), "phone_number": phone_number})
        return {"success": True, "port_in_sid": data.get("sid"), "data": data, "error": None}

    async def get_port_in_status(self, port_in_sid: str) -> Dict[str, Any]:
        response = await self._request("GET", self._number_url(port_in_sid))
        if not response["success"]:
            return {**response, "status": None}

        data = response["data"] or {}
        return {"success": True, "status": data.get("status", "unknown"), "data": data, "error": None}

    async def cancel_port_in_request(self, port_in_sid: str) -> Dict[str, Any]:
        response = await self._request("DELETE", self._number_url(port_in_sid))
        if response["success"]:
            logger.info("Port-in request cancelled", extra={"sid": port_in_sid})
        return response

    async def list_port_in_requests(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._request("GET", f"{self.account_url}/IncomingPhoneNumbers.json", filters or None)
        if not response["success"]:
            return {**response, "port_ins": None}

        data = response["data"] or {}
        return {"success": True, "port_ins": data.get("incoming_phone_numbers", []), "error": None}

    async def search_available_numbers(self, area_code: str, country: str = "US") -> Dict[str, Any]:
        response = await self._request(
            "GET",
            f"{self.account_url}/AvailablePhoneNumbers/{country}/Local.json",
            {"AreaCode": area_code}
        )
        if not response["success"]:
            return {**response, "numbers": None}

        data = response["data"] or {}
        return {"success": True, "numbers": data.get("available_phone_numbers", []), "error": None}

    async def purchase_number(self, phone_number: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        payload = {
            "PhoneNumber": phone_number,
            "FriendlyName": options.get("friendly_name") or phone_number,
            "VoiceUrl": options.get("voice_url") or "",
            "VoiceMethod": "POST",
            "SmsUrl": options.get("sms_url") or "",
            "SmsMethod": "POST",
        }
        payload.update({key: value for key, value in options.items() if key[:1].isupper()})

        response = await self._request("POST", f"{self.account_url}/IncomingPhoneNumbers.json", payload)
        if not response["success"]:
            logger.error("Number purchase failed", extra={"error": response.get("error")})
            return {**response, "sid": None}

        data = response["data"] or {}
        logger.info("Number purchased", extra={"sid": data.get("sid"), "phone_number": phone_number})
        return {"success": True, "sid": data.get("sid"), "data": data, "error": None}

    async def update_number(self, sid: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", self._number_url(sid), updates)
        if response["success"]:
            logger.info("Number updated", extra={"sid": sid})
        return response

    async def release_number(self, sid: str) -> Dict[str, Any]:
        response = await self._request("DELETE", self._number_url(sid))
        if response["success"]:
            logger.info("Number released", extra={"sid": sid})
        return response
