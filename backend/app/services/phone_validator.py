"""
Phone number validation and E.164 formatting over phonenumbers (libphonenumber)
"""
from typing import Any, Dict, List, Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from app.core.security import is_valid_e164

COUNTRY_NAMES: Dict[str, str] = {
    "US": "United States",
    "CA": "Canada",
    "GB": "United Kingdom",
    "AU": "Australia",
    "NZ": "New Zealand",
    "IE": "Ireland",
    "FR": "France",
    "DE": "Germany",
    "ES": "Spain",
    "IT": "Italy",
    "NL": "Netherlands",
    "BE": "Belgium",
    "CH": "Switzerland",
    "AT": "Austria",
    "DK": "Denmark",
    "SE": "Sweden",
    "NO": "Norway",
    "FI": "Finland",
    "PL": "Poland",
    "CZ": "Czech Republic",
    "PT": "Portugal",
    "GR": "Greece",
    "JP": "Japan",
    "CN": "China",
    "IN": "India",
    "BR": "Brazil",
    "MX": "Mexico",
    "AR": "Argentina",
    "ZA": "South Africa",
    "SG": "Singapore",
    "HK": "Hong Kong",
    "MY": "Malaysia",
    "TH": "Thailand",
    "PH": "Philippines",
    "ID": "Indonesia",
    "VN": "Vietnam",
    "KR": "South Korea",
    "TW": "Taiwan",
    "IL": "Israel",
    "AE": "United Arab Emirates",
    "SA": "Saudi Arabia",
    "TR": "Turkey",
    "RU": "Russia",
    "UA": "Ukraine",
}


def _result(valid: bool, e164=None, country=None, national=None, error=None) -> Dict[str, Any]:
    return {
        "valid": valid,
        "e164": e164,
        "country": country,
        "national": national,
        "error": error,
    }


class PhoneValidator:
    """Validates phone numbers and formats them to E.164"""

    def validate(self, phone_number: Optional[str], default_country: Optional[str] = None) -> Dict[str, Any]:
        """
        Validate and format a phone number

        Args:
            phone_number: Raw number as typed by the user
            default_country: ISO 3166-1 alpha-2 region used for national numbers

        Returns:
            dict with valid, e164, country, national and error keys.
            An empty number is valid (the field is optional).
        """
        if not phone_number:
            return _result(True)

        phone_number = str(phone_number)
        if default_country:
            region = default_country.upper()
        elif phone_number.startswith("+"):
            region = None
        else:
            region = "US"

        try:
            parsed = phonenumbers.parse(phone_number, region)
        except NumberParseException as e:
            return _result(False, error=f"Could not parse phone number: {e}")

        if not phonenumbers.is_valid_number(parsed):
            return _result(False, error="Invalid phone number format")

        return _result(
            True,
            e164=phonenumbers.format_number(parsed, PhoneNumberFormat.E164),
            country=phonenumbers.region_code_for_number(parsed),
            national=phonenumbers.format_number(parsed, PhoneNumberFormat.NATIONAL),
        )

    def validate_batch(self, phone_numbers: List[Optional[str]], default_country: Optional[str] = None) -> Dict[str, Any]:
        results = []
        errors = []

        for index, phone in enumerate(phone_numbers):
            validation = self.validate(phone, default_country)
            results.append(validation)

            if not validation["valid"] and phone:
                errors.append(
                    f"Phone number #{index + 1} is invalid: {validation['error']} (provided: {phone})"
                )

        return {"valid": not errors, "results": results, "errors": errors}

    def is_e164(self, phone: Optional[str]) -> bool:
        return is_valid_e164(phone)

    def get_country_code(self, e164_phone: str) -> Optional[str]:
        try:
            parsed = phonenumbers.parse(e164_phone, None)
        except NumberParseException:
            return None
        return phonenumbers.region_code_for_number(parsed)

    def get_country_name(self, country_code: str) -> str:
        return COUNTRY_NAMES.get(country_code, country_code)
