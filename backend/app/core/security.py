"""
Security validation for proxied n8n queries and untrusted widget input
"""
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from email_validator import EmailNotValidError, validate_email

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

# NUL is removed separately; \t, \n and \r are kept
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

# Fields that can never be requested through select queries (encrypted/sensitive)
BLOCKED_FIELDS: Dict[str, List[str]] = {
    "users": [
        "password",
        "remember_token",
        "provider_token",
        "stripe_payment_method",
        "stripe_customer_id",
        "stripe_subscription_id",
        "stripe_setup_intent_id",
        "stripe_bank_account_id",
        "paypal_subscription_id",
        "paypal_payer_id",
        "bank_routing_number",
        "bank_account_last4",
        "bank_account_name",
        "tax_id",
        "ip_address",
        "settings",
    ],
    "PaymentMethods": [
        "stripe_payment_method",
        "seti_id",
        "CreditCardNumber",
        "cvv",
        "routing_number",
        "account_number",
    ],
    "payments": [
        "transaction_id",
        "metadata",
    ],
    "manual_charges": [],
}

# "*" means every field of the table is public
PUBLIC_FIELDS: Dict[str, Union[List[str], str]] = {
    "users": [
        "id",
        "username",
        "email",
        "email_verified_at",
        "first_name",
        "last_name",
        "full_name",
        "company",
        "role",
        "status",
        "timezone",
        "locale",
        "created_at",
        "updated_at",
    ],
    "pricing": "*",
}


def get_blocked_fields(table_name: str) -> List[str]:
    return BLOCKED_FIELDS.get(table_name, [])


def get_public_fields(table_name: str) -> Union[List[str], str]:
    return PUBLIC_FIELDS.get(table_name, [])


def is_field_blocked(table_name: str, field_name: str) -> bool:
    return field_name in get_blocked_fields(table_name)


def is_field_public(table_name: str, field_name: str) -> bool:
    public = get_public_fields(table_name)
    if public == "*":
        return True
    return field_name in public


def validate_field_access(table_name: str, columns: Iterable[str]) -> Dict[str, Any]:
    """
    Validate that a select query does not touch blocked fields

    Returns:
        dict with ``valid``, ``error`` and ``blocked_field`` keys
        (plus ``table`` when a field is blocked)
    """
    blocked = get_blocked_fields(table_name)
    for column in columns:
        if column in blocked:
            return {
                "valid": False,
                "error": f"Access denied: Field '{column}' is encrypted/sensitive",
                "blocked_field": column,
                "table": table_name,
            }

    return {"valid": True, "error": None, "blocked_field": None}


def sanitize_input(data: Any) -> Any:
    """Recursively strip NUL bytes, surrounding whitespace and control characters"""
    if isinstance(data, dict):
        return {key: sanitize_input(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [sanitize_input(item) for item in data]
    if isinstance(data, str):
        data = data.replace("\0", "").strip()
        return _CONTROL_CHARS.sub("", data)
    return data


def is_valid_e164(phone: Optional[str]) -> bool:
    return bool(phone) and E164_PATTERN.match(phone) is not None


def is_valid_email(email: Optional[str]) -> bool:
    if not email or not isinstance(email, str):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def log_blocked_access(table_name: str, field_name: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build an audit entry for a blocked field access attempt"""
    return {
        "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "event": "blocked_field_access",
        "severity": "warning",
        "table": table_name,
        "field": field_name,
        "context": context or {},
        "message": f"Blocked attempt to access encrypted field: {field_name} in table: {table_name}",
    }
