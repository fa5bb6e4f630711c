"""
Error codes and the uniform success/error envelope returned by the API proxy
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes sent back to the widget"""
    INVALID_ACTION = "INVALID_ACTION"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    PROXY_ERROR = "PROXY_ERROR"
    INVALID_NONCE = "INVALID_NONCE"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    PRICING_NOT_FOUND = "PRICING_NOT_FOUND"
    BLOCKED_FIELD = "BLOCKED_FIELD"
    INVALID_EMAIL = "INVALID_EMAIL"
    MISSING_PHONE = "MISSING_PHONE"
    INVALID_PHONE = "INVALID_PHONE"
    MISSING_USER_ID = "MISSING_USER_ID"
    MISSING_LOA_HTML = "MISSING_LOA_HTML"
    MISSING_PHONE_NUMBERS = "MISSING_PHONE_NUMBERS"
    MISSING_UUID = "MISSING_UUID"
    LOA_NOT_FOUND = "LOA_NOT_FOUND"
    LOA_SUBMIT_FAILED = "LOA_SUBMIT_FAILED"
    PDF_FAILED = "PDF_FAILED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"


class ProxyError(Exception):
    """Raised by proxy handlers; converted to an error envelope by the router"""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.PROXY_ERROR):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return error_response(self.message, self.error_code)


def success_response(data: Any = None, **extra: Any) -> Dict[str, Any]:
    """Build a success envelope"""
    response = {"success": True, "data": data, "error": None}
    response.update(extra)
    return response


def error_response(
    message: str,
    error_code: Optional[ErrorCode] = None,
    **extra: Any
) -> Dict[str, Any]:
    """Build an error envelope"""
    response: Dict[str, Any] = {"success": False, "data": None, "error": message}
    if error_code is not None:
        response["error_code"] = error_code.value if isinstance(error_code, ErrorCode) else str(error_code)
    response.update(extra)
    return response
