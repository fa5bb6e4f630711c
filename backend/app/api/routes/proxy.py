"""
API proxy endpoint used by the order widget
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.deps import get_api_proxy
from app.core.errors import ErrorCode, error_response
from app.core.logging_config import LoggingConfig
from app.core.nonce import API_PROXY_ACTION, verify_nonce
from app.services.api_proxy import ApiProxy

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["proxy"])


class ProxyRequest(BaseModel):
    """Proxied widget request"""
    action: str = Field(..., description="Action name, optionally prefixed with 'aipw_'")
    nonce: Optional[str] = Field(None, description="Nonce issued by /api/widget/config")
    data: Dict[str, Any] = Field(default_factory=dict, description="Action payload")


@router.post("/proxy")
async def proxy_request(
    request: ProxyRequest,
    api_proxy: ApiProxy = Depends(get_api_proxy)
):
    """
    Dispatch a widget action through the allow-listed proxy

    Returns:
        Envelope with success, data and error
    """
    if not verify_nonce(request.nonce, API_PROXY_ACTION):
        logger.warning("Nonce verification failed", extra={"action": request.action})
        return JSONResponse(
            status_code=403,
            content=error_response("Security verification failed", ErrorCode.INVALID_NONCE)
        )

    return await api_proxy.handle(request.action, request.data)
