"""
Legacy single-page order form submission
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_order_processor
from app.core.logging_config import LoggingConfig
from app.core.nonce import ORDER_SUBMIT_ACTION, verify_nonce
from app.services.order_processor import OrderProcessor

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["orders"])


@router.post("/orders")
async def submit_order(
    request: Request,
    form: Dict[str, Any] = Body(...),
    processor: OrderProcessor = Depends(get_order_processor)
):
    """Submit the order form; requires the aipw_nonce issued for order submission"""
    form = dict(form)
    nonce = form.pop("aipw_nonce", None)
    if not verify_nonce(nonce, ORDER_SUBMIT_ACTION):
        return JSONResponse(
            status_code=403,
            content={"success": False, "data": {"message": "Security verification failed"}}
        )

    client_ip = request.client.host if request.client else "unknown"
    result = await processor.process_order(form, client_ip=client_ip)

    if result["success"]:
        return {
            "success": True,
            "data": {"message": "Order submitted successfully", "data": result["data"]},
        }

    logger.info("Order submission rejected", extra={"error_count": len(result["errors"])})
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "data": {"message": "Order submission failed", "errors": result["errors"]},
        }
    )
