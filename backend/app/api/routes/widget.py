"""
Widget bootstrap endpoints: runtime config and product catalogue
"""
from fastapi import APIRouter

from app.core import catalog
from app.core.config import get_settings
from app.core.nonce import API_PROXY_ACTION, ORDER_SUBMIT_ACTION, create_nonce
from app.wizard.steps import STEPS

router = APIRouter(prefix="/api/widget", tags=["widget"])


@router.get("/config")
async def widget_config():
    """Runtime configuration handed to the browser widget"""
    settings = get_settings()
    return {
        "api_proxy": "/api/proxy",
        "nonce": create_nonce(API_PROXY_ACTION),
        "order_nonce": create_nonce(ORDER_SUBMIT_ACTION),
        "stripe_public_key": settings.stripe_public_key,
        "version": settings.app_version,
    }


@router.get("/catalog")
async def widget_catalog():
    return {
        **catalog.as_dict(),
        "steps": [step.model_dump() for step in STEPS],
    }
