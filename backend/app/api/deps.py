"""
Shared service instances injected into the routes with Depends
"""
from functools import lru_cache

from app.core.cache import get_cache
from app.core.http_client import HttpClient
from app.services.api_proxy import ApiProxy
from app.services.n8n_client import N8nClient
from app.services.order_processor import OrderProcessor
from app.services.phone_validator import PhoneValidator


@lru_cache()
def get_http_client() -> HttpClient:
    return HttpClient()


@lru_cache()
def get_phone_validator() -> PhoneValidator:
    return PhoneValidator()


@lru_cache()
def get_n8n_client() -> N8nClient:
    return N8nClient(get_http_client(), cache=get_cache())


def get_api_proxy() -> ApiProxy:
    return ApiProxy(get_n8n_client(), get_phone_validator())


def get_order_processor() -> OrderProcessor:
    return OrderProcessor(get_n8n_client(), get_phone_validator())
