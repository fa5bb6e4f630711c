"""
Tests for the n8n webhook client
"""
import httpx
import pytest

from app.core.cache import TransientCache
from app.services.n8n_client import PRICING_CACHE_PREFIX, N8nClient


@pytest.mark.asyncio
async def test_select_posts_list_payload(n8n_client, webhooks, settings):
    result = await n8n_client.select("users", ["id", "email"], {"id": 5}, limit=1)

    assert result["success"] is True
    payload = webhooks.calls_to(settings.n8n_select_url)[0]
    assert payload == [{
        "table_name": "users",
        "columns": ["id", "email"],
        "filters": {"id": 5},
        "page": 1,
        "limit": 1,
        "sort": [],
    }]


@pytest.mark.asyncio
async def test_select_blocked_field_never_reaches_network(n8n_client, webhooks):
    result = await n8n_client.select("users", ["email", "stripe_customer_id"])

    assert result["success"] is False
    assert result["error_code"] == "BLOCKED_FIELD"
    assert "stripe_customer_id" in result["error"]
    assert webhooks.calls == []


@pytest.mark.asyncio
async def test_create_user_requires_valid_email(n8n_client, webhooks):
    result = await n8n_client.create_user({"email": "nope", "first_name": "Jane"})

    assert result["error_code"] == "INVALID_EMAIL"
    assert webhooks.calls == []


@pytest.mark.asyncio
async def test_create_user_sanitises_payload(n8n_client, webhooks, settings):
    webhooks.on(settings.n8n_create_user_url, {"id": 42})

    result = await n8n_client.create_user({"email": " jane@acmecorp.com ", "first_name": "Jane\x00"})

    assert result["success"] is True
    assert result["data"] == {"id": 42}
    assert webhooks.calls_to(settings.n8n_create_user_url)[0] == {
        "email": "jane@acmecorp.com",
        "first_name": "Jane",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["total_to_charge", "stripe_token", "card_token", "email"])
async def test_charge_requires_fields(n8n_client, missing):
    charge = {"total_to_charge": 99, "stripe_token": "tok", "card_token": "card", "email": "jane@acmecorp.com"}
    charge.pop(missing)

    result = await n8n_client.charge_customer(charge)

    assert result["error_code"] == "MISSING_FIELD"
    assert missing in result["error"]


@pytest.mark.asyncio
async def test_charge_rejects_non_positive_amount(n8n_client):
    result = await n8n_client.charge_customer({
        "total_to_charge": "-5", "stripe_token": "tok", "card_token": "card", "email": "jane@acmecorp.com",
    })
    assert result["error_code"] == "INVALID_AMOUNT"


@pytest.mark.asyncio
async def test_pricing_is_cached_per_sales_id(n8n_client, webhooks, settings):
    first = await n8n_client.get_pricing("pkg-1")
    second = await n8n_client.get_pricing("pkg-1")

    assert first["cached"] is False
    assert second["cached"] is True
    assert second["data"] == first["data"]
    assert len(webhooks.calls_to(settings.n8n_select_url)) == 1
    assert n8n_client.cache.has(f"{PRICING_CACHE_PREFIX}pkg-1")

    payload = webhooks.calls_to(settings.n8n_select_url)[0][0]
    assert payload["table_name"] == settings.pricing_table
    assert payload["columns"] == ["cost_json"]
    assert payload["filters"] == {"sales_generated_id": "pkg-1", "Active": 1}


@pytest.mark.asyncio
async def test_pricing_defaults_sales_id(n8n_client, webhooks, settings):
    await n8n_client.get_pricing()

    payload = webhooks.calls_to(settings.n8n_select_url)[0][0]
    assert payload["filters"]["sales_generated_id"] == settings.default_sales_generated_id


@pytest.mark.asyncio
async def test_coupon_pricing_bypasses_cache(n8n_client, webhooks, settings):
    await n8n_client.get_pricing("pkg-1", coupon_code="SAVE10")
    await n8n_client.get_pricing("pkg-1", coupon_code="SAVE10")

    calls = webhooks.calls_to(settings.n8n_select_url)
    assert len(calls) == 2
    assert calls[0][0]["filters"]["coupon_code"] == "SAVE10"
    assert len(n8n_client.cache) == 0


@pytest.mark.asyncio
async def test_empty_pricing_is_not_cached(n8n_client, webhooks, settings):
    webhooks.on(settings.n8n_select_url, [])

    result = await n8n_client.get_pricing("pkg-empty")

    assert result["data"] == []
    assert len(n8n_client.cache) == 0


@pytest.mark.asyncio
async def test_validate_coupon(n8n_client, webhooks, settings):
    assert (await n8n_client.validate_coupon({}))["error_code"] == "MISSING_FIELD"

    webhooks.on(settings.n8n_validate_coupon_url, {"sales_generated_id": "pkg-2"})
    result = await n8n_client.validate_coupon({"coupon_code": "SAVE10", "other": 1})

    assert result["data"] == {"sales_generated_id": "pkg-2"}
    assert webhooks.calls_to(settings.n8n_validate_coupon_url) == [{"coupon_code": "SAVE10"}]


@pytest.mark.asyncio
async def test_get_loa_by_uuid_returns_first_row(n8n_client, webhooks, settings):
    webhooks.on(settings.n8n_select_url, [{"uuid": "u-1", "signed": 0}, {"uuid": "u-2"}])

    result = await n8n_client.get_loa_by_uuid("u-1")

    assert result["success"] is True
    assert result["data"] == {"uuid": "u-1", "signed": 0}
    payload = webhooks.calls_to(settings.n8n_select_url)[0][0]
    assert payload["table_name"] == settings.porting_loa_table
    assert payload["filters"] == {"uuid": "u-1"}
    assert payload["limit"] == 1


@pytest.mark.asyncio
async def test_get_loa_by_uuid_without_rows(n8n_client, webhooks, settings):
    webhooks.on(settings.n8n_select_url, [])
    result = await n8n_client.get_loa_by_uuid("missing")
    assert result["success"] is True
    assert result["data"] is None


@pytest.mark.asyncio
async def test_upstream_failure_envelope(n8n_client, webhooks, settings):
    webhooks.on(settings.n8n_submit_order_url, lambda request: httpx.Response(502, text="bad gateway"))

    result = await n8n_client.submit_order({"user_id": 1})

    assert result["success"] is False
    assert result["status"] == 502
    assert result["error"] == "HTTP 502"


@pytest.mark.asyncio
async def test_unexpected_client_error_becomes_upstream_error(settings):
    class ExplodingHttpClient:
        async def request(self, *args, **kwargs):
            raise RuntimeError("socket closed")

    client = N8nClient(ExplodingHttpClient(), cache=TransientCache(), settings=settings)
    result = await client.submit_porting_loa({"to": "sales@customer2.ai"})

    assert result["success"] is False
    assert result["error_code"] == "UPSTREAM_ERROR"
    assert result["error"] == "socket closed"
