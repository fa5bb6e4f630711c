"""
Tests for the allow-listed API proxy
"""
import base64
import threading

import pytest

from app.services import api_proxy as api_proxy_module

LOA_HTML = base64.b64encode(b"<html><body><p>Letter of Authorization</p></body></html>").decode()

CHARGE = {
    "first_name": "Jane",
    "last_name": "Doe",
    "email": "jane@acmecorp.com",
    "phone_number": "+12015550123",
    "stripe_token": "tok_123",
    "card_token": "card_123",
    "total_to_charge": 17900,
    "products": ["inbound_outbound_calls", "emails"],
    "shipping_address": "1 Main St",
    "shipping_city": "Newark",
    "shipping_state": "NJ",
    "shipping_zip": "07102",
}


@pytest.mark.asyncio
async def test_unknown_action(api_proxy, webhooks):
    result = await api_proxy.handle("aipw_drop_tables", {})

    assert result == {"success": False, "data": None, "error": "Invalid action", "error_code": "INVALID_ACTION"}
    assert webhooks.calls == []


@pytest.mark.asyncio
async def test_prefix_is_optional(api_proxy):
    with_prefix = await api_proxy.handle("aipw_validate_phone", {"phone": "2015550123"})
    without_prefix = await api_proxy.handle("validate_phone", {"phone": "2015550123"})
    assert with_prefix == without_prefix


@pytest.mark.asyncio
async def test_validate_phone(api_proxy):
    ok = await api_proxy.handle("validate_phone", {"phone": "01212345678", "country": "GB"})
    bad = await api_proxy.handle("validate_phone", {"phone": "not a number"})
    missing = await api_proxy.handle("validate_phone", {})

    assert ok["success"] is True
    assert ok["data"]["e164"] == "+441212345678"
    assert bad["success"] is False
    assert bad["error"].startswith("Could not parse phone number")
    assert missing["error_code"] == "MISSING_PHONE"


@pytest.mark.asyncio
async def test_charge_customer(api_proxy, webhooks, settings):
    webhooks.on(
        settings.n8n_charge_customer_url,
        {"id": 77, "payment_method": {"card_token": "card_123", "last4": "4242"}},
    )

    result = await api_proxy.handle("aipw_charge_customer", dict(CHARGE))

    assert result["success"] is True
    assert result["data"]["payment_method"] == {"last4": "4242"}

    sent = webhooks.calls_to(settings.n8n_charge_customer_url)[0]
    assert sent["total_to_charge"] == 17900
    assert sent["name"] == "Jane Doe"
    assert sent["address_line_1"] == "1 Main St"
    assert sent["Zip_Code"] == "07102"
    assert sent["Country"] == "US"
    assert sent["sales_generated_id"] == settings.default_sales_generated_id


@pytest.mark.asyncio
async def test_charge_rejects_tampered_amount(api_proxy, webhooks, settings):
    result = await api_proxy.handle("charge_customer", {**CHARGE, "total_to_charge": 100})

    assert result["success"] is False
    assert result["error"] == "Invalid Pricing Package."
    assert webhooks.calls_to(settings.n8n_charge_customer_url) == []


@pytest.mark.asyncio
async def test_charge_missing_field(api_proxy):
    charge = dict(CHARGE)
    charge.pop("card_token")

    result = await api_proxy.handle("charge_customer", charge)

    assert result["error_code"] == "MISSING_FIELD"
    assert result["error"] == "Required field missing: card_token"


@pytest.mark.asyncio
async def test_charge_without_pricing(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_select_url, [])

    result = await api_proxy.handle("charge_customer", dict(CHARGE))

    assert result["error_code"] == "PRICING_NOT_FOUND"
    assert result["error"] == "Unable to retrieve pricing information"


@pytest.mark.asyncio
async def test_pricing_row_with_encoded_cost_json(api_proxy, webhooks, settings, cost_json):
    import json

    webhooks.on(settings.n8n_select_url, [{"cost_json": json.dumps(cost_json)}])
    webhooks.on(settings.n8n_charge_customer_url, {"id": 1})

    result = await api_proxy.handle("charge_customer", dict(CHARGE))
    assert result["success"] is True


@pytest.mark.asyncio
async def test_complete_order_uses_server_side_totals(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_submit_order_url, {"order_id": "ord_9"})

    result = await api_proxy.handle("complete_order", {
        "products": ["inbound_outbound_calls", "emails"],
        "addons": ["AVS Match"],
        "total_to_charge": 17900,
        "setup_total": 1,
        "weekly_cost": 1,
        "payment": {"charge_id": "ch_1"},
        "call_setup": {"agent_quality": "Advanced", "number_count": 2},
    })

    assert result["success"] is True
    assert result["data"] == {
        "order_id": "ord_9",
        "charge_id": "ch_1",
        "message": "Order completed successfully",
    }
    sent = webhooks.calls_to(settings.n8n_submit_order_url)[0]
    assert sent["setup_total"] == 189.0
    assert sent["weekly_cost"] == 50.0
    assert sent["by_minute_charge"] == 0.45
    assert sent["user_setup_total"] == 1


@pytest.mark.asyncio
async def test_complete_order_generates_id(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_submit_order_url, {"ok": True})

    result = await api_proxy.handle("complete_order", {"products": ["emails"], "total_to_charge": 9900})

    assert result["data"]["order_id"].startswith("order_")
    assert result["data"]["charge_id"] is None


@pytest.mark.asyncio
async def test_complete_order_requires_amount(api_proxy):
    result = await api_proxy.handle("complete_order", {"products": ["emails"]})
    assert result["error_code"] == "INVALID_AMOUNT"


@pytest.mark.asyncio
async def test_get_pricing(api_proxy):
    result = await api_proxy.handle("get_pricing", {"sales_generated_id": "pkg-1"})

    assert result["success"] is True
    assert result["data"][0]["cost_json"]


@pytest.mark.asyncio
async def test_validate_coupon_requires_code(api_proxy):
    result = await api_proxy.handle("validate_coupon", {"coupon_code": "   "})
    assert result["error_code"] == "MISSING_FIELD"


@pytest.mark.asyncio
async def test_create_user_passthrough(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_create_user_url, 42)

    result = await api_proxy.handle("create_user", {"email": "jane@acmecorp.com"})

    assert result["success"] is True
    assert result["data"] == 42


@pytest.mark.asyncio
@pytest.mark.parametrize("data,code", [
    ({}, "MISSING_USER_ID"),
    ({"userId": 42}, "MISSING_LOA_HTML"),
    ({"userId": 42, "loa_html": LOA_HTML}, "MISSING_PHONE_NUMBERS"),
    ({"userId": 42, "loa_html": LOA_HTML, "numbers_to_port": "x"}, "MISSING_PHONE_NUMBERS"),
])
async def test_submit_porting_loa_validation(api_proxy, data, code):
    result = await api_proxy.handle("submit_porting_loa", data)
    assert result["error_code"] == code


@pytest.mark.asyncio
async def test_submit_porting_loa(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_porting_loa_url, {"ok": True})

    result = await api_proxy.handle("submit_porting_loa", {
        "userId": {"user_id": 42},
        "loa_html": LOA_HTML,
        "numbers_to_port": [{"phone_number": "+12015550123", "service_provider": "Verizon"}],
        "paymentInfo": {"first_name": "Jane", "last_name": "Doe", "email": "jane@acmecorp.com"},
        "utility_bill_base64": "JVBERi0=",
        "utility_bill_extension": "png",
        "utility_bill_mime_type": "image/png",
    })

    assert result == {"success": True, "data": {"message": "LOA form submitted successfully"}, "error": None}

    email = webhooks.calls_to(settings.n8n_porting_loa_url)[0]
    assert email["recipient_email"] == "jane@acmecorp.com"
    assert email["subject"] == "Porting LOA Submission - Jane Doe"
    assert email["body"]["user_id"] == "42"
    assert "+12015550123" in email["messagebody"]
    pdf, bill = email["attachment"]
    assert pdf["filename"].startswith("porting_loa_42_")
    assert base64.b64decode(pdf["content"]).startswith(b"%PDF")
    assert bill == {
        "filename": "utility_bill_42.png",
        "content": "JVBERi0=",
        "encoding": "base64",
        "type": "image/png",
    }


@pytest.mark.asyncio
async def test_submit_porting_loa_upstream_failure(api_proxy, settings):
    result = await api_proxy.handle("submit_porting_loa", {
        "userId": 42,
        "loa_html": LOA_HTML,
        "numbers_to_port": [{"phone_number": "+12015550123"}],
    })

    assert result["error_code"] == "LOA_SUBMIT_FAILED"
    assert result["error"] == "Failed to submit LOA: HTTP 404"


@pytest.mark.asyncio
async def test_submit_porting_loa_without_email_uses_fallback(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_porting_loa_url, {"ok": True})

    await api_proxy.handle("submit_porting_loa", {
        "userId": 42,
        "loa_html": LOA_HTML,
        "numbers_to_port": [{"phone_number": "+12015550123"}],
    })

    email = webhooks.calls_to(settings.n8n_porting_loa_url)[0]
    assert email["recipient_email"] == settings.loa_fallback_recipient


@pytest.mark.asyncio
async def test_send_porting_loa(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_porting_loa_url, {"ok": True})

    result = await api_proxy.handle("send_porting_loa", {
        "customer": {"first_name": "Jane", "last_name": "Doe", "email": "jane@acmecorp.com"},
        "numbers_to_port": [{"number": "2015550123", "provider": "Verizon"}],
    })

    assert result["success"] is True
    assert result["data"]["message"] == "LOA sent successfully"
    assert result["data"]["filename"].startswith("Porting_LOA_Doe_")

    email = webhooks.calls_to(settings.n8n_porting_loa_url)[0]
    assert email["body"]["numbers_to_port"] == [
        {"phone_number": "+12015550123", "service_provider": "Verizon"}
    ]


@pytest.mark.asyncio
async def test_send_porting_loa_rejects_invalid_numbers(api_proxy, webhooks):
    result = await api_proxy.handle("send_porting_loa", {
        "customer": {"first_name": "Jane"},
        "numbers_to_port": [{"number": "+1 555"}],
    })

    assert result["error_code"] == "INVALID_PHONE"
    assert webhooks.calls == []


@pytest.mark.asyncio
async def test_send_porting_loa_requires_customer(api_proxy):
    result = await api_proxy.handle("send_porting_loa", {"numbers_to_port": ["+12015550123"]})
    assert result["error_code"] == "MISSING_FIELD"


@pytest.mark.asyncio
async def test_get_loa_by_uuid(api_proxy, webhooks, settings):
    assert (await api_proxy.handle("get_loa_by_uuid", {}))["error_code"] == "MISSING_UUID"

    webhooks.on(settings.n8n_select_url, [{"uuid": "u-1", "signed": 0}])
    found = await api_proxy.handle("get_loa_by_uuid", {"uuid": "u-1"})
    assert found == {"success": True, "data": {"uuid": "u-1", "signed": 0}, "error": None}

    webhooks.on(settings.n8n_select_url, [])
    missing = await api_proxy.handle("get_loa_by_uuid", {"uuid": "u-2"})
    assert missing["error_code"] == "LOA_NOT_FOUND"


@pytest.mark.asyncio
async def test_update_loa_signature(api_proxy, webhooks, settings):
    webhooks.on(settings.n8n_update_loa_signature_url, {"ok": True})

    result = await api_proxy.handle("update_loa_signature", {"uuid": "u-1", "loa_html": LOA_HTML})

    assert result["data"] == {"message": "LOA signed successfully", "uuid": "u-1"}
    sent = webhooks.calls_to(settings.n8n_update_loa_signature_url)[0]
    assert sent["uuid"] == "u-1"
    assert sent["signed"] is True
    assert sent["attachment"][0]["filename"].startswith("signed_loa_u-1_")


@pytest.mark.asyncio
async def test_update_loa_signature_validation(api_proxy):
    assert (await api_proxy.handle("update_loa_signature", {}))["error_code"] == "MISSING_UUID"
    assert (await api_proxy.handle("update_loa_signature", {"uuid": "u-1"}))["error_code"] == "MISSING_LOA_HTML"


@pytest.mark.asyncio
async def test_unexpected_handler_error_is_wrapped(api_proxy, monkeypatch):
    async def explode(data):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(api_proxy, "_handle_create_user", explode)

    result = await api_proxy.handle("create_user", {})

    assert result == {"success": False, "data": None, "error": "kaboom", "error_code": "PROXY_ERROR"}


@pytest.mark.asyncio
async def test_allowed_action_without_handler(api_proxy, webhooks, monkeypatch):
    monkeypatch.setattr(api_proxy_module, "ALLOWED_ACTIONS", api_proxy_module.ALLOWED_ACTIONS + ("refund_order",))

    result = await api_proxy.handle("aipw_refund_order", {})

    assert result == {
        "success": False,
        "data": None,
        "error": "Handler not implemented",
        "error_code": "NOT_IMPLEMENTED",
    }
    assert webhooks.calls == []


@pytest.mark.asyncio
async def test_loa_pdf_renders_off_the_event_loop(api_proxy, webhooks, settings, monkeypatch):
    webhooks.on(settings.n8n_porting_loa_url, {"ok": True})
    render_threads = []

    def fake_pdf(html):
        render_threads.append(threading.get_ident())
        return b"%PDF-1.4"

    monkeypatch.setattr(api_proxy_module, "html_to_pdf", fake_pdf)

    result = await api_proxy.handle("submit_porting_loa", {
        "userId": 42,
        "loa_html": LOA_HTML,
        "numbers_to_port": [{"phone_number": "+12015550123"}],
    })

    assert result["success"] is True
    assert render_threads and render_threads[0] != threading.get_ident()
