"""
Tests for the standalone LOA signing session
"""
import base64

import pytest

from app.wizard import StandaloneLoaSession, WizardError
from app.wizard.standalone_loa import STATUS_ALREADY_SIGNED, STATUS_ERROR, STATUS_FORM, STATUS_SIGNED

RECORD = {
    "first_name": "Jane",
    "last_name": "Doe",
    "signed": 0,
    "phone_numbers_and_providers": '[{"phone_number": "+12015550123", "service_provider": "Verizon"}]',
}


@pytest.fixture
def session(transport):
    return StandaloneLoaSession(transport)


@pytest.mark.asyncio
async def test_load_open_loa(session, transport):
    transport.respond("get_loa_by_uuid", {"success": True, "data": dict(RECORD), "error": None})

    assert await session.load("u-1") == STATUS_FORM
    assert session.uuid == "u-1"
    assert session.numbers == [{"phone_number": "+12015550123", "service_provider": "Verizon"}]
    assert transport.sent("get_loa_by_uuid") == [{"uuid": "u-1"}]


@pytest.mark.asyncio
async def test_load_signed_loa(session, transport):
    transport.respond("get_loa_by_uuid", {"success": True, "data": {**RECORD, "signed": 1}, "error": None})

    assert await session.load("u-1") == STATUS_ALREADY_SIGNED
    with pytest.raises(WizardError):
        await session.submit("Jane Doe")


@pytest.mark.asyncio
async def test_load_missing_loa(session, transport):
    transport.respond("get_loa_by_uuid", {"success": False, "data": None, "error": "LOA not found"})

    assert await session.load("nope") == STATUS_ERROR
    assert session.error == "LOA not found"


@pytest.mark.asyncio
async def test_unparseable_numbers(session, transport):
    transport.respond(
        "get_loa_by_uuid",
        {"success": True, "data": {**RECORD, "phone_numbers_and_providers": "{not json"}, "error": None},
    )

    assert await session.load("u-1") == STATUS_FORM
    assert session.numbers == []


@pytest.mark.asyncio
async def test_submit_signature(session, transport):
    transport.respond("get_loa_by_uuid", {"success": True, "data": dict(RECORD), "error": None})
    transport.respond("update_loa_signature", {"success": True, "data": {"uuid": "u-1"}, "error": None})
    await session.load("u-1")
    session.attach_utility_bill(b"bill", "bill.jpg", "image/jpeg")

    response = await session.submit("Jane Doe", signed_date="2024-03-09")

    assert response["success"] is True
    assert session.status == STATUS_SIGNED
    payload = transport.sent("update_loa_signature")[0]
    assert payload["uuid"] == "u-1"
    assert payload["utility_bill_mime_type"] == "image/jpeg"
    html = base64.b64decode(payload["loa_html"]).decode("utf-8")
    assert "Jane Doe" in html
    assert "Verizon" in html


@pytest.mark.asyncio
async def test_failed_submission_keeps_form_open(session, transport):
    transport.respond("get_loa_by_uuid", {"success": True, "data": dict(RECORD), "error": None})
    await session.load("u-1")

    response = await session.submit("Jane Doe")

    assert response["success"] is False
    assert session.status == STATUS_FORM
    assert session.error == "No response for update_loa_signature"


@pytest.mark.asyncio
async def test_submit_requires_printed_name(session, transport):
    transport.respond("get_loa_by_uuid", {"success": True, "data": dict(RECORD), "error": None})
    await session.load("u-1")

    with pytest.raises(WizardError):
        await session.submit("")
