"""
Pytest configuration and fixtures
"""
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from app.core.cache import TransientCache
from app.core.config import get_settings
from app.core.http_client import HttpClient
from app.services.api_proxy import ApiProxy
from app.services.n8n_client import N8nClient
from app.services.phone_validator import PhoneValidator

COST_JSON: List[Dict[str, Any]] = [
    {"name": "One Time Charge", "type": "1 Service", "frequency": "One Time", "cost": "$99.00"},
    {"name": "One Time Charge", "type": "2 Services", "frequency": "One Time", "cost": 179},
    {"name": "One Time Charge", "type": "3+ Services", "frequency": "One Time", "cost": "$249.00"},
    {
        "name": "Inbound Calls", "type": "Quick", "frequency": "Weekly",
        "phone_per_minute": "$0.25", "phone_per_minute_overage": "$0.35", "call_threshold": 500,
        "description": "Fast responses",
    },
    {
        "name": "Inbound Calls", "type": "Advanced", "frequency": "Weekly",
        "phone_per_minute": "$0.45", "phone_per_minute_overage": "$0.55", "call_threshold": 500,
    },
    {
        "name": "Outbound Calls", "type": "Advanced", "frequency": "Weekly",
        "phone_per_minute": "$0.45", "phone_per_minute_overage": "$0.55", "call_threshold": 500,
    },
    {"name": "Inbound Calls", "type": "Conversational", "frequency": "Weekly", "phone_per_minute": "$0.65"},
    {
        "name": "Email Agents", "type": "Basic", "frequency": "Weekly", "cost": "$50.00",
        "email_threshold": 1000, "email_cost_overage": "$0.05",
    },
    {
        "name": "Chat Agents", "type": "Basic", "frequency": "Weekly", "cost": "$40.00",
        "chat_threshold": 2000, "chat_cost_overage": "$0.02",
    },
    {"name": "Transcription & Call Recordings", "type": "Addons", "frequency": "Weekly", "cost": "$0.00"},
    {"name": "AVS Match", "type": "Addons", "frequency": "Weekly", "cost": "$25.00"},
    {"name": "QA", "type": "Basic", "frequency": "Weekly", "cost": "$30.00", "cost_per_lead": "$1.50"},
    {"name": "Phone Numbers", "type": "Price Per Number", "frequency": "Weekly", "cost_per_number": "$5.00"},
]

Responder = Union[Dict[str, Any], List[Any], Callable[[httpx.Request], httpx.Response]]


class FakeWebhooks:
    """Routes outgoing requests by URL and records every call"""

    def __init__(self):
        self.routes: Dict[str, Responder] = {}
        self.calls: List[Tuple[str, str, Any]] = []

    def on(self, url: str, responder: Responder):
        self.routes[url] = responder

    def calls_to(self, url: str) -> List[Any]:
        return [body for call_url, _, body in self.calls if call_url == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        body = None
        if request.content:
            try:
                body = json.loads(request.content)
            except ValueError:
                body = request.content.decode()
        self.calls.append((url, request.method, body))

        responder = self.routes.get(url)
        if responder is None:
            return httpx.Response(404, json={"message": "not found"})
        if callable(responder):
            return responder(request)
        return httpx.Response(200, json=responder)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def cost_json():
    return [dict(item) for item in COST_JSON]


@pytest.fixture
def webhooks(settings):
    hooks = FakeWebhooks()
    hooks.on(settings.n8n_select_url, [{"cost_json": COST_JSON}])
    return hooks


@pytest.fixture
def http_client(webhooks):
    return HttpClient(transport=httpx.MockTransport(webhooks.handler))


@pytest.fixture
def n8n_client(http_client):
    return N8nClient(http_client, cache=TransientCache())


@pytest.fixture
def phone_validator():
    return PhoneValidator()


@pytest.fixture
def api_proxy(n8n_client, phone_validator):
    return ApiProxy(n8n_client, phone_validator)


@pytest.fixture
def client(api_proxy, n8n_client, phone_validator):
    """Create test client with service dependency overrides"""
    from fastapi.testclient import TestClient

    from app.api.deps import get_api_proxy, get_order_processor
    from app.main import app
    from app.services.order_processor import OrderProcessor

    app.dependency_overrides[get_api_proxy] = lambda: api_proxy
    app.dependency_overrides[get_order_processor] = lambda: OrderProcessor(n8n_client, phone_validator)
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


class RecordingTransport:
    """Wizard transport answering from canned envelopes"""

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def respond(self, action: str, response: Any):
        self.responses[action] = response

    def sent(self, action: str) -> List[Dict[str, Any]]:
        return [data for name, data in self.calls if name == action]

    async def call(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((action, data))
        response = self.responses.get(action)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return {"success": False, "data": None, "error": f"No response for {action}"}
        return response


@pytest.fixture
def transport():
    recording = RecordingTransport()
    recording.respond("get_pricing", {"success": True, "data": [{"cost_json": COST_JSON}], "error": None})
    return recording
