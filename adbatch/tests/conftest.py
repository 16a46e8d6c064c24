"""Shared fixtures for adbatch tests."""

import json
from typing import Callable, Dict, List

import httpx
import pytest

from adbatch.config import GatewayConfig, UploadConfig
from adbatch.gateway.client import AdsGatewayClient
from adbatch.models import CampaignMetadata, TargetDescriptor

def sse_body(events: List[tuple]) -> bytes:
    """Encode (event, data) pairs as an SSE response body."""
    frames = [f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events]
    return "".join(frames).encode()

@pytest.fixture
def sse():
    """Get the SSE body encoder."""
    return sse_body

@pytest.fixture
def gateway_config():
    """Get a gateway configuration pointed at a fake host."""
    return GatewayConfig(base_url="http://gateway.test", access_token="test-token")

@pytest.fixture
def fast_upload_config():
    """Get upload settings without real waits."""
    return UploadConfig(settle_delay=0, progress_cleanup_delay=0.01, channel_drain_timeout=0.5)

@pytest.fixture
def routes() -> Dict[str, Callable[[httpx.Request], httpx.Response]]:
    """Map of 'METHOD path' to a handler, filled in by each test."""
    return {}

@pytest.fixture
def requests_seen() -> List[httpx.Request]:
    """Requests received by the mock transport, in order."""
    return []

@pytest.fixture
def mock_transport(routes, requests_seen):
    """Get a mock transport dispatching to the routes fixture."""
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        key = f"{request.method} {request.url.path}"
        if key not in routes:
            return httpx.Response(404, json={"error": f"No route for {key}"})
        return routes[key](request)
    return httpx.MockTransport(handler)

@pytest.fixture
async def gateway(gateway_config, mock_transport):
    """Get a gateway client backed by the mock transport."""
    http = httpx.AsyncClient(base_url=gateway_config.base_url, transport=mock_transport)
    client = AdsGatewayClient(gateway_config, client=http)
    yield client
    await http.aclose()

@pytest.fixture
def campaign_targets():
    """Get three campaign targets in one account."""
    return [
        TargetDescriptor(account_id="act_1", campaign_id="c1", name="Spring Sale"),
        TargetDescriptor(account_id="act_1", campaign_id="c2", name="Summer Sale"),
        TargetDescriptor(account_id="act_1", campaign_id="c3", name="Fall Sale"),
    ]

@pytest.fixture
def campaigns():
    """Get campaign metadata keyed by campaign ID."""
    return {
        "c1": CampaignMetadata(id="c1", account_id="act_1", objective="OUTCOME_SALES"),
        "c2": CampaignMetadata(id="c2", account_id="act_1", objective="OUTCOME_SALES"),
        "c3": CampaignMetadata(id="c3", account_id="act_1", objective="OUTCOME_SALES"),
    }
