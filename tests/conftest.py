"""Test configuration and fixtures.

All tests are offline: the live client is driven through
`httpx.MockTransport`, everything else through DummyPipedriveClient.
"""

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from salesqueue.cache import TTLCache
from salesqueue.connectors.base import RequestPolicy
from salesqueue.digest import SalesQueueService
from salesqueue.pipedrive.client import PipedriveClient
from salesqueue.pipedrive.dummy import DummyPipedriveClient

NO_RETRY_POLICY = RequestPolicy(max_retries=0, retry_delay=0.0)


class FakeClock:
    """Controllable monotonic clock for cache tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """MockTransport handler that records requests and answers from a routing function."""

    def __init__(self, route: Callable[[httpx.Request], httpx.Response]):
        self.route = route
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def ok(data: Any, additional_data: Optional[Dict[str, Any]] = None) -> httpx.Response:
    body: Dict[str, Any] = {"success": True, "data": data}
    if additional_data is not None:
        body["additional_data"] = additional_data
    return httpx.Response(200, json=body)


def not_found() -> httpx.Response:
    return httpx.Response(404, json={"success": False, "error": "Not found"})


def make_client(route: Callable[[httpx.Request], httpx.Response]):
    """PipedriveClient over a recording MockTransport (no retries)."""
    handler = RecordingHandler(route)
    client = PipedriveClient(
        api_token="test-token",
        policy=NO_RETRY_POLICY,
        transport=httpx.MockTransport(handler),
    )
    return client, handler


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dummy_client() -> DummyPipedriveClient:
    return DummyPipedriveClient.demo()


@pytest.fixture
def service(dummy_client, clock) -> SalesQueueService:
    return SalesQueueService(dummy_client, cache=TTLCache(clock=clock), cache_ttl=60)
