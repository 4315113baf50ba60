"""Shared fixtures: a Freshdesk client wired to an in-memory transport."""

from typing import Any, Callable, List

import httpx
import pytest

from freshdesk_mcp.client import FreshdeskClient
from freshdesk_mcp.config import FreshdeskConfig


class FakeFreshdesk:
    """Records every request and answers from a queue of canned responses."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.responses: List[Any] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)


@pytest.fixture
def config():
    return FreshdeskConfig(domain="acme", api_key="secret-key")


@pytest.fixture
def fake():
    return FakeFreshdesk()


@pytest.fixture
def make_client(config, fake) -> Callable[[], FreshdeskClient]:
    def _make() -> FreshdeskClient:
        return FreshdeskClient(config, transport=httpx.MockTransport(fake.handler))
    return _make
