"""Pytest configuration and fixtures for marketplace console tests.

Provides an in-memory fake of the marketplace API (served over ASGI) and
a factory for clients backed by ``httpx.MockTransport`` handlers.
"""

from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio

from fake_api import FakeMarketplace, course
from marketplace_console.services.api import ApiClient
from marketplace_console.services.menu import MenuController

BASE_URL = "http://marketplace.test"


# ── Fake API ─────────────────────────────────────────────────────

@pytest.fixture
def fake() -> FakeMarketplace:
    """Fresh in-memory marketplace for each test."""
    return FakeMarketplace()


@pytest_asyncio.fixture
async def api(fake: FakeMarketplace) -> AsyncGenerator[ApiClient, None]:
    """ApiClient talking to the fake marketplace."""
    transport = httpx.ASGITransport(app=fake.app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield ApiClient(BASE_URL, token="test-token", timeout=5.0, client=client)


@pytest_asyncio.fixture
async def mock_api() -> AsyncGenerator[Callable[..., ApiClient], None]:
    """Factory: ``mock_api(handler, **client_kwargs)`` -> ApiClient on a MockTransport."""
    clients: list[httpx.AsyncClient] = []

    def build(handler, **kwargs) -> ApiClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        kwargs.setdefault("timeout", 5.0)
        return ApiClient(BASE_URL, client=client, **kwargs)

    yield build

    for client in clients:
        await client.aclose()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest.fixture
def watercolor_courses(fake: FakeMarketplace) -> FakeMarketplace:
    """25 pending watercolor courses plus distractors: 3 pages at limit 10."""
    items = [course(f"wc{i:02d}", "pending", f"Watercolor basics {i}") for i in range(25)]
    items += [course(f"wp{i:02d}", "published", f"Watercolor masters {i}") for i in range(4)]
    items += [course(f"oil{i:02d}", "pending", f"Oil painting {i}") for i in range(6)]
    fake.seed("courses", items)
    return fake


@pytest.fixture
def menu() -> MenuController:
    return MenuController(viewport_width=1280, gap=5)


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Tests against the fake marketplace API")
    config.addinivalue_line("markers", "concurrency: Ordering and in-flight tests")
