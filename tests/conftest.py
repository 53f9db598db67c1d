"""Pytest configuration and fixtures for anycrawl-mcp tests."""

from __future__ import annotations

from typing import Any

import pytest

from anycrawl_mcp.protocol import ProtocolEngine
from anycrawl_mcp.providers.base import (
    CrawlJob,
    CrawlProvider,
    CrawlResultsPage,
    CrawlStatus,
    ScrapeResult,
)
from anycrawl_mcp.tools import ToolInvoker


class FakeProvider(CrawlProvider):
    """In-memory stand-in for the remote AnyCrawl API.

    ``statuses`` is consumed one entry per status poll; the last entry repeats.
    ``pages`` maps a ``skip`` offset to a raw results page payload.
    """

    def __init__(self) -> None:
        self.scrape_payload: dict[str, Any] = {"status": "completed", "markdown": "# hi"}
        self.statuses: list[str] = ["completed"]
        self.pages: dict[int, dict[str, Any]] = {
            0: {"status": "completed", "total": 1, "completed": 1, "creditsUsed": 1, "data": [{"url": "a"}]},
        }
        self.search_results: list[dict[str, Any]] = [
            {"title": "Example", "url": "https://example.com", "source": "google"}
        ]
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    async def scrape(self, options: dict[str, Any]) -> ScrapeResult:
        self.calls.append(("scrape", options))
        return ScrapeResult.from_payload(self.scrape_payload)

    async def create_crawl(self, options: dict[str, Any]) -> CrawlJob:
        self.calls.append(("create_crawl", options))
        return CrawlJob(job_id="job-1", status="created")

    async def get_crawl_status(self, job_id: str) -> CrawlStatus:
        self.calls.append(("get_crawl_status", job_id))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return CrawlStatus(job_id=job_id, status=status, total=2, completed=1)

    async def get_crawl_results(self, job_id: str, skip: int = 0) -> CrawlResultsPage:
        self.calls.append(("get_crawl_results", skip))
        return CrawlResultsPage.from_payload(self.pages[skip])

    async def cancel_crawl(self, job_id: str) -> dict[str, Any]:
        self.calls.append(("cancel_crawl", job_id))
        return {"job_id": job_id, "status": "cancelled"}

    async def search(self, options: dict[str, Any]) -> list[dict[str, Any]]:
        self.calls.append(("search", options))
        return self.search_results

    def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEngineFactory:
    """Engine factory backed by FakeProvider that remembers every engine it built."""

    def __init__(self) -> None:
        self.built: list[tuple[str, bool, FakeProvider]] = []

    def __call__(self, tenant_id: str, stateless: bool = False) -> ProtocolEngine:
        provider = FakeProvider()
        self.built.append((tenant_id, stateless, provider))
        return ProtocolEngine(ToolInvoker(provider), stateless=stateless)

    @property
    def tenants(self) -> list[str]:
        return [tenant_id for tenant_id, _, _ in self.built]


@pytest.fixture
def fake_provider() -> FakeProvider:
    """A fresh fake remote API."""
    return FakeProvider()


@pytest.fixture
def invoker(fake_provider: FakeProvider) -> ToolInvoker:
    """ToolInvoker bound to the fake remote API."""
    return ToolInvoker(fake_provider)


@pytest.fixture
def engine(invoker: ToolInvoker) -> ProtocolEngine:
    """A stateful protocol engine bound to the fake remote API."""
    return ProtocolEngine(invoker)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine_factory() -> RecordingEngineFactory:
    return RecordingEngineFactory()


def jsonrpc(method: str, params: dict[str, Any] | None = None, request_id: int | str | None = 1) -> dict[str, Any]:
    """Build a JSON-RPC request (or a notification when ``request_id`` is None)."""
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        message["params"] = params
    if request_id is not None:
        message["id"] = request_id
    return message


def initialize_request(request_id: int = 1) -> dict[str, Any]:
    return jsonrpc(
        "initialize",
        {
            "protocolVersion": "2025-03-26",
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0"},
        },
        request_id,
    )
