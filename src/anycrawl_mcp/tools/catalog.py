"""Tool catalog: names, descriptions and input contracts of every tool."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

from mcp.types import CallToolResult, Tool
from pydantic import BaseModel

from anycrawl_mcp.models.tools import (
    CancelCrawlToolInput,
    CrawlResultsToolInput,
    CrawlStatusToolInput,
    CrawlToolInput,
    ScrapeToolInput,
    SearchToolInput,
)
from anycrawl_mcp.providers.base import CrawlProvider, ProgressCallback
from anycrawl_mcp.tools import service

ToolHandler = Callable[[CrawlProvider, dict[str, Any], ProgressCallback | None], Awaitable[CallToolResult]]


@dataclass(frozen=True)
class ToolSpec:
    """One registered tool."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler

    def to_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(by_alias=True),
        )


SCRAPE_DESCRIPTION = """Scrape a single URL and extract content in selected formats.

Best for: one known page (articles, docs, product pages).
Not recommended for: multi-page coverage (use anycrawl_crawl) or open-ended discovery (use anycrawl_search).

RECOMMENDED: use the 'playwright' engine for dynamic content and modern websites.

Returns: { url, status, jobId?, title?, html?, markdown?, metadata?, timestamp? }

Example: { "url": "https://example.com", "engine": "playwright" }"""

CRAWL_DESCRIPTION = """Crawl an entire website with configurable depth and limits.

Submits a crawl job, waits for it to finish (poll_seconds / poll_interval_ms,
bounded by timeout_ms) and returns every scraped page.

Best for: multi-page coverage, site mapping, content discovery.
Not recommended for: single pages (use anycrawl_scrape).

Returns: { job_id, status, total, completed, creditsUsed, data[] }

Example: { "url": "https://docs.example.com", "engine": "playwright", "max_depth": 5, "limit": 200 }"""

SEARCH_DESCRIPTION = """Search the web and optionally scrape the results.

Best for: open-ended discovery, finding relevant content.
RECOMMENDED: limit=5 for balanced performance and cost.

Returns: array of { title, url?, description?, source }

Example: { "query": "machine learning", "lang": "es", "country": "ES", "limit": 5 }"""

CRAWL_STATUS_DESCRIPTION = """Get the status of a crawl job.

Returns: { job_id, status, start_time, expires_at, credits_used, total, completed, failed }"""

CRAWL_RESULTS_DESCRIPTION = """Get one page of results from a crawl job.

Use skip to paginate.

Returns: { status, total, completed, creditsUsed, next?, data[] }"""

CANCEL_CRAWL_DESCRIPTION = """Cancel a running crawl job.

Stops an ongoing crawl job and prevents further processing."""


class ToolCatalog:
    """Ordered, read-only collection of tool specs."""

    def __init__(self, specs: list[ToolSpec]) -> None:
        self._specs = {spec.name: spec for spec in specs}

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._specs.values())

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def list_tools(self) -> list[Tool]:
        """Return MCP tool definitions for every registered tool."""
        return [spec.to_tool() for spec in self._specs.values()]


def default_catalog() -> ToolCatalog:
    """Build the catalog of the six AnyCrawl tools."""
    return ToolCatalog(
        [
            ToolSpec("anycrawl_scrape", SCRAPE_DESCRIPTION, ScrapeToolInput, service.scrape),
            ToolSpec("anycrawl_crawl", CRAWL_DESCRIPTION, CrawlToolInput, service.crawl),
            ToolSpec("anycrawl_search", SEARCH_DESCRIPTION, SearchToolInput, service.search),
            ToolSpec(
                "anycrawl_crawl_status", CRAWL_STATUS_DESCRIPTION, CrawlStatusToolInput, service.crawl_status
            ),
            ToolSpec(
                "anycrawl_crawl_results", CRAWL_RESULTS_DESCRIPTION, CrawlResultsToolInput, service.crawl_results
            ),
            ToolSpec(
                "anycrawl_cancel_crawl", CANCEL_CRAWL_DESCRIPTION, CancelCrawlToolInput, service.cancel_crawl
            ),
        ]
    )
