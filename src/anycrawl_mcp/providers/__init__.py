"""Providers for the remote AnyCrawl API."""

from anycrawl_mcp.providers.anycrawl_client import AnyCrawlClient
from anycrawl_mcp.providers.base import (
    CrawlJob,
    CrawlProvider,
    CrawlResultsPage,
    CrawlStatus,
    ScrapeResult,
)

__all__ = [
    "AnyCrawlClient",
    "CrawlJob",
    "CrawlProvider",
    "CrawlResultsPage",
    "CrawlStatus",
    "ScrapeResult",
]
