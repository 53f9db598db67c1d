"""Pydantic input contracts for the AnyCrawl MCP tools.

Each tool's arguments are validated against one of these models before any
request reaches the remote API. Validation failures are reported back to the
caller as tool errors with field-level detail.
"""

from anycrawl_mcp.models.tools import (
    CancelCrawlToolInput,
    CrawlResultsToolInput,
    CrawlStatusToolInput,
    CrawlToolInput,
    JsonOptions,
    NestedScrapeOptions,
    ScrapeToolInput,
    SearchToolInput,
    explicit_fields,
    format_validation_error,
)

__all__ = [
    "CancelCrawlToolInput",
    "CrawlResultsToolInput",
    "CrawlStatusToolInput",
    "CrawlToolInput",
    "JsonOptions",
    "NestedScrapeOptions",
    "ScrapeToolInput",
    "SearchToolInput",
    "explicit_fields",
    "format_validation_error",
]
