"""Tool handlers: validate arguments, call the remote API, shape the result."""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, ValidationError

from anycrawl_mcp.models.tools import (
    PAGE_OPTION_FIELDS,
    CancelCrawlToolInput,
    CrawlResultsToolInput,
    CrawlStatusToolInput,
    CrawlToolInput,
    NestedScrapeOptions,
    ScrapeToolInput,
    SearchToolInput,
    explicit_fields,
    format_validation_error,
)
from anycrawl_mcp.providers.base import DEFAULT_POLL_INTERVAL, CrawlProvider, ProgressCallback

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CRAWL_TOP_LEVEL_FIELDS = (
    "engine",
    "retry",
    "exclude_paths",
    "include_paths",
    "max_depth",
    "strategy",
    "limit",
)

SEARCH_TOP_LEVEL_FIELDS = (
    "engine",
    "limit",
    "offset",
    "pages",
    "lang",
    "country",
    "safeSearch",
)


class ToolArgumentError(Exception):
    """Tool arguments failed validation; reported as a tool error result."""


def parse_arguments(model: type[ModelT], tool_name: str, arguments: dict[str, Any]) -> ModelT:
    """Validate raw tool arguments against a contract.

    Raises:
        ToolArgumentError: With a field-level message if validation fails
    """
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        raise ToolArgumentError(format_validation_error(tool_name, e)) from e


def text_result(payload: Any) -> CallToolResult:
    """Wrap a JSON-serializable payload (or plain text) in a tool result."""
    text = payload if isinstance(payload, str) else json.dumps(payload, indent=2, ensure_ascii=False)
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=False)


def error_result(message: str) -> CallToolResult:
    """Build a tool result flagged as an error."""
    return CallToolResult(content=[TextContent(type="text", text=message)], isError=True)


def build_page_options(
    args: BaseModel,
    nested: NestedScrapeOptions | None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge top-level per-page fields with nested ``scrape_options``.

    Only caller-supplied fields are kept; a nested field wins over the same
    top-level field.
    """
    options = explicit_fields(args, PAGE_OPTION_FIELDS)
    if extra:
        options.update(extra)
    if nested is not None:
        options.update(nested.model_dump(by_alias=True, exclude_unset=True, exclude_none=True))
    return options


async def scrape(
    provider: CrawlProvider,
    arguments: dict[str, Any],
    on_progress: ProgressCallback | None = None,
) -> CallToolResult:
    """Scrape one URL."""
    args = parse_arguments(ScrapeToolInput, "anycrawl_scrape", arguments)
    logger.info(f"Starting scrape for URL: {args.url}")

    request = {"url": args.url, "engine": args.engine}
    request.update(explicit_fields(args, ("retry", *PAGE_OPTION_FIELDS)))

    result = await provider.scrape(request)
    url = result.url or args.url

    if result.status == "failed":
        logger.warning(f"Scraping failed for {url}: {result.error}")
        return error_result(f"Scraping failed for {url}: {result.error or 'unknown error'}")

    logger.info(f"Scraping completed successfully for {url}")
    return text_result({**result.to_dict(), "url": url})


async def crawl(
    provider: CrawlProvider,
    arguments: dict[str, Any],
    on_progress: ProgressCallback | None = None,
) -> CallToolResult:
    """Crawl a site, wait for the job and return every page."""
    args = parse_arguments(CrawlToolInput, "anycrawl_crawl", arguments)
    logger.info(f"Starting crawl for URL: {args.url}")

    request: dict[str, Any] = {"url": args.url}
    request.update(explicit_fields(args, CRAWL_TOP_LEVEL_FIELDS))
    page_options = build_page_options(args, args.scrape_options)
    if page_options:
        request["scrape_options"] = page_options

    supplied = args.model_fields_set
    if "poll_seconds" in supplied:
        poll_interval = float(args.poll_seconds)
    elif "poll_interval_ms" in supplied:
        poll_interval = args.poll_interval_ms / 1000
    else:
        poll_interval = DEFAULT_POLL_INTERVAL

    aggregated = await provider.crawl(
        request,
        poll_interval=poll_interval,
        timeout_ms=args.timeout_ms,
        on_progress=on_progress,
    )
    return text_result(aggregated)


async def crawl_status(
    provider: CrawlProvider,
    arguments: dict[str, Any],
    on_progress: ProgressCallback | None = None,
) -> CallToolResult:
    """Report the status of a crawl job."""
    args = parse_arguments(CrawlStatusToolInput, "anycrawl_crawl_status", arguments)
    status = await provider.get_crawl_status(args.job_id)
    return text_result(status.to_dict())


async def crawl_results(
    provider: CrawlProvider,
    arguments: dict[str, Any],
    on_progress: ProgressCallback | None = None,
) -> CallToolResult:
    """Return one page of crawl results."""
    args = parse_arguments(CrawlResultsToolInput, "anycrawl_crawl_results", arguments)
    page = await provider.get_crawl_results(args.job_id, args.skip)
    return text_result(page.to_dict())


async def cancel_crawl(
    provider: CrawlProvider,
    arguments: dict[str, Any],
    on_progress: ProgressCallback | None = None,
) -> CallToolResult:
    """Cancel a crawl job."""
    args = parse_arguments(CancelCrawlToolInput, "anycrawl_cancel_crawl", arguments)
    result = await provider.cancel_crawl(args.job_id)
    return text_result(
        "Crawl job cancelled successfully!\n"
        f"Job ID: {result.get('job_id', args.job_id)}\n"
        f"Status: {result.get('status', 'cancelled')}"
    )


async def search(
    provider: CrawlProvider,
    arguments: dict[str, Any],
    on_progress: ProgressCallback | None = None,
) -> CallToolResult:
    """Search the web, optionally scraping each result."""
    args = parse_arguments(SearchToolInput, "anycrawl_search", arguments)

    request: dict[str, Any] = {"query": args.query}
    request.update(explicit_fields(args, SEARCH_TOP_LEVEL_FIELDS))

    extra = {"engine": args.scrape_engine} if "scrape_engine" in args.model_fields_set else None
    page_options = build_page_options(args, args.scrape_options, extra)
    if page_options:
        request["scrape_options"] = page_options

    results = await provider.search(request)
    return text_result(results)
