"""Base provider interface for the remote crawling API."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from anycrawl_mcp.errors import AnyCrawlAPIError, CrawlJobFailedError, CrawlTimeoutError

logger = logging.getLogger(__name__)

# Crawl statuses after which polling stops successfully; "failed" is terminal too
# but surfaces as an error.
FINISHED_STATUSES = ("completed", "cancelled")

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_CRAWL_TIMEOUT_MS = 60000


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass
class ScrapeResult:
    """Result of a single-page scrape."""

    url: str | None
    status: str
    job_id: str | None = None
    title: str | None = None
    html: str | None = None
    markdown: str | None = None
    metadata: Any = None
    timestamp: str | None = None
    error: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> ScrapeResult:
        """Build a ScrapeResult from the API ``data`` object.

        Raises:
            AnyCrawlAPIError: If the payload has no string ``status``
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("status"), str):
            raise AnyCrawlAPIError("Unexpected scrape result from AnyCrawl API")
        return cls(
            url=payload.get("url"),
            status=payload["status"],
            job_id=payload.get("jobId"),
            title=payload.get("title"),
            html=payload.get("html"),
            markdown=payload.get("markdown"),
            metadata=payload.get("metadata"),
            timestamp=payload.get("timestamp"),
            error=payload.get("error"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "url": self.url,
                "status": self.status,
                "jobId": self.job_id,
                "title": self.title,
                "html": self.html,
                "markdown": self.markdown,
                "metadata": self.metadata,
                "timestamp": self.timestamp,
            }
        )


@dataclass
class CrawlJob:
    """Descriptor returned when a crawl job is submitted."""

    job_id: str
    status: str
    message: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> CrawlJob:
        if not isinstance(payload, dict) or not payload.get("job_id"):
            raise AnyCrawlAPIError("Unexpected crawl job descriptor from AnyCrawl API")
        return cls(
            job_id=str(payload["job_id"]),
            status=str(payload.get("status", "created")),
            message=payload.get("message"),
        )


@dataclass
class CrawlStatus:
    """Progress snapshot of a crawl job."""

    job_id: str
    status: str
    start_time: str | None = None
    expires_at: str | None = None
    credits_used: int | None = None
    total: int | None = None
    completed: int | None = None
    failed: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> CrawlStatus:
        if not isinstance(payload, dict) or not isinstance(payload.get("status"), str):
            raise AnyCrawlAPIError("Unexpected crawl status from AnyCrawl API")
        return cls(
            job_id=str(payload.get("job_id", "")),
            status=payload["status"],
            start_time=payload.get("start_time"),
            expires_at=payload.get("expires_at"),
            credits_used=payload.get("credits_used"),
            total=payload.get("total"),
            completed=payload.get("completed"),
            failed=payload.get("failed"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "job_id": self.job_id,
                "status": self.status,
                "start_time": self.start_time,
                "expires_at": self.expires_at,
                "credits_used": self.credits_used,
                "total": self.total,
                "completed": self.completed,
                "failed": self.failed,
            }
        )


@dataclass
class CrawlResultsPage:
    """One page of crawl results."""

    status: str
    total: int | None = None
    completed: int | None = None
    credits_used: int | None = None
    next: str | None = None
    data: list[Any] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> CrawlResultsPage:
        if not isinstance(payload, dict):
            raise AnyCrawlAPIError("Unexpected crawl results page from AnyCrawl API")
        data = payload.get("data") or []
        if not isinstance(data, list):
            raise AnyCrawlAPIError("Unexpected crawl results page from AnyCrawl API")
        return cls(
            status=str(payload.get("status", "")),
            total=payload.get("total"),
            completed=payload.get("completed"),
            credits_used=payload.get("creditsUsed"),
            next=payload.get("next") or None,
            data=data,
        )

    @property
    def has_more(self) -> bool:
        """Whether the API reported a further page."""
        return bool(self.next) and bool(self.data)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "status": self.status,
                "total": self.total,
                "completed": self.completed,
                "creditsUsed": self.credits_used,
                "next": self.next,
                "data": self.data,
            }
        )


ProgressCallback = Callable[[CrawlStatus], Awaitable[None]]


class CrawlProvider(ABC):
    """Abstract base class for the remote scrape/crawl/search API."""

    @abstractmethod
    async def scrape(self, options: dict[str, Any]) -> ScrapeResult:
        """Scrape a single URL.

        Args:
            options: Request body; must contain ``url`` and ``engine``

        Returns:
            ScrapeResult, possibly with ``status == "failed"``
        """

    @abstractmethod
    async def create_crawl(self, options: dict[str, Any]) -> CrawlJob:
        """Submit a crawl job."""

    @abstractmethod
    async def get_crawl_status(self, job_id: str) -> CrawlStatus:
        """Fetch the status of a crawl job."""

    @abstractmethod
    async def get_crawl_results(self, job_id: str, skip: int = 0) -> CrawlResultsPage:
        """Fetch one page of crawl results starting at ``skip``."""

    @abstractmethod
    async def cancel_crawl(self, job_id: str) -> dict[str, Any]:
        """Cancel a crawl job."""

    @abstractmethod
    async def search(self, options: dict[str, Any]) -> list[dict[str, Any]]:
        """Run a web search."""

    def close(self) -> None:
        """Release resources held by the provider."""

    async def crawl(
        self,
        options: dict[str, Any],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout_ms: int = DEFAULT_CRAWL_TIMEOUT_MS,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        """Submit a crawl, wait for it to finish and aggregate every result page.

        The timeout bounds only the wait; the remote job keeps running when it
        is hit.

        Args:
            options: Crawl request body
            poll_interval: Seconds between status polls
            timeout_ms: Overall wait budget in milliseconds
            on_progress: Awaited with each polled status

        Returns:
            Dictionary with job_id, status, total, completed, creditsUsed and
            the concatenated ``data`` of all pages in page order

        Raises:
            CrawlJobFailedError: If the job reports ``failed``
            CrawlTimeoutError: If the job is not finished within ``timeout_ms``
        """
        job = await self.create_crawl(options)
        logger.info(f"Crawl job {job.job_id} submitted, waiting up to {timeout_ms}ms")

        try:
            final = await asyncio.wait_for(
                self._wait_for_crawl(job.job_id, poll_interval, on_progress),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Crawl job {job.job_id} timed out after {timeout_ms}ms")
            raise CrawlTimeoutError(job.job_id, timeout_ms) from None

        records: list[Any] = []
        skip = 0
        last_page: CrawlResultsPage | None = None
        while True:
            page = await self.get_crawl_results(job.job_id, skip)
            last_page = page
            records.extend(page.data)
            if not page.has_more:
                break
            skip += len(page.data)

        return {
            "job_id": job.job_id,
            "status": final.status,
            "total": last_page.total if last_page.total is not None else final.total,
            "completed": last_page.completed if last_page.completed is not None else final.completed,
            "creditsUsed": last_page.credits_used if last_page.credits_used is not None else final.credits_used,
            "data": records,
        }

    async def _wait_for_crawl(
        self,
        job_id: str,
        poll_interval: float,
        on_progress: ProgressCallback | None,
    ) -> CrawlStatus:
        while True:
            status = await self.get_crawl_status(job_id)
            if on_progress is not None:
                await on_progress(status)

            if status.status == "failed":
                raise CrawlJobFailedError(job_id)
            if status.status in FINISHED_STATUSES:
                return status

            logger.debug(f"Crawl job {job_id} is {status.status}, polling again in {poll_interval}s")
            await asyncio.sleep(poll_interval)
