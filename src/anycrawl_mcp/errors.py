"""Exception hierarchy shared across the server."""

from __future__ import annotations


class AnyCrawlError(Exception):
    """Base class for all AnyCrawl MCP errors."""


class AnyCrawlAPIError(AnyCrawlError):
    """The remote API answered with an error status or an unsuccessful envelope."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(AnyCrawlAPIError):
    """The remote API rejected the bearer credential."""


class AnyCrawlNetworkError(AnyCrawlError):
    """The remote API could not be reached."""


class CrawlJobFailedError(AnyCrawlError):
    """A crawl job reached the ``failed`` status while being awaited."""

    def __init__(self, job_id: str, reason: str | None = None) -> None:
        message = f"Crawl job {job_id} failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.job_id = job_id


class CrawlTimeoutError(AnyCrawlError):
    """Waiting for a crawl job exceeded the configured timeout."""

    def __init__(self, job_id: str, timeout_ms: int) -> None:
        super().__init__(f"Crawl job {job_id} timed out after {timeout_ms}ms")
        self.job_id = job_id
        self.timeout_ms = timeout_ms


class InvalidSessionError(AnyCrawlError):
    """A request referenced a missing, unknown or expired session."""


class TenantRequiredError(AnyCrawlError):
    """A multi-tenant request did not carry a tenant credential."""


class UnknownToolError(AnyCrawlError, LookupError):
    """A call named a tool that is not in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name
