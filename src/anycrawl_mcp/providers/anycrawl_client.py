"""AnyCrawl API client using the requests library."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import requests

from anycrawl_mcp.config import DEFAULT_BASE_URL
from anycrawl_mcp.errors import AnyCrawlAPIError, AnyCrawlNetworkError, AuthenticationError
from anycrawl_mcp.providers.base import (
    CrawlJob,
    CrawlProvider,
    CrawlResultsPage,
    CrawlStatus,
    ScrapeResult,
)

logger = logging.getLogger(__name__)

AUTH_ERROR_PATTERNS = [
    re.compile(r"refresh.*token.*failed", re.IGNORECASE),
    re.compile(r"token.*expired", re.IGNORECASE),
    re.compile(r"authentication.*failed", re.IGNORECASE),
    re.compile(r"unauthorized", re.IGNORECASE),
    re.compile(r"invalid.*token", re.IGNORECASE),
    re.compile(r"access.*denied", re.IGNORECASE),
]


def is_authentication_error(status_code: int, message: str) -> bool:
    """Check whether an API failure means the credential was rejected.

    Args:
        status_code: HTTP status code of the response
        message: Error message reported by the API

    Returns:
        True for 401/403 or messages matching a known auth-failure pattern
    """
    if status_code in (401, 403):
        return True
    return any(pattern.search(message) for pattern in AUTH_ERROR_PATTERNS)


class AnyCrawlClient(CrawlProvider):
    """Client for the AnyCrawl HTTP API, authenticated with a bearer API key.

    Each instance owns its own requests session, so one client is never
    shared between MCP sessions.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 300.0,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: AnyCrawl API key sent as a bearer token
            base_url: API base URL (default: https://api.anycrawl.dev)
            timeout: Per-request timeout in seconds (default: 300)
        """
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            AuthenticationError: On 401/403 or auth-pattern error messages
            AnyCrawlAPIError: On other error statuses or a malformed body
            AnyCrawlNetworkError: If the API cannot be reached
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            # Run requests in thread pool to avoid blocking
            loop = asyncio.get_event_loop()
            response = await loop.run_in_executor(
                None,
                lambda: self.session.request(method, url, json=json, params=params, timeout=self.timeout),
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"{method} {url} failed: {type(e).__name__}")
            raise AnyCrawlNetworkError("Network error: Unable to reach AnyCrawl API") from e
        except requests.RequestException as e:
            raise AnyCrawlAPIError(f"Request error: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            if is_authentication_error(response.status_code, message):
                logger.warning("Authentication error detected for AnyCrawl API key")
                raise AuthenticationError(f"Authentication failed: {message}", response.status_code)
            raise AnyCrawlAPIError(f"API Error {response.status_code}: {message}", response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise AnyCrawlAPIError("Malformed response from AnyCrawl API", response.status_code) from e

    def close(self) -> None:
        self.session.close()

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return "Unknown error"
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or "Unknown error")
        return "Unknown error"

    @staticmethod
    def _unwrap(payload: Any, failure: str) -> Any:
        """Return ``data`` from a ``{success, data, error}`` envelope."""
        if not isinstance(payload, dict):
            raise AnyCrawlAPIError("Malformed response from AnyCrawl API")
        if not payload.get("success"):
            raise AnyCrawlAPIError(str(payload.get("error") or payload.get("message") or failure))
        return payload.get("data")

    async def scrape(self, options: dict[str, Any]) -> ScrapeResult:
        payload = await self._request("POST", "/v1/scrape", json=options)
        return ScrapeResult.from_payload(self._unwrap(payload, "Scraping failed"))

    async def create_crawl(self, options: dict[str, Any]) -> CrawlJob:
        payload = await self._request("POST", "/v1/crawl", json=options)
        return CrawlJob.from_payload(self._unwrap(payload, "Crawl creation failed"))

    async def get_crawl_status(self, job_id: str) -> CrawlStatus:
        payload = await self._request("GET", f"/v1/crawl/{job_id}/status")
        return CrawlStatus.from_payload(self._unwrap(payload, "Failed to get crawl status"))

    async def get_crawl_results(self, job_id: str, skip: int = 0) -> CrawlResultsPage:
        # The results endpoint returns the page itself, not an envelope
        payload = await self._request("GET", f"/v1/crawl/{job_id}", params={"skip": skip})
        if isinstance(payload, dict) and payload.get("success") is False:
            raise AnyCrawlAPIError(str(payload.get("error") or "Failed to get crawl results"))
        return CrawlResultsPage.from_payload(payload)

    async def cancel_crawl(self, job_id: str) -> dict[str, Any]:
        payload = await self._request("DELETE", f"/v1/crawl/{job_id}")
        data = self._unwrap(payload, "Failed to cancel crawl")
        if not isinstance(data, dict):
            raise AnyCrawlAPIError("Unexpected cancel response from AnyCrawl API")
        return data

    async def search(self, options: dict[str, Any]) -> list[dict[str, Any]]:
        payload = await self._request("POST", "/v1/search", json=options)
        data = self._unwrap(payload, "Search failed")
        if not isinstance(data, list):
            raise AnyCrawlAPIError("Unexpected search results from AnyCrawl API")
        return data
