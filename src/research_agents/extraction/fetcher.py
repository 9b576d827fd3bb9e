"""Async HTTP client with retries and timeout."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from research_agents.extraction.url_guard import is_private_host

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ResearchAgentsBot/0.1)"


@dataclass(slots=True)
class FetchResult:
    """Result of an HTTP fetch operation."""

    url: str
    status_code: int
    content: bytes
    content_type: str
    is_success: bool
    error: str | None = None
    encoding: str = "utf-8"
    blocked: bool = False

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")

    @property
    def is_pdf(self) -> bool:
        return "pdf" in self.content_type.lower() or self.content.startswith(b"%PDF")


class BlockedHostError(Exception):
    """A request targeted a host rejected by the fetcher's host guard."""


class HttpFetcher:
    """HTTP client wrapper with retry, timeout, and user-agent configuration.

    Every request, redirect hops included, passes through ``host_guard``; a
    rejected host ends the fetch with a ``blocked`` result.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        host_guard: Callable[[str], bool] | None = is_private_host,
    ) -> None:
        self._host_guard = host_guard
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        base_headers = {"User-Agent": user_agent}
        if headers:
            base_headers.update(headers)
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers=base_headers,
            transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
            follow_redirects=True,
            event_hooks={"request": [self._check_host]},
        )

    async def fetch(self, url: str) -> FetchResult:
        """Fetch URL content, returning structured result."""

        try:
            response = await self._client.get(url)
            content_type = response.headers.get("content-type", "")
            return FetchResult(
                url=url,
                status_code=response.status_code,
                content=response.content,
                content_type=content_type,
                is_success=response.is_success,
                error=None if response.is_success else f"HTTP {response.status_code}",
                encoding=response.encoding or "utf-8",
            )
        except BlockedHostError as exc:
            logger.warning("Refused request to %s while fetching %s", exc, url)
            return FetchResult(
                url=url,
                status_code=0,
                content=b"",
                content_type="",
                is_success=False,
                error=f"blocked host: {exc}",
                blocked=True,
            )
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s", url)
            return FetchResult(
                url=url,
                status_code=0,
                content=b"",
                content_type="",
                is_success=False,
                error="timeout",
            )
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return FetchResult(
                url=url,
                status_code=0,
                content=b"",
                content_type="",
                is_success=False,
                error=str(exc),
            )

    async def _check_host(self, request: httpx.Request) -> None:
        if self._host_guard is not None and self._host_guard(request.url.host):
            raise BlockedHostError(str(request.url))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
