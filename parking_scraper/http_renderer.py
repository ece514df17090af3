"""Static page renderer that fetches HTML over plain HTTP.

No JavaScript runs, so interactions (clicks, scrolling) are no-ops and the
DOM is whatever the server sent. This is enough for server-rendered copies of
the table, for JSON endpoints, and for running the pipeline without a browser.
"""

from __future__ import annotations

import logging
import re
from typing import Callable

import httpx
from bs4 import BeautifulSoup
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from .renderer import InterceptedResponse, RendererTimeout, RendererUnavailable, ResponseHandler

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_HEADER = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.8,*/*;q=0.7"
)


class HttpRenderer:
    """Shares one ``httpx.AsyncClient`` between all pages it opens."""

    def __init__(
        self,
        *,
        user_agent: str,
        max_attempts: int = 3,
        connect_timeout: float = 10.0,
        read_timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_attempts = max_attempts
        timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=read_timeout,
            pool=connect_timeout,
        )
        self._client = httpx.AsyncClient(
            headers={
                "User-Agent": user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "Accept-Language": "en-AU,en;q=0.9",
            },
            timeout=timeout,
            http2=True,
            follow_redirects=True,
            transport=transport,
        )

    async def new_page(self) -> "HttpPage":
        if self._client.is_closed:
            raise RendererUnavailable("HTTP client has been closed")
        return HttpPage(self._client, max_attempts=self._max_attempts)

    async def close(self) -> None:
        await self._client.aclose()


class HttpPage:
    def __init__(self, client: httpx.AsyncClient, *, max_attempts: int = 3) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._url: str | None = None
        self._html = ""
        self._soup: BeautifulSoup | None = None
        self._handlers: list[ResponseHandler] = []

    async def navigate(self, url: str, *, timeout: float) -> None:
        self._url = _sanitize_url(url)
        await self._load(timeout)

    async def reload(self, *, timeout: float) -> None:
        if self._url is None:
            return
        await self._load(timeout)

    async def wait_for_selector(
        self, selector: str, *, timeout: float, visible: bool = False
    ) -> bool:
        # The document never changes after load, so there is nothing to wait for.
        return bool(self._select(selector))

    async def content(self) -> str:
        return self._html

    async def count(self, selector: str) -> int:
        return len(self._select(selector))

    async def click(self, selector: str) -> bool:
        return False

    async def select_max_option(self, selector: str) -> bool:
        return False

    async def scroll(self, container_selector: str | None = None) -> None:
        return None

    async def dispatch_scroll(self, selector: str) -> None:
        return None

    def on_response(self, handler: ResponseHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def close(self) -> None:
        self._handlers.clear()
        self._soup = None

    async def _load(self, timeout: float) -> None:
        assert self._url is not None
        try:
            response = await self._get_with_retries(self._url, timeout)
        except httpx.TimeoutException as exc:
            raise RendererTimeout(f"Fetching {self._url} timed out") from exc
        except httpx.RequestError as exc:
            raise RendererTimeout(f"Fetching {self._url} failed: {exc}") from exc

        content_type = response.headers.get("content-type")
        text: str | None = None
        try:
            if content_type is None or any(
                token in content_type.lower() for token in ("text", "html", "xml", "json")
            ):
                text = response.text
        except UnicodeDecodeError:  # pragma: no cover - extremely rare
            logger.debug("Failed to decode response text for %s", self._url)

        self._html = text or ""
        self._soup = None
        logger.debug("Fetched %s (status %s, %d bytes)", response.url, response.status_code, len(self._html))

        intercepted = InterceptedResponse(
            url=str(response.url),
            status=response.status_code,
            content_type=content_type,
            body=text,
        )
        for handler in list(self._handlers):
            handler(intercepted)

    async def _get_with_retries(self, url: str, timeout: float) -> httpx.Response:
        """Retry transient transport errors with jittered exponential backoff."""

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential_jitter(initial=0.5, max=4.0),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await self._client.get(url, timeout=timeout)
        return response

    def _select(self, selector: str) -> list:
        if self._soup is None:
            self._soup = BeautifulSoup(self._html, "lxml")
        return self._soup.select(selector)


async def open_http_renderer(*, user_agent: str) -> HttpRenderer:
    return HttpRenderer(user_agent=user_agent)


def _sanitize_url(url: str) -> str:
    """Remove control characters and encode literal spaces."""
    if not url:
        return url
    cleaned = re.sub(r"[\x00-\x1f\x7f]", "", url).strip()
    if " " in cleaned:
        cleaned = cleaned.replace(" ", "%20")
    return cleaned
