"""Headless-browser page renderer backed by Playwright."""

from __future__ import annotations

import logging
from typing import Callable

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page as PlaywrightPageHandle,
    Playwright,
    Response,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .renderer import (
    InterceptedResponse,
    RendererError,
    RendererTimeout,
    RendererUnavailable,
    ResponseHandler,
)

logger = logging.getLogger(__name__)

LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
)
VIEWPORT = {"width": 1920, "height": 1080}
CLICK_TIMEOUT_MS = 5_000

# Content types whose bodies are read when a response is intercepted
TEXT_CONTENT_TYPES = ("json", "text", "javascript")

_SCROLL_SCRIPT = """
(selector) => {
    if (selector) {
        const container = document.querySelector(selector);
        if (container) {
            container.scrollTop = container.scrollHeight;
        }
    }
    window.scrollTo(0, document.body.scrollHeight);
}
"""

_DISPATCH_SCROLL_SCRIPT = """
(selector) => {
    const target = document.querySelector(selector);
    if (target) {
        target.dispatchEvent(new Event("scroll", { bubbles: true }));
    }
}
"""

_OPTION_VALUES_SCRIPT = "el => Array.from(el.options || []).map(o => o.value)"


class PlaywrightRenderer:
    """Owns one Chromium process shared by every scrape."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        *,
        user_agent: str,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._user_agent = user_agent

    @classmethod
    async def launch(cls, *, headless: bool, user_agent: str) -> "PlaywrightRenderer":
        logger.info("Launching Chromium (headless=%s)", headless)
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=headless, args=list(LAUNCH_ARGS)
            )
        except PlaywrightError as exc:
            await playwright.stop()
            raise RendererUnavailable(f"Failed to launch browser: {exc}") from exc
        return cls(playwright, browser, user_agent=user_agent)

    async def new_page(self) -> "PlaywrightPage":
        if not self._browser.is_connected():
            raise RendererUnavailable("Browser is no longer connected")
        try:
            context = await self._browser.new_context(
                viewport=VIEWPORT, user_agent=self._user_agent
            )
            page = await context.new_page()
        except PlaywrightError as exc:
            raise RendererUnavailable(f"Failed to open page: {exc}") from exc
        return PlaywrightPage(page, context, self._browser)

    async def close(self) -> None:
        try:
            await self._browser.close()
        except PlaywrightError as exc:
            logger.debug("Browser close failed: %s", exc)
        await self._playwright.stop()


class PlaywrightPage:
    def __init__(
        self,
        page: PlaywrightPageHandle,
        context: BrowserContext,
        browser: Browser,
    ) -> None:
        self._page = page
        self._context = context
        self._browser = browser

    async def navigate(self, url: str, *, timeout: float) -> None:
        try:
            await self._page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError as exc:
            raise RendererTimeout(f"Navigation to {url} timed out") from exc
        except PlaywrightError as exc:
            raise self._translate(exc) from exc

    async def wait_for_selector(
        self, selector: str, *, timeout: float, visible: bool = False
    ) -> bool:
        try:
            await self._page.wait_for_selector(
                selector,
                timeout=timeout * 1000,
                state="visible" if visible else "attached",
            )
        except PlaywrightTimeoutError:
            logger.debug("Selector %s not found within %.1fs", selector, timeout)
            return False
        except PlaywrightError as exc:
            raise self._translate(exc) from exc
        return True

    async def content(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as exc:
            raise self._translate(exc) from exc

    async def count(self, selector: str) -> int:
        try:
            return await self._page.locator(selector).count()
        except PlaywrightError as exc:
            raise self._translate(exc) from exc

    async def click(self, selector: str) -> bool:
        locator = self._page.locator(selector).first
        try:
            if not await locator.count() or not await locator.is_visible():
                return False
            await locator.click(timeout=CLICK_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            raise self._translate(exc) from exc
        return True

    async def select_max_option(self, selector: str) -> bool:
        locator = self._page.locator(selector).first
        try:
            if not await locator.count():
                return False
            values = await locator.evaluate(_OPTION_VALUES_SCRIPT)
            numeric = [value for value in values if str(value).strip().isdigit()]
            if not numeric:
                return False
            largest = max(numeric, key=lambda value: int(value))
            await locator.select_option(largest)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            raise self._translate(exc) from exc
        logger.debug("Set page size selector %s to %s", selector, largest)
        return True

    async def scroll(self, container_selector: str | None = None) -> None:
        try:
            await self._page.evaluate(_SCROLL_SCRIPT, container_selector)
        except PlaywrightError as exc:
            raise self._translate(exc) from exc

    async def dispatch_scroll(self, selector: str) -> None:
        try:
            await self._page.evaluate(_DISPATCH_SCROLL_SCRIPT, selector)
        except PlaywrightError as exc:
            raise self._translate(exc) from exc

    def on_response(self, handler: ResponseHandler) -> Callable[[], None]:
        async def _listener(response: Response) -> None:
            content_type = response.headers.get("content-type")
            body: str | None = None
            if content_type and any(
                token in content_type.lower() for token in TEXT_CONTENT_TYPES
            ):
                try:
                    body = await response.text()
                except PlaywrightError:
                    body = None
            handler(
                InterceptedResponse(
                    url=response.url,
                    status=response.status,
                    content_type=content_type,
                    body=body,
                )
            )

        self._page.on("response", _listener)

        def _unsubscribe() -> None:
            self._page.remove_listener("response", _listener)

        return _unsubscribe

    async def reload(self, *, timeout: float) -> None:
        try:
            await self._page.reload(wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError as exc:
            raise RendererTimeout("Reload timed out") from exc
        except PlaywrightError as exc:
            raise self._translate(exc) from exc

    async def close(self) -> None:
        try:
            await self._page.close()
            await self._context.close()
        except PlaywrightError as exc:
            logger.debug("Page close failed: %s", exc)

    def _translate(self, exc: PlaywrightError) -> RendererError:
        message = str(exc)
        if not self._browser.is_connected() or "has been closed" in message:
            return RendererUnavailable(message)
        return RendererError(message)


async def launch_playwright_renderer(*, headless: bool, user_agent: str) -> PlaywrightRenderer:
    try:
        return await PlaywrightRenderer.launch(headless=headless, user_agent=user_agent)
    except PlaywrightError as exc:
        raise RendererUnavailable(f"Playwright is not available: {exc}") from exc
