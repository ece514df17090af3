"""Narrow page-rendering interface driven by the scraper.

The scraper never runs code inside the page itself. It asks a renderer for
plain data (HTML snapshots, element counts, intercepted responses) and for a
handful of named interactions, so the renderer can be a real browser or a
plain HTTP fetcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol


class RendererError(RuntimeError):
    """Base class for failures raised by a page renderer."""


class RendererTimeout(RendererError):
    """A navigation or wait did not complete within its timeout."""


class RendererUnavailable(RendererError):
    """The rendering backend crashed or could not be started."""


@dataclass(frozen=True, slots=True)
class InterceptedResponse:
    """A network response observed while a page was loading."""

    url: str
    status: int
    content_type: Optional[str]
    body: Optional[str]

    @property
    def is_json(self) -> bool:
        return bool(self.content_type and "json" in self.content_type.lower())


ResponseHandler = Callable[[InterceptedResponse], None]


class Page(Protocol):
    async def navigate(self, url: str, *, timeout: float) -> None:
        """Load *url*, raising :class:`RendererTimeout` after *timeout* seconds."""

    async def wait_for_selector(
        self, selector: str, *, timeout: float, visible: bool = False
    ) -> bool:
        """Return True once *selector* matches, False if *timeout* expires."""

    async def content(self) -> str:
        """Return the current serialized DOM."""

    async def count(self, selector: str) -> int:
        """Return how many elements match *selector*."""

    async def click(self, selector: str) -> bool:
        """Click the first visible element matching *selector*, if any."""

    async def select_max_option(self, selector: str) -> bool:
        """Pick the largest numeric option of a ``<select>``, if present."""

    async def scroll(self, container_selector: str | None = None) -> None:
        """Scroll *container_selector* and the document body to the end."""

    async def dispatch_scroll(self, selector: str) -> None:
        """Fire a synthetic ``scroll`` event on *selector*."""

    def on_response(self, handler: ResponseHandler) -> Callable[[], None]:
        """Register *handler* for every response; returns an unsubscribe callable."""

    async def reload(self, *, timeout: float) -> None:
        """Reload the current page."""

    async def close(self) -> None:
        """Release the page."""


class Renderer(Protocol):
    async def new_page(self) -> Page:
        """Open a fresh page, raising :class:`RendererUnavailable` if it cannot."""

    async def close(self) -> None:
        """Shut the backend down."""


class RendererFactory(Protocol):
    async def __call__(self) -> Renderer: ...
