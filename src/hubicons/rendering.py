"""Page rendering capability used to read logo locations from catalog pages

The resolver only needs to navigate to a page, wait for an element and read one
of its attributes. A browser is launched per session and always closed on exit.
"""

from abc import abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import structlog
from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from hubicons.model import RenderingError, UpstreamTimeout, UpstreamTransientFailure

log = structlog.get_logger()


class ElementNotFound(Exception):  # noqa: N818
    pass


class RenderedPage:
    @abstractmethod
    async def navigate(self, url: str, timeout: float) -> int | None:
        """Load the page, returning the HTTP status of the main document"""

    @abstractmethod
    async def element_attribute(self, selector: str, attribute: str, timeout: float) -> str | None:
        """Wait for the element to appear and read an attribute, raising ElementNotFound on timeout"""


class PageRenderer:
    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[RenderedPage]:
        """Open an isolated page, released on every exit path"""


class PlaywrightPage(RenderedPage):
    def __init__(self, page: Page) -> None:
        self.page: Page = page

    async def navigate(self, url: str, timeout: float) -> int | None:
        try:
            response = await self.page.goto(url, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise UpstreamTimeout(f"Timed out loading {url}") from e
        except PlaywrightError as e:
            raise UpstreamTransientFailure(f"Failed to load {url}: {e.message}") from e
        return response.status if response is not None else None

    async def element_attribute(self, selector: str, attribute: str, timeout: float) -> str | None:
        try:
            element = await self.page.wait_for_selector(selector, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise ElementNotFound(selector) from e
        except PlaywrightError as e:
            raise RenderingError(f"Failed waiting for {selector}: {e.message}") from e
        if element is None:
            raise ElementNotFound(selector)
        try:
            return await element.get_attribute(attribute)
        except PlaywrightError as e:
            raise RenderingError(f"Failed reading {attribute} of {selector}: {e.message}") from e


class PlaywrightPageRenderer(PageRenderer):
    def __init__(self, headless: bool = True) -> None:
        self.headless: bool = headless
        self.log: Any = structlog.get_logger().bind(component="renderer")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[RenderedPage]:
        async with async_playwright() as pw:
            try:
                browser: Browser = await pw.chromium.launch(headless=self.headless)
            except PlaywrightError as e:
                self.log.error("Unable to launch browser: %s", e.message)
                raise RenderingError("Unable to launch browser") from e
            try:
                try:
                    page: Page = await browser.new_page()
                except PlaywrightError as e:
                    raise RenderingError("Unable to open browser page") from e
                yield PlaywrightPage(page)
            finally:
                await browser.close()
                self.log.debug("Browser closed")
