from typing import Any
from urllib.parse import urljoin

import structlog

from hubicons.config import HubConfig
from hubicons.model import ImageIdentifier, UpstreamAbsence
from hubicons.rendering import ElementNotFound, PageRenderer

log = structlog.get_logger()


class UpstreamResolver:
    """Find where Docker Hub keeps the logo for an image

    Official images have a fixed logo API URL, anything else needs the repository
    page rendered to find the logo element.
    """

    def __init__(self, cfg: HubConfig, renderer: PageRenderer) -> None:
        self.cfg: HubConfig = cfg
        self.renderer: PageRenderer = renderer
        self.calls: int = 0
        self.log: Any = structlog.get_logger().bind(component="resolver")

    def official_logo_url(self, repository: str) -> str:
        return self.cfg.official_logo_template.format(repository=repository)

    def page_url(self, identifier: ImageIdentifier) -> str:
        return self.cfg.page_template.format(namespace=identifier.namespace, repository=identifier.repository)

    async def resolve(self, identifier: ImageIdentifier) -> str:
        """Scrape the logo URL, raising UpstreamAbsence if Docker Hub has none"""
        if identifier.official:
            return self.official_logo_url(identifier.repository)

        self.calls += 1
        page_url: str = self.page_url(identifier)
        rlog = self.log.bind(image=str(identifier), url=page_url)
        rlog.debug("Rendering repository page")
        async with self.renderer.session() as page:
            status: int | None = await page.navigate(page_url, timeout=self.cfg.navigation_timeout)
            if status != 200:
                rlog.info("Repository page not available", status=status)
                raise UpstreamAbsence(f"Image `{identifier}` does not exist on Docker Hub")
            try:
                src: str | None = await page.element_attribute(
                    self.cfg.logo_selector, self.cfg.logo_attribute, timeout=self.cfg.element_timeout
                )
            except ElementNotFound:
                src = None
            if not src:
                rlog.info("No logo element on repository page")
                raise UpstreamAbsence(f"Page {page_url} does not have an associated image")

        logo_url: str = urljoin(page_url, src)
        rlog.debug("Found logo", logo_url=logo_url)
        return logo_url
