import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import pytest

from hubicons.config import CacheControlConfig, HubConfig
from hubicons.rendering import ElementNotFound, PageRenderer, RenderedPage
from hubicons.resolver import UpstreamResolver
from hubicons.service import LogoService
from hubicons.store import CacheStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@dataclass
class FakeHubPage:
    status: int | None = 200
    src: str | None = None
    error: Exception | None = None


class FakeRenderedPage(RenderedPage):
    def __init__(self, renderer: "FakeRenderer") -> None:
        self.renderer = renderer
        self.current: FakeHubPage | None = None

    async def navigate(self, url: str, timeout: float) -> int | None:  # noqa: ARG002
        self.renderer.navigations.append(url)
        if self.renderer.delay:
            await asyncio.sleep(self.renderer.delay)
        self.current = self.renderer.pages.get(url, FakeHubPage(status=404))
        if self.current.error is not None:
            raise self.current.error
        return self.current.status

    async def element_attribute(self, selector: str, attribute: str, timeout: float) -> str | None:  # noqa: ARG002
        if self.current is None or self.current.src is None:
            raise ElementNotFound(selector)
        return self.current.src


class FakeRenderer(PageRenderer):
    """Stands in for the browser, serving canned Docker Hub pages"""

    def __init__(self, pages: dict[str, FakeHubPage] | None = None, delay: float = 0) -> None:
        self.pages: dict[str, FakeHubPage] = pages or {}
        self.delay: float = delay
        self.navigations: list[str] = []
        self.opened: int = 0
        self.closed: int = 0

    @asynccontextmanager
    async def session(self) -> AsyncIterator[RenderedPage]:
        self.opened += 1
        try:
            yield FakeRenderedPage(self)
        finally:
            self.closed += 1


@pytest.fixture
def hub_cfg() -> HubConfig:
    return HubConfig(http_cache=False)


@pytest.fixture
def cache_control_cfg() -> CacheControlConfig:
    return CacheControlConfig()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'icons.db'}"


@pytest.fixture
async def store(db_url: str) -> AsyncGenerator[CacheStore]:
    uut = CacheStore(db_url)
    await uut.initialize()
    yield uut
    await uut.close()


@pytest.fixture
def resolver(hub_cfg: HubConfig, fake_renderer: FakeRenderer) -> UpstreamResolver:
    return UpstreamResolver(hub_cfg, fake_renderer)


@pytest.fixture
def service(hub_cfg: HubConfig, store: CacheStore, resolver: UpstreamResolver) -> LogoService:
    return LogoService(hub_cfg, store, resolver)
