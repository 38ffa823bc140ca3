import logging
import sys
from pathlib import Path

import structlog
import uvicorn
from starlette.applications import Starlette

import hubicons

from .config import Config, load_app_config
from .rendering import PageRenderer, PlaywrightPageRenderer
from .resolver import UpstreamResolver
from .server import create_app
from .service import LogoService
from .store import CacheStore

log = structlog.get_logger()

CONF_FILE = Path("conf/config.yaml")


class App:
    def __init__(self, renderer: PageRenderer | None = None) -> None:
        app_config: Config | None = load_app_config(CONF_FILE)
        if app_config is None:
            log.error(f"Invalid configuration at {CONF_FILE}, edit config to fix missing or invalid values and restart")
            log.error("Exiting app")
            sys.exit(1)
        self.cfg: Config = app_config

        structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, str(self.cfg.log.level))))
        log.debug("Logging initialized", level=self.cfg.log.level)

        self.store = CacheStore(self.cfg.database.url, echo=self.cfg.database.echo)
        self.renderer: PageRenderer = renderer or PlaywrightPageRenderer(headless=self.cfg.hub.browser_headless)
        self.resolver = UpstreamResolver(self.cfg.hub, self.renderer)
        self.service = LogoService(self.cfg.hub, self.store, self.resolver)
        self.asgi_app: Starlette = create_app(self.service, self.cfg.cache_control)

        log.info(
            "App configured",
            host=self.cfg.server.host,
            port=self.cfg.server.port,
            database=self.cfg.database.url.split("@")[-1],
        )

    def serve(self) -> None:
        uvicorn.run(
            self.asgi_app,
            host=self.cfg.server.host,
            port=self.cfg.server.port,
            log_level=str(self.cfg.log.level).lower(),
            access_log=self.cfg.server.access_log,
        )


def run() -> None:
    log.debug(f"Starting hubicons v{hubicons.version}")  # pyright: ignore[reportAttributeAccessIssue]
    app = App()
    app.serve()
    log.debug("App exited gracefully")


if __name__ == "__main__":
    run()
