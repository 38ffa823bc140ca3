import asyncio
import json
from pathlib import Path

import structlog
from omegaconf import DictConfig, OmegaConf
from rich import print_json
from rich.console import Console

from hubicons.config import Config, load_app_config
from hubicons.model import (
    CacheRecord,
    ImageIdentifier,
    InvalidIdentifierError,
    RenderingError,
    UpstreamAbsence,
    UpstreamTransientFailure,
)
from hubicons.rendering import PlaywrightPageRenderer
from hubicons.resolver import UpstreamResolver
from hubicons.store import CacheStore

log = structlog.get_logger()

CONF_FILE = Path("conf/config.yaml")

"""
Super simple CLI for poking at the logo cache

Command can be `resolve`, `lookup` or `forget`

* `resolve=bitnami/redis` - render the Docker Hub page and print the logo URL, nothing is stored
* `lookup=bitnami` - show the stored record for a namespace
* `forget=bitnami` - delete the stored record, so the next request scrapes again

In addition, a `log_level=DEBUG` or other level can be added, and `database_url` to override
the configured database
"""


async def resolve(image: str, cfg: Config, console: Console) -> None:
    try:
        identifier = ImageIdentifier.parse(image)
    except InvalidIdentifierError as e:
        console.print(f"[red]{e}")
        return
    resolver = UpstreamResolver(cfg.hub, PlaywrightPageRenderer(headless=cfg.hub.browser_headless))
    try:
        url: str = await resolver.resolve(identifier)
        console.print(url)
    except UpstreamAbsence as e:
        console.print(f"[yellow]{e.message}")
    except (UpstreamTransientFailure, RenderingError) as e:
        console.print(f"[red]{e}")


async def lookup(namespace: str, store: CacheStore, console: Console) -> None:
    try:
        await store.initialize()
        record: CacheRecord | None = await store.lookup(namespace)
    finally:
        await store.close()
    if record is None:
        console.print(f"No record for {namespace}")
    else:
        print_json(json.dumps(record.as_dict()))


async def forget(namespace: str, store: CacheStore, console: Console) -> None:
    try:
        await store.initialize()
        removed: bool = await store.forget(namespace)
    finally:
        await store.close()
    console.print(f"Removed record for {namespace}" if removed else f"No record for {namespace}")


def main() -> None:
    # will be a proper cli someday
    cli_conf: DictConfig = OmegaConf.from_cli()
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(cli_conf.get("log_level", "ERROR")))
    console = Console()

    cfg: Config | None = load_app_config(CONF_FILE, return_invalid=True)
    if cfg is None:
        console.print(f"[red]Unable to load config from {CONF_FILE}")
        return
    database_url: str = cli_conf.get("database_url") or cfg.database.url

    if cli_conf.get("resolve"):
        asyncio.run(resolve(str(cli_conf.get("resolve")), cfg, console))
    elif cli_conf.get("lookup"):
        asyncio.run(lookup(str(cli_conf.get("lookup")), CacheStore(database_url), console))
    elif cli_conf.get("forget"):
        asyncio.run(forget(str(cli_conf.get("forget")), CacheStore(database_url), console))
    else:
        log.warning("Nothing to do, use resolve=, lookup= or forget=")


if __name__ == "__main__":
    main()
