import os
import typing
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import structlog
from omegaconf import DictConfig, MissingMandatoryValue, OmegaConf, ValidationError

log = structlog.get_logger()


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogConfig:
    level: LogLevel = "${oc.decode:${oc.env:HUBICONS_LOG_LEVEL,INFO}}"  # type: ignore[assignment] # pyright: ignore[reportAssignmentType]


@dataclass
class ServerConfig:
    host: str = "${oc.env:HOST,0.0.0.0}"
    port: int = "${oc.decode:${oc.env:PORT,8936}}"  # type: ignore[assignment]
    access_log: bool = True


@dataclass
class DatabaseConfig:
    url: str = "${oc.env:DATABASE_URL,sqlite+aiosqlite:///icons.db}"
    echo: bool = False


@dataclass
class HubConfig:
    official_logo_template: str = "https://hub.docker.com/api/media/repos_logo/v1/library%2F{repository}?type=logo"
    page_template: str = "https://hub.docker.com/r/{namespace}/{repository}"
    logo_selector: str = '[data-testid="repository-logo"]'
    logo_attribute: str = "src"
    navigation_timeout: float = 15.0
    element_timeout: float = 5.0
    asset_timeout: float = 10.0
    # RFC 9111 client cache for scraped logo assets, official logos are always fetched live
    http_cache: bool = True
    browser_headless: bool = True


@dataclass
class CacheControlConfig:
    official: str = "public, max-age=86400"  # 1 day
    # cache for one day and serve stale for 7 days
    cached: str = "public, max-age=86400, stale-while-revalidate=604800"


@dataclass
class Config:
    log: LogConfig = field(default_factory=LogConfig)  # pyright: ignore[reportArgumentType, reportCallIssue]
    server: ServerConfig = field(default_factory=ServerConfig)  # pyright: ignore[reportArgumentType, reportCallIssue]
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    hub: HubConfig = field(default_factory=HubConfig)
    cache_control: CacheControlConfig = field(default_factory=CacheControlConfig)


def is_autogen_config() -> bool:
    env_var: str | None = os.environ.get("HUBICONS_AUTOGEN_CONFIG")
    return not (env_var and env_var.lower() in ("no", "0", "false"))


def load_app_config(conf_file_path: Path, return_invalid: bool = False) -> Config | None:
    base_cfg: DictConfig = OmegaConf.structured(Config)
    if conf_file_path.exists():
        cfg: DictConfig = typing.cast("DictConfig", OmegaConf.merge(base_cfg, OmegaConf.load(conf_file_path)))
    elif is_autogen_config():
        if not conf_file_path.parent.exists():
            try:
                log.debug(f"Creating config directory {conf_file_path.parent} if not already present")
                conf_file_path.parent.mkdir(parents=True, exist_ok=True)
            except Exception:
                log.warning("Unable to create config directory", path=conf_file_path.parent)
        try:
            conf_file_path.write_text(OmegaConf.to_yaml(base_cfg))
            log.info(f"Auto-generated a new config file at {conf_file_path}")
        except Exception:
            log.warning("Unable to write config file", path=conf_file_path)
        cfg = base_cfg
    else:
        cfg = base_cfg

    try:
        # Validate that all required fields are present, throw exception now rather than when config first used
        OmegaConf.to_container(cfg, throw_on_missing=True)
        OmegaConf.set_readonly(cfg, True)
        config: Config = typing.cast("Config", cfg)

        if not config.database.url:
            log.info("The config has no database url")
            if not return_invalid:
                return None
        return config
    except (MissingMandatoryValue, ValidationError) as e:
        log.error("Configuration error %s", e, path=conf_file_path.as_posix())
        if return_invalid and cfg is not None:
            return typing.cast("Config", cfg)
        raise
