import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from omegaconf import OmegaConf

from hubicons.config import Config, LogLevel, load_app_config

EXAMPLES_ROOT = Path(__file__).parent.parent / "examples"
examples = [str(p.name) for p in EXAMPLES_ROOT.iterdir() if p.name.startswith("config")]


def test_envvar_config(monkeypatch) -> None:  # noqa: ANN001
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://icons:secret@db:5432/icons")
        monkeypatch.setenv("PORT", "3000")
        monkeypatch.setenv("HOST", "127.0.0.1")
        conf_path: Path = Path(tmpdir) / "config-test-env.yaml"
        validated_config = load_app_config(conf_path)
        assert validated_config is not None
        assert validated_config.server.port == 3000
        assert validated_config.server.host == "127.0.0.1"
        assert validated_config.database.url == "postgresql+asyncpg://icons:secret@db:5432/icons"
        assert validated_config.hub.element_timeout == 5.0


@pytest.mark.parametrize("config_name", examples)
def test_example_config(config_name: str) -> None:
    validated_config = load_app_config(EXAMPLES_ROOT / config_name)
    assert validated_config is not None
    assert validated_config.database.url
    assert validated_config.hub.logo_selector == '[data-testid="repository-logo"]'


def test_round_trip_config() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        conf_path: Path = Path(tmpdir) / "conf" / "config.yaml"
        generated_config = load_app_config(conf_path)
        assert conf_path.exists()
        assert generated_config is not None
        OmegaConf.set_readonly(generated_config, False)  # type: ignore[arg-type]
        generated_config.hub.element_timeout = 2.5
        conf_path.write_text(OmegaConf.to_yaml(generated_config))
        reloaded_config = load_app_config(conf_path)
        assert reloaded_config is not None
        assert reloaded_config.hub.element_timeout == 2.5


def test_config_is_read_only() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_app_config(Path(tmpdir) / "config.yaml")
        assert config is not None
        with pytest.raises(Exception):  # noqa: B017, PT011
            config.server.port = 1234


@patch.dict("os.environ", {"HUBICONS_AUTOGEN_CONFIG": "0", "HUBICONS_LOG_LEVEL": "WARNING"})
def test_env_only_config() -> None:
    generated_config = load_app_config(Path("no_such_dir/no_such_file.yaml"))
    assert generated_config is not None
    assert generated_config.log.level == LogLevel.WARNING
    assert generated_config.server.port == 8936
    assert not Path("no_such_dir").exists()


def test_invalid_value_rejected() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        conf_path: Path = Path(tmpdir) / "config.yaml"
        conf_path.write_text("hub:\n  element_timeout: soon\n")
        with pytest.raises(Exception):  # noqa: B017, PT011
            load_app_config(conf_path)


def test_empty_database_url() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        conf_path: Path = Path(tmpdir) / "config.yaml"
        conf_path.write_text("database:\n  url: ''\n")
        assert load_app_config(conf_path) is None
        assert load_app_config(conf_path, return_invalid=True) is not None


def test_structured_defaults() -> None:
    cfg: Config = OmegaConf.structured(Config)  # type: ignore[assignment]
    assert cfg.cache_control.official == "public, max-age=86400"
    assert cfg.cache_control.cached == "public, max-age=86400, stale-while-revalidate=604800"
