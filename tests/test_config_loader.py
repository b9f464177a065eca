from pathlib import Path

import pytest

from spl_token_tools.config import (
    DEFAULT_RPC_URL,
    ClusterConfig,
    ConfigurationError,
    derive_ws_url,
    load_cluster_config,
)


@pytest.fixture(autouse=True)
def isolated_default_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    default_path = tmp_path / "missing.yaml"
    monkeypatch.setattr("spl_token_tools.config.DEFAULT_CONFIG_PATH", default_path)
    monkeypatch.setattr("spl_token_tools.config._CONFIG_PATH_OVERRIDE", None)
    return default_path


def test_load_cluster_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        cluster:
          url: https://file.example.com
          ws_url: wss://file.example.com
          keypair: /file/id.json
          commitment: finalized
        """
    )

    env_map = {
        "SOLANA_RPC_URL": "https://env.example.com",
        "SPL_TOKEN_TOOLS_SOLANA_KEYPAIR": "/env/id.json",
    }

    config = load_cluster_config(config_path=config_path, env=env_map)

    assert isinstance(config, ClusterConfig)
    assert config.url == "https://env.example.com"
    assert config.ws_url == "wss://file.example.com"
    assert config.keypair_path == "/env/id.json"
    assert config.commitment == "finalized"


def test_overrides_win_over_everything(tmp_path: Path) -> None:
    config = load_cluster_config(
        env={"SOLANA_RPC_URL": "https://env.example.com"},
        overrides={"url": "http://localhost:8899", "ws_url": None},
    )
    assert config.url == "http://localhost:8899"
    assert config.ws_url is None
    assert config.endpoint.ws_url == "ws://localhost:8899"
    assert config.ws_url_computed


def test_defaults_when_nothing_is_configured() -> None:
    config = load_cluster_config(env={})
    assert config.url == DEFAULT_RPC_URL
    assert config.endpoint.ws_url == "wss://api.devnet.solana.com"
    assert config.commitment == "confirmed"


def test_reads_default_yaml_when_env_missing(isolated_default_path: Path) -> None:
    isolated_default_path.write_text("cluster:\n  url: http://yaml.example.com:8899\n")
    config = load_cluster_config(env={})
    assert config.url == "http://yaml.example.com:8899"


def test_explicit_missing_config_path_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_cluster_config(config_path=tmp_path / "nope.yaml", env={})


@pytest.mark.parametrize(
    "overrides",
    [
        {"url": "ftp://example.com"},
        {"ws_url": "https://example.com"},
        {"commitment": "processed"},
    ],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ConfigurationError):
        load_cluster_config(env={}, overrides=overrides)


def test_derive_ws_url() -> None:
    assert derive_ws_url("http://127.0.0.1:8899") == "ws://127.0.0.1:8899"
    assert derive_ws_url("https://api.mainnet-beta.solana.com") == "wss://api.mainnet-beta.solana.com"
