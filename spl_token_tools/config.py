"""Shared configuration loader for the SPL token tools."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".spl-token-tools.yaml"
DEFAULT_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_KEYPAIR_PATH = "~/.config/solana/id.json"
DEFAULT_COMMITMENT = "confirmed"
SUPPORTED_COMMITMENTS = ("confirmed", "finalized")
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass(frozen=True)
class Endpoint:
    """HTTP and websocket URLs for a single cluster node."""

    http_url: str
    ws_url: str


def derive_ws_url(http_url: str) -> str:
    """Return the websocket URL matching ``http_url`` (``http`` -> ``ws``)."""

    if http_url.startswith("http"):
        return "ws" + http_url[len("http"):]
    return http_url


@dataclass
class ClusterConfig:
    """Configuration container for the cluster connection and signer."""

    url: str = DEFAULT_RPC_URL
    ws_url: str | None = None
    keypair_path: str = DEFAULT_KEYPAIR_PATH
    commitment: str = DEFAULT_COMMITMENT

    @property
    def ws_url_computed(self) -> bool:
        return not self.ws_url

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(http_url=self.url, ws_url=self.ws_url or derive_ws_url(self.url))


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with a 'cluster' section")
    return loaded


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _validate_url(raw: str, *, schemes: tuple[str, ...], source: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in schemes or not parsed.hostname:
        raise ConfigurationError(f"Invalid {source} URL: {raw}")
    return raw


def _env_value(env_map: Mapping[str, str], name: str) -> str | None:
    return env_map.get(name) or env_map.get(f"SPL_TOKEN_TOOLS_{name}")


def load_cluster_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ClusterConfig:
    """Load cluster configuration from overrides, environment and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    cluster_section = file_config.get("cluster", {}) if isinstance(file_config, dict) else {}
    if cluster_section and not isinstance(cluster_section, dict):
        raise ConfigurationError(f"Expected 'cluster' to be a mapping in {path}")

    override_map = dict(overrides or {})

    resolved_url = _first_value(
        override_map.get("url"),
        _env_value(env_map, "SOLANA_RPC_URL"),
        cluster_section.get("url"),
        default=DEFAULT_RPC_URL,
    )
    resolved_url = _validate_url(str(resolved_url), schemes=("http", "https"), source="RPC")

    resolved_ws_url = _first_value(
        override_map.get("ws_url"),
        _env_value(env_map, "SOLANA_WS_URL"),
        cluster_section.get("ws_url"),
    )
    if resolved_ws_url is not None:
        resolved_ws_url = _validate_url(str(resolved_ws_url), schemes=("ws", "wss"), source="websocket")

    resolved_keypair = _first_value(
        override_map.get("keypair_path"),
        _env_value(env_map, "SOLANA_KEYPAIR"),
        cluster_section.get("keypair"),
        default=DEFAULT_KEYPAIR_PATH,
    )

    resolved_commitment = str(
        _first_value(
            override_map.get("commitment"),
            _env_value(env_map, "SOLANA_COMMITMENT"),
            cluster_section.get("commitment"),
            default=DEFAULT_COMMITMENT,
        )
    ).lower()
    if resolved_commitment not in SUPPORTED_COMMITMENTS:
        raise ConfigurationError(
            f"Unsupported commitment {resolved_commitment!r}; expected one of {', '.join(SUPPORTED_COMMITMENTS)}"
        )

    return ClusterConfig(
        url=resolved_url,
        ws_url=resolved_ws_url,
        keypair_path=str(resolved_keypair),
        commitment=resolved_commitment,
    )
