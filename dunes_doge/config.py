"""Shared configuration loader for the Dunes tooling."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".dunes.yaml"
DEFAULT_WALLET_PATH = ".wallet.json"
DEFAULT_FEE_PER_KB = 100_000_000
DEFAULT_PROTOCOL_IDENTIFIER = "D"
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class NodeConfig:
    """Connection details for a Dogecoin Core style JSON-RPC endpoint."""

    url: str
    user: str | None = None
    password: str | None = None

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.user is None and self.password is None:
            return None
        return (self.user or "", self.password or "")


@dataclass
class DunesConfig:
    node: NodeConfig
    fallback_node: NodeConfig | None = None
    indexer_url: str | None = None
    fee_per_kb: int = DEFAULT_FEE_PER_KB
    testnet: bool = False
    wallet_path: Path = Path(DEFAULT_WALLET_PATH)
    protocol_identifier: str = DEFAULT_PROTOCOL_IDENTIFIER

    @property
    def identifier_bytes(self) -> bytes:
        return self.protocol_identifier.encode("utf8")


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
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(file_config: Mapping[str, Any], name: str, path: Path) -> Mapping[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_int(raw: Any, *, source: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer in {source}: {raw}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _env(env_map: Mapping[str, str], name: str) -> str | None:
    return env_map.get(name) or env_map.get(f"DUNES_{name}")


def _validate_url(raw: str | None, *, label: str) -> str | None:
    if not raw:
        return None
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid {label} URL: {raw}")
    return raw


def load_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> DunesConfig:
    """Load configuration from overrides, environment variables and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    rpc_section = _section(file_config, "rpc", path)
    indexer_section = _section(file_config, "indexer", path)
    override_map = dict(overrides or {})

    node_url = _validate_url(
        _first_value(
            override_map.get("node_rpc_url"), _env(env_map, "NODE_RPC_URL"), rpc_section.get("url")
        ),
        label="node RPC",
    )
    if not node_url:
        raise ConfigurationError(
            "A node RPC URL must be provided via NODE_RPC_URL or the 'rpc.url' config key"
        )
    fallback_url = _validate_url(
        _first_value(
            override_map.get("fallback_node_rpc_url"),
            _env(env_map, "FALLBACK_NODE_RPC_URL"),
            rpc_section.get("fallback_url"),
        ),
        label="fallback node RPC",
    )
    user = _first_value(
        override_map.get("node_rpc_user"), _env(env_map, "NODE_RPC_USER"), rpc_section.get("user")
    )
    password = _first_value(
        override_map.get("node_rpc_pass"),
        _env(env_map, "NODE_RPC_PASS"),
        rpc_section.get("password"),
    )

    indexer_url = _validate_url(
        _first_value(override_map.get("ord"), _env(env_map, "ORD"), indexer_section.get("url")),
        label="indexer",
    )

    fee_per_kb = _first_value(
        _coerce_int(override_map.get("fee_per_kb"), source="overrides"),
        _coerce_int(_env(env_map, "FEE_PER_KB"), source="FEE_PER_KB"),
        _coerce_int(file_config.get("fee_per_kb"), source=f"{path} fee_per_kb"),
        DEFAULT_FEE_PER_KB,
    )
    if fee_per_kb <= 0:
        raise ConfigurationError(f"fee_per_kb must be positive, got {fee_per_kb}")

    testnet = _first_value(
        _coerce_bool(override_map.get("testnet")),
        _coerce_bool(_env(env_map, "TESTNET")),
        _coerce_bool(file_config.get("testnet")),
        False,
    )
    wallet_path = _first_value(
        override_map.get("wallet_path"),
        _env(env_map, "WALLET"),
        file_config.get("wallet_path"),
        DEFAULT_WALLET_PATH,
    )
    identifier = _first_value(
        override_map.get("protocol_identifier"),
        _env(env_map, "PROTOCOL_IDENTIFIER"),
        file_config.get("protocol_identifier"),
        DEFAULT_PROTOCOL_IDENTIFIER,
    )
    if not identifier:
        raise ConfigurationError("protocol_identifier must not be empty")

    return DunesConfig(
        node=NodeConfig(url=node_url, user=user, password=password),
        fallback_node=(
            NodeConfig(url=fallback_url, user=user, password=password) if fallback_url else None
        ),
        indexer_url=indexer_url,
        fee_per_kb=fee_per_kb,
        testnet=bool(testnet),
        wallet_path=Path(wallet_path).expanduser(),
        protocol_identifier=str(identifier),
    )
