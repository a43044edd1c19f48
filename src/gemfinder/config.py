"""Configuration management for gemfinder.

Handles loading configuration from TOML files, environment variables,
and command-line options with proper precedence.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "gemfinder" / "config.toml"
LOCAL_CONFIG_NAME = ".gemfinder.toml"
DEFAULT_DATA_DIR = Path("./data")

STORE_BACKENDS = ("local", "rest")


@dataclass
class StoreConfig:
    """Remote data store configuration."""

    backend: str = "local"
    url: str = ""
    api_key: str = ""
    timeout: float = 10.0


@dataclass
class DataConfig:
    """Data storage configuration."""

    directory: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)


@dataclass
class UserConfig:
    """Current user configuration."""

    id: str = ""
    guest: bool = False


@dataclass
class MapConfig:
    """Map view defaults (Toronto city center)."""

    center_lat: float = 43.6532
    center_lon: float = -79.3832
    zoom: int = 15


@dataclass
class Config:
    """Main configuration container."""

    store: StoreConfig = field(default_factory=StoreConfig)
    data: DataConfig = field(default_factory=DataConfig)
    user: UserConfig = field(default_factory=UserConfig)
    map: MapConfig = field(default_factory=MapConfig)
    config_path: Path | None = None


def _get_env_value(key: str, default: str = "") -> str:
    """Get environment variable value."""
    return os.environ.get(key, default)


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = os.environ.get(key, "")
    if not value:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _find_config_path() -> Path:
    """Locate the configuration file when none is given explicitly."""
    env_config = _get_env_value("GEMFINDER_CONFIG")
    if env_config:
        return Path(env_config)

    local_config = Path(LOCAL_CONFIG_NAME)
    if local_config.exists():
        return local_config

    return DEFAULT_CONFIG_PATH


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded with the following precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Default values

    Args:
        config_path: Path to configuration file. If None, uses
            $GEMFINDER_CONFIG, then ./.gemfinder.toml, then the default location.

    Returns:
        Populated Config object.
    """
    config = Config()

    if config_path is None:
        config_path = _find_config_path()

    config.config_path = config_path

    if config_path.exists():
        config = _load_from_file(config_path, config)

    config = _apply_env_overrides(config)

    if config.store.backend not in STORE_BACKENDS:
        raise ValueError(
            f"Unknown store backend {config.store.backend!r} "
            f"(expected one of: {', '.join(STORE_BACKENDS)})"
        )

    return config


def _load_from_file(path: Path, config: Config) -> Config:
    """Load configuration from TOML file.

    Args:
        path: Path to TOML file.
        config: Existing config to update.

    Returns:
        Updated Config object.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)

    if "store" in data:
        store = data["store"]
        config.store.backend = store.get("backend", config.store.backend)
        config.store.url = store.get("url", config.store.url)
        config.store.api_key = store.get("api_key", config.store.api_key)
        config.store.timeout = float(store.get("timeout", config.store.timeout))

    if "data" in data:
        data_section = data["data"]
        if "directory" in data_section:
            config.data.directory = Path(data_section["directory"])

    if "user" in data:
        user = data["user"]
        config.user.id = str(user.get("id", config.user.id))
        config.user.guest = user.get("guest", config.user.guest)

    if "map" in data:
        map_section = data["map"]
        config.map.center_lat = float(map_section.get("center_lat", config.map.center_lat))
        config.map.center_lon = float(map_section.get("center_lon", config.map.center_lon))
        config.map.zoom = int(map_section.get("zoom", config.map.zoom))

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to configuration.

    Args:
        config: Config to update.

    Returns:
        Updated Config object.
    """
    if backend := _get_env_value("GEMFINDER_STORE_BACKEND"):
        config.store.backend = backend
    if url := _get_env_value("GEMFINDER_STORE_URL"):
        config.store.url = url
    if api_key := _get_env_value("GEMFINDER_STORE_KEY"):
        config.store.api_key = api_key

    if data_dir := _get_env_value("GEMFINDER_DATA_DIR"):
        config.data.directory = Path(data_dir)

    if user_id := _get_env_value("GEMFINDER_USER"):
        config.user.id = user_id
    config.user.guest = _get_env_bool("GEMFINDER_GUEST", config.user.guest)

    return config


def config_summary(config: Config) -> dict[str, Any]:
    """Summarize configuration for display, hiding secrets.

    Args:
        config: Configuration to summarize.

    Returns:
        Dictionary safe to print or emit as JSON.
    """
    return {
        "config_path": str(config.config_path) if config.config_path else None,
        "data_dir": str(config.data.directory),
        "store_backend": config.store.backend,
        "store_url": config.store.url or None,
        "store_key_set": bool(config.store.api_key),
        "user": config.user.id or None,
        "guest": config.user.guest,
    }


def ensure_data_dir(config: Config) -> Path:
    """Ensure data directory exists and return its path.

    Args:
        config: Configuration with data directory setting.

    Returns:
        Path to data directory.
    """
    data_dir = config.data.directory.resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
