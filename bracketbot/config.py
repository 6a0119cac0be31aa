"""
bracketbot/config.py - Local configuration management

Reads config from a platform-appropriate config directory:
  - macOS/Linux: ~/.bracketbot/config.toml
  - Windows: %APPDATA%\\bracketbot\\config.toml

Environment overrides (applied after the file):
  - RIOT_API_KEY: identity API key
  - BRACKETBOT_DATA_DIR: storage path

Example:
    [storage]
    backend = "json"        # or "sqlite"
    path = "~/.bracketbot/data"

    [identity]
    api_key = "RGAPI-..."
    regions = ["americas", "europe", "asia"]
    max_retries = 3
    retry_delay = 1.0

    [server]
    host = "0.0.0.0"
    port = 8000
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .identity import DEFAULT_BASE_URL, DEFAULT_REGIONS, is_configured_key

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "bracketbot"
    return Path.home() / ".bracketbot"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_DATA_DIR = CONFIG_DIR / "data"

STORAGE_BACKENDS = ("json", "sqlite")

ENV_API_KEY = "RIOT_API_KEY"
ENV_DATA_DIR = "BRACKETBOT_DATA_DIR"


# ============================================================================
# Data Types
# ============================================================================

@dataclass
class StorageConfig:
    """Where tournament and player snapshots live."""

    backend: str = "json"
    path: str = str(DEFAULT_DATA_DIR)  # Directory for json, file for sqlite


@dataclass
class IdentityConfig:
    """Riot Account API settings."""

    api_key: str | None = None
    regions: list[str] = field(default_factory=lambda: list(DEFAULT_REGIONS))
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 1.0  # Seconds; doubles per retry when no Retry-After

    @property
    def configured(self) -> bool:
        return is_configured_key(self.api_key)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class BracketbotConfig:
    """Top-level configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


# ============================================================================
# Parsing
# ============================================================================

def _expand(path: str) -> str:
    """Expand ~ in a path string."""
    return str(Path(path).expanduser())


def _section(raw: dict, name: str) -> dict:
    data = raw.get(name, {})
    return data if isinstance(data, dict) else {}


def _parse_storage(data: dict) -> StorageConfig:
    defaults = StorageConfig()
    backend = data.get("backend", defaults.backend)
    if backend not in STORAGE_BACKENDS:
        logger.warning(f"Unknown storage backend {backend!r}, using {defaults.backend!r}")
        backend = defaults.backend
    return StorageConfig(
        backend=backend,
        path=_expand(data.get("path", defaults.path)),
    )


def _parse_identity(data: dict) -> IdentityConfig:
    defaults = IdentityConfig()
    regions = data.get("regions", defaults.regions)
    if not isinstance(regions, list) or not regions:
        regions = defaults.regions
    return IdentityConfig(
        api_key=data.get("api_key"),
        regions=[str(r) for r in regions],
        base_url=data.get("base_url", defaults.base_url),
        timeout=float(data.get("timeout", defaults.timeout)),
        max_retries=int(data.get("max_retries", defaults.max_retries)),
        retry_delay=float(data.get("retry_delay", defaults.retry_delay)),
    )


def _parse_server(data: dict) -> ServerConfig:
    defaults = ServerConfig()
    return ServerConfig(
        host=data.get("host", defaults.host),
        port=int(data.get("port", defaults.port)),
    )


def _apply_env(config: BracketbotConfig) -> BracketbotConfig:
    api_key = os.environ.get(ENV_API_KEY)
    if api_key:
        config.identity.api_key = api_key

    data_dir = os.environ.get(ENV_DATA_DIR)
    if data_dir:
        config.storage.path = _expand(data_dir)
    return config


def load_config(path: Path | None = None) -> BracketbotConfig:
    """
    Read config from TOML file, then apply environment overrides.

    Args:
        path: Override config file path (default: ~/.bracketbot/config.toml)

    Returns:
        BracketbotConfig. Missing file or bad TOML returns defaults.
    """
    config_path = path or CONFIG_PATH

    if not config_path.exists():
        return _apply_env(BracketbotConfig())

    try:
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return _apply_env(BracketbotConfig())

    try:
        config = BracketbotConfig(
            storage=_parse_storage(_section(raw, "storage")),
            identity=_parse_identity(_section(raw, "identity")),
            server=_parse_server(_section(raw, "server")),
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid value in {config_path}: {e}")
        config = BracketbotConfig()

    return _apply_env(config)
