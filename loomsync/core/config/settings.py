"""Configuration management for loomsync clients."""

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from loomsync.core.exceptions import ConfigurationError
from loomsync.core.logging import get_logger

logger = get_logger(__name__)

LOOMSYNC_HOME = Path.home() / ".loomsync"


@dataclass
class CacheConfig:
    """Local cache store configuration"""

    backend: str = "duckdb"  # duckdb | memory
    path: str = str(LOOMSYNC_HOME / "cache.duckdb")
    fresh_threshold_ms: int = 30_000


@dataclass
class RemoteConfig:
    """Remote collection store configuration"""

    timeout: float = 30.0  # seconds, applies to fetch, upsert and delete
    max_retries: int = 3  # used only by retry_pending
    base_delay: float = 1.0
    max_delay: float = 30.0


@dataclass
class BusConfig:
    """Change propagation configuration"""

    transport: str = "local"  # local | file
    channel: str = "loomsync"
    journal_path: str = str(LOOMSYNC_HOME / "changes.jsonl")
    poll_interval: float = 0.5
    max_journal_bytes: int = 1_048_576


@dataclass
class LoggingConfig:
    """Logging configuration"""

    level: str = "WARNING"
    file: str | None = None


@dataclass
class LoomSyncConfig:
    """loomsync main configuration"""

    cache: CacheConfig = field(default_factory=CacheConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    bus: BusConfig = field(default_factory=BusConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        if self.cache.backend not in {"duckdb", "memory"}:
            raise ConfigurationError(f"unknown cache backend '{self.cache.backend}'")
        if self.bus.transport not in {"local", "file"}:
            raise ConfigurationError(f"unknown bus transport '{self.bus.transport}'")
        if self.cache.fresh_threshold_ms < 0:
            raise ConfigurationError("cache.fresh_threshold_ms must not be negative")
        if self.remote.timeout <= 0:
            raise ConfigurationError("remote.timeout must be positive")

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "LoomSyncConfig":
        """Build a configuration from a nested dictionary"""
        try:
            return cls(
                cache=CacheConfig(**config_dict.get("cache", {})),
                remote=RemoteConfig(**config_dict.get("remote", {})),
                bus=BusConfig(**config_dict.get("bus", {})),
                logging=LoggingConfig(**config_dict.get("logging", {})),
            )
        except TypeError as exc:
            raise ConfigurationError(f"invalid configuration: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        """Convert to a nested dictionary"""
        return {
            "cache": asdict(self.cache),
            "remote": asdict(self.remote),
            "bus": asdict(self.bus),
            "logging": asdict(self.logging),
        }


class ConfigManager:
    """Configuration manager"""

    def __init__(self, config_path: Path | None = None):
        """Load configuration from ``config_path`` (defaults to ``~/.loomsync/config.toml``).

        Environment overrides from :func:`load_config_from_env` are applied on top.
        """
        self.config_path = config_path or LOOMSYNC_HOME / "config.toml"
        self.config = self._load_config()
        env_config = load_config_from_env()
        if env_config:
            self.update_config(**env_config)

    def _load_config(self) -> LoomSyncConfig:
        if not self.config_path.exists():
            return LoomSyncConfig()

        try:
            with open(self.config_path, "rb") as f:
                config_dict = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("failed to load config, using defaults", path=str(self.config_path), error=str(e))
            return LoomSyncConfig()
        return LoomSyncConfig.from_dict(config_dict)

    def get_config(self) -> LoomSyncConfig:
        """Return the current configuration"""
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Deep-merge ``updates`` into the current configuration"""
        config_dict = self.config.to_dict()

        def deep_update(d: dict[str, Any], u: dict[str, Any]) -> dict[str, Any]:
            for k, v in u.items():
                if isinstance(v, dict):
                    d[k] = deep_update(d.get(k, {}), v)
                else:
                    d[k] = v
            return d

        deep_update(config_dict, updates)
        self.config = LoomSyncConfig.from_dict(config_dict)


def get_default_config() -> LoomSyncConfig:
    """Return the default configuration"""
    return LoomSyncConfig()


def load_config_from_env() -> dict[str, Any]:
    """Collect ``LOOMSYNC_*`` environment overrides"""
    config: dict[str, Any] = {}

    cache_config: dict[str, Any] = {}
    cache_backend = os.getenv("LOOMSYNC_CACHE_BACKEND")
    if cache_backend is not None:
        cache_config["backend"] = cache_backend.lower()
    cache_path = os.getenv("LOOMSYNC_CACHE_PATH")
    if cache_path:
        cache_config["path"] = cache_path
    fresh_threshold = os.getenv("LOOMSYNC_CACHE_FRESH_THRESHOLD_MS")
    if fresh_threshold is not None:
        cache_config["fresh_threshold_ms"] = int(fresh_threshold)
    if cache_config:
        config["cache"] = cache_config

    remote_config: dict[str, Any] = {}
    remote_timeout = os.getenv("LOOMSYNC_REMOTE_TIMEOUT")
    if remote_timeout is not None:
        remote_config["timeout"] = float(remote_timeout)
    remote_retries = os.getenv("LOOMSYNC_REMOTE_MAX_RETRIES")
    if remote_retries is not None:
        remote_config["max_retries"] = int(remote_retries)
    if remote_config:
        config["remote"] = remote_config

    bus_config: dict[str, Any] = {}
    bus_transport = os.getenv("LOOMSYNC_BUS_TRANSPORT")
    if bus_transport is not None:
        bus_config["transport"] = bus_transport.lower()
    journal_path = os.getenv("LOOMSYNC_BUS_JOURNAL_PATH")
    if journal_path:
        bus_config["journal_path"] = journal_path
    if bus_config:
        config["bus"] = bus_config

    logging_config: dict[str, Any] = {}
    logging_level = os.getenv("LOOMSYNC_LOGGING_LEVEL")
    if logging_level is not None:
        logging_config["level"] = logging_level
    logging_file = os.getenv("LOOMSYNC_LOGGING_FILE")
    if logging_file is not None:
        logging_config["file"] = logging_file
    if logging_config:
        config["logging"] = logging_config

    return config
