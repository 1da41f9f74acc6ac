"""
Configuration management for hablare stores.

The configuration is stored as a TOML file in the store directory:

    [store]
    version = 1
    created = "2024-05-01T12:00:00+00:00"

    [thresholds]
    audio = 250000          # per category
    "image/png" = 50000     # per MIME type, wins over the category
    embedding = -1          # negative: no threshold, category default decides

    [providers.openai]
    timeout = 60.0

Thresholds override the byte sizes at which requestors move results from
inline storage to files. Provider sections hold keyword arguments for the
provider's generator.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .output_types import OutputFileType

CONFIG_FILENAME = "hablare.toml"
CONFIG_VERSION = 1
DATABASE_FILENAME = "records.db"


def get_default_store_path() -> Path:
    """HABLARE_STORE_PATH if set, otherwise ~/.hablare."""
    env = os.environ.get("HABLARE_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".hablare"


@dataclass
class ProviderConfig:
    """Generator parameters for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Threshold overrides keyed by category value or MIME type; None disables
    thresholds: dict[str, Optional[int]] = field(default_factory=dict)

    # Provider configurations keyed by provider id
    providers: dict[str, ProviderConfig] = field(default_factory=dict)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        return self.path / DATABASE_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def threshold_for(self, output_type: OutputFileType) -> Optional[int]:
        """
        Effective file-storage threshold for an output type.

        A MIME-type entry wins over a category entry; with neither, the
        output type's own threshold stands.
        """
        if output_type.mime_type in self.thresholds:
            return self.thresholds[output_type.mime_type]
        if output_type.category.value in self.thresholds:
            return self.thresholds[output_type.category.value]
        return output_type.store_as_file_threshold

    def apply_thresholds(self, output_type: OutputFileType) -> OutputFileType:
        """Return the output type with the configured threshold applied."""
        threshold = self.threshold_for(output_type)
        if threshold == output_type.store_as_file_threshold:
            return output_type
        return output_type.with_threshold(threshold)

    def provider_params(self, provider_id: str) -> dict[str, Any]:
        provider = self.providers.get(provider_id)
        return dict(provider.params) if provider else {}


def _parse_thresholds(section: dict) -> dict[str, Optional[int]]:
    thresholds: dict[str, Optional[int]] = {}
    for key, value in section.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Threshold for '{key}' must be an integer, got {value!r}")
        thresholds[key] = value if value >= 0 else None
    return thresholds


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config; requestor thresholds stay at their built-in values."""
    return StoreConfig(path=store_path)


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    providers = {
        name: ProviderConfig(name=name, params=dict(section))
        for name, section in data.get("providers", {}).items()
    }

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        thresholds=_parse_thresholds(data.get("thresholds", {})),
        providers=providers,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
    }
    if config.thresholds:
        # TOML has no null; a negative value means "no threshold"
        data["thresholds"] = {
            key: (-1 if value is None else value) for key, value in config.thresholds.items()
        }
    if config.providers:
        data["providers"] = {name: dict(p.params) for name, p in config.providers.items()}

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
