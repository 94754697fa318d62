"""
Configuration management for the chart indexer.

Loads the list of source folders and chart extensions from a TOML file
(`bmsindex.toml`) or, for compatibility with older setups, a JSON file using the
`srcDirs` / `extensions` keys.

Example bmsindex.toml:

    source_dirs = ["/games/bms/insane", "/games/bms/normal"]
    extensions = [".bms", ".bme", ".bml", ".pms"]
    database = "bms.db"
    max_workers = 10
    batch_size = 1000
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bmsindex.core.persister import DEFAULT_BATCH_SIZE
from bmsindex.core.scanner import DEFAULT_MAX_WORKERS, ScanConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("bmsindex.toml")
DEFAULT_DATABASE_PATH = Path("bms.db")


class ConfigError(ValueError):
    """Raised when the configuration is missing, unreadable or invalid."""


@dataclass
class IndexerConfig:
    """Validated indexer settings."""

    source_dirs: list[Path] = field(default_factory=list)
    extensions: list[str] = field(default_factory=list)
    database: Path = DEFAULT_DATABASE_PATH
    max_workers: int = DEFAULT_MAX_WORKERS
    batch_size: int = DEFAULT_BATCH_SIZE
    max_errors: int | None = None
    follow_symlinks: bool = False

    def validate(self) -> None:
        """
        Check the configuration before any scanning starts.

        Raises:
            ConfigError: describing the first problem found.
        """
        if not self.extensions:
            raise ConfigError("extensions must not be empty")
        for ext in self.extensions:
            if not ext.startswith(".") or len(ext) < 2:
                raise ConfigError(f"extension ({ext}) must be in dotted form, e.g. .bms")

        if not self.source_dirs:
            raise ConfigError("source_dirs must not be empty")
        for src in self.source_dirs:
            if not src.is_absolute():
                raise ConfigError(f"source dir ({src}) must not be a relative path")
            if not src.exists():
                raise ConfigError(f"directory does not exist: {src}")
            if not src.is_dir():
                raise ConfigError(f"not a directory: {src}")

        if self.max_workers <= 0:
            raise ConfigError("max_workers must be > 0")
        if self.batch_size <= 0:
            raise ConfigError("batch_size must be > 0")
        if self.max_errors is not None and self.max_errors < 0:
            raise ConfigError("max_errors must be >= 0")

    def scan_config(self) -> ScanConfig:
        return ScanConfig(
            roots=tuple(self.source_dirs),
            extensions=frozenset(self.extensions),
            follow_symlinks=self.follow_symlinks,
            max_workers=self.max_workers,
        )


def _get_int(data: dict[str, Any], key: str, default: int | None) -> int | None:
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return value


def _get_str_list(data: dict[str, Any], *keys: str) -> list[str]:
    for key in keys:
        if key in data:
            value = data[key]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{key} must be a list of strings")
            return list(value)
    return []


def parse_config(data: dict[str, Any], *, base_dir: Path | None = None) -> IndexerConfig:
    """
    Build an `IndexerConfig` from already-decoded TOML/JSON data.

    A relative `database` path is resolved against `base_dir` (the config file's
    folder). Source folders are never resolved; they must be absolute.
    """
    database = Path(str(data.get("database", DEFAULT_DATABASE_PATH)))
    if base_dir is not None and not database.is_absolute() and str(database) != ":memory:":
        database = base_dir / database

    return IndexerConfig(
        source_dirs=[Path(p) for p in _get_str_list(data, "source_dirs", "srcDirs")],
        extensions=_get_str_list(data, "extensions"),
        database=database,
        max_workers=_get_int(data, "max_workers", DEFAULT_MAX_WORKERS) or 0,
        batch_size=_get_int(data, "batch_size", DEFAULT_BATCH_SIZE) or 0,
        max_errors=_get_int(data, "max_errors", None),
        follow_symlinks=bool(data.get("follow_symlinks", False)),
    )


def load_config(config_path: Path | None = None) -> IndexerConfig:
    """
    Load and validate the indexer configuration.

    Args:
        config_path: Path to a .toml or .json file. If None, uses ./bmsindex.toml.

    Returns:
        Validated IndexerConfig instance.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    logger.debug("Loading indexer config from %s", config_path)

    try:
        with config_path.open("rb") as f:
            if config_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {config_path}") from e
    except OSError as e:
        raise ConfigError(f"error reading {config_path}: {e}") from e
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"error parsing {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a table/object at the top level")

    config = parse_config(data, base_dir=config_path.parent)
    config.validate()
    return config
