"""
Configuration system for the index advisor.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional config file (JSON or YAML) for local development

Usage:
    from indexadvisor.config import get_config

    config = get_config()
    if len(columns) <= config.max_index_keys:
        ...
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from indexadvisor.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "INDEXADVISOR_"

# B-tree operators an index can serve
DEFAULT_INDEXABLE_OPERATORS: tuple[str, ...] = ("=", "<", ">", "<=", ">=")


class SelectionStrategy(str, Enum):
    """How the budget selector picks the final index set."""

    GREEDY = "greedy"
    EXACT = "exact"

    @classmethod
    def from_string(cls, value: str) -> "SelectionStrategy":
        """Parse strategy from string, defaulting to greedy."""
        try:
            return cls(value.lower())
        except ValueError:
            return cls.GREEDY


class Config(BaseModel):
    """
    Index advisor configuration.

    Loaded from environment variables and optional config file.
    """

    model_config = ConfigDict(frozen=True)

    max_index_keys: int = Field(
        default=32,
        ge=2,
        description="Maximum number of key columns in one index",
    )
    min_table_rows: int = Field(
        default=2,
        ge=0,
        description="Tables with fewer rows are not worth indexing",
    )
    indexable_operators: tuple[str, ...] = Field(
        default=DEFAULT_INDEXABLE_OPERATORS,
        description="Comparison operators that can use an index",
    )
    block_size: int = Field(
        default=8192,
        gt=0,
        description="Storage page size in bytes",
    )
    advisory_table: str = Field(
        default="index_advisory",
        description="Table the PostgreSQL sink writes advice into",
    )
    selection_strategy: SelectionStrategy = Field(
        default=SelectionStrategy.GREEDY,
        description="Default budget selection strategy",
    )
    statement_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="Per-statement timeout for oracle and catalog queries",
    )

    def pages_to_kb(self, pages: int) -> int:
        """Convert a page count into kilobytes."""
        return pages * self.block_size // 1024


def _parse_env_int(key: str, default: int) -> int:
    """Parse integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be an integer, got {value!r}", config_key=key
        )


def _build_config(data: dict[str, Any]) -> Config:
    try:
        return Config(**data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid configuration: {first.get('msg')}", config_key=key or None
        ) from e


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Examples:
    - INDEXADVISOR_MAX_INDEX_KEYS=16
    - INDEXADVISOR_INDEXABLE_OPERATORS="=,<,>"
    - INDEXADVISOR_SELECTION_STRATEGY=exact
    """
    config_kwargs: dict[str, Any] = {
        "max_index_keys": _parse_env_int(f"{ENV_PREFIX}MAX_INDEX_KEYS", 32),
        "min_table_rows": _parse_env_int(f"{ENV_PREFIX}MIN_TABLE_ROWS", 2),
        "block_size": _parse_env_int(f"{ENV_PREFIX}BLOCK_SIZE", 8192),
        "statement_timeout_ms": _parse_env_int(
            f"{ENV_PREFIX}STATEMENT_TIMEOUT_MS", 5000
        ),
        "advisory_table": os.environ.get(
            f"{ENV_PREFIX}ADVISORY_TABLE", "index_advisory"
        ),
        "selection_strategy": SelectionStrategy.from_string(
            os.environ.get(f"{ENV_PREFIX}SELECTION_STRATEGY", "greedy")
        ),
    }

    operators = os.environ.get(f"{ENV_PREFIX}INDEXABLE_OPERATORS")
    if operators:
        config_kwargs["indexable_operators"] = tuple(
            op.strip() for op in operators.split(",") if op.strip()
        )

    return _build_config(config_kwargs)


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file is missing.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        raise ConfigurationError(
            f"Could not load config file {path}: {e}", config_key=str(path)
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    return _build_config(data)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. INDEXADVISOR_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
