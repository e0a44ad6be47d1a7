"""
Configuration management with environment variable and .env support.

Configuration precedence (highest to lowest):
1. Environment variables (MULCH_*)
2. Project config file (.mulch/mulch.config.toml)
3. Hardcoded constants (constants.py)

A loaded ``MulchConfig`` is an immutable snapshot: operations that change the
domain list return a new snapshot, which the caller writes back explicitly.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli
from dotenv import load_dotenv

from ..core.errors import ConfigError
from ..core.logging_config import LogConfig
from .constants import (
    CONFIG_FILE,
    CONFIG_VERSION,
    DEFAULT_BM25_B,
    DEFAULT_BM25_K1,
    DEFAULT_CONFIRMATION_BOOST,
    DEFAULT_HARD_LIMIT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_ENTRIES,
    DEFAULT_PRIME_BUDGET,
    DEFAULT_SHELF_LIFE_OBSERVATIONAL_DAYS,
    DEFAULT_SHELF_LIFE_TACTICAL_DAYS,
    DEFAULT_WARN_ENTRIES,
    ENV_CONFIRMATION_BOOST,
    ENV_FILE,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_PRIME_BUDGET,
    ENV_SEARCH_B,
    ENV_SEARCH_K1,
    MULCH_DIR_NAME,
)


def load_env_files(root: Path) -> None:
    """Load .env files from the project root and the .mulch directory."""
    for env_path in (root / ENV_FILE, root / MULCH_DIR_NAME / ENV_FILE):
        if env_path.exists():
            load_dotenv(env_path, override=False)  # Don't override already-set vars


def _get_env_str(key: str, default: str | None = None) -> str | None:
    """Get string value from environment variable. Empty strings are treated as missing."""
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class GovernanceConfig:
    max_entries: int = DEFAULT_MAX_ENTRIES
    warn_entries: int = DEFAULT_WARN_ENTRIES
    hard_limit: int = DEFAULT_HARD_LIMIT

    @classmethod
    def from_dict(cls, data: dict) -> "GovernanceConfig":
        return cls(
            max_entries=int(data.get("max_entries", DEFAULT_MAX_ENTRIES)),
            warn_entries=int(data.get("warn_entries", DEFAULT_WARN_ENTRIES)),
            hard_limit=int(data.get("hard_limit", DEFAULT_HARD_LIMIT)),
        )


@dataclass(frozen=True)
class ShelfLife:
    """Days after which tactical/observational records count as stale."""

    tactical: int = DEFAULT_SHELF_LIFE_TACTICAL_DAYS
    observational: int = DEFAULT_SHELF_LIFE_OBSERVATIONAL_DAYS

    @classmethod
    def from_dict(cls, data: dict) -> "ShelfLife":
        return cls(
            tactical=int(data.get("tactical", DEFAULT_SHELF_LIFE_TACTICAL_DAYS)),
            observational=int(data.get("observational", DEFAULT_SHELF_LIFE_OBSERVATIONAL_DAYS)),
        )


@dataclass(frozen=True)
class PrimeConfig:
    budget: int = DEFAULT_PRIME_BUDGET

    @classmethod
    def from_dict(cls, data: dict) -> "PrimeConfig":
        return cls(
            budget=_get_env_int(ENV_PRIME_BUDGET, int(data.get("budget", DEFAULT_PRIME_BUDGET))),
        )


@dataclass(frozen=True)
class SearchConfig:
    k1: float = DEFAULT_BM25_K1
    b: float = DEFAULT_BM25_B
    confirmation_boost: float = DEFAULT_CONFIRMATION_BOOST

    @classmethod
    def from_dict(cls, data: dict) -> "SearchConfig":
        return cls(
            k1=_get_env_float(ENV_SEARCH_K1, float(data.get("k1", DEFAULT_BM25_K1))),
            b=_get_env_float(ENV_SEARCH_B, float(data.get("b", DEFAULT_BM25_B))),
            confirmation_boost=_get_env_float(
                ENV_CONFIRMATION_BOOST,
                float(data.get("confirmation_boost", DEFAULT_CONFIRMATION_BOOST)),
            ),
        )


def log_config_from_env() -> LogConfig:
    log_file = _get_env_str(ENV_LOG_FILE)
    config = LogConfig(level=_get_env_str(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL)
    if log_file:
        config.file_enabled = True
        config.file_path = log_file
    return config


@dataclass(frozen=True)
class MulchConfig:
    """Immutable snapshot of ``.mulch/mulch.config.toml``."""

    version: str = CONFIG_VERSION
    domains: tuple[str, ...] = ()
    governance: GovernanceConfig = field(default_factory=GovernanceConfig)
    shelf_life: ShelfLife = field(default_factory=ShelfLife)
    prime: PrimeConfig = field(default_factory=PrimeConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LogConfig = field(default_factory=log_config_from_env, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MulchConfig":
        raw_domains = data.get("domains", [])
        if not isinstance(raw_domains, list) or not all(isinstance(d, str) for d in raw_domains):
            raise ConfigError("Config key 'domains' must be a list of strings.")
        classification_defaults = data.get("classification_defaults", {})
        return cls(
            version=str(data.get("version", CONFIG_VERSION)),
            domains=tuple(raw_domains),
            governance=GovernanceConfig.from_dict(data.get("governance", {})),
            shelf_life=ShelfLife.from_dict(classification_defaults.get("shelf_life", {})),
            prime=PrimeConfig.from_dict(data.get("prime", {})),
            search=SearchConfig.from_dict(data.get("search", {})),
        )

    @classmethod
    def load(cls, root: Path) -> "MulchConfig":
        """
        Load the project config found under ``root/.mulch``.

        Args:
            root: Project root containing the ``.mulch`` directory

        Returns:
            Loaded MulchConfig snapshot

        Raises:
            ConfigError: If the config file is missing or not valid TOML
        """
        load_env_files(root)
        config_path = root / MULCH_DIR_NAME / CONFIG_FILE
        try:
            with open(config_path, "rb") as f:
                data = tomli.load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {config_path}") from exc
        except tomli.TOMLDecodeError as exc:
            raise ConfigError(f"Config file {config_path} is not valid TOML: {exc}") from exc
        return cls.from_dict(data)

    def has_domain(self, domain: str) -> bool:
        return domain in self.domains

    def with_domain(self, domain: str) -> "MulchConfig":
        return dataclasses.replace(self, domains=self.domains + (domain,))

    def without_domain(self, domain: str) -> "MulchConfig":
        return dataclasses.replace(self, domains=tuple(d for d in self.domains if d != domain))
