"""Configuration management."""
from mulch.config.settings import MulchConfig, GovernanceConfig, ShelfLife
from mulch.config.path_resolver import PathResolver, validate_domain_name
from mulch.config.config_writer import init_mulch_dir, write_config

__all__ = [
    "MulchConfig",
    "GovernanceConfig",
    "ShelfLife",
    "PathResolver",
    "validate_domain_name",
    "init_mulch_dir",
    "write_config",
]
