"""Core infrastructure: errors and logging."""
from mulch.core.errors import MulchError
from mulch.core.logging_config import LogConfig, setup_logging

__all__ = [
    "MulchError",
    "LogConfig",
    "setup_logging",
]
