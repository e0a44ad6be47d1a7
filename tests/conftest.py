"""Pytest configuration and shared fixtures for mulch tests."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from mulch.config import MulchConfig, PathResolver, init_mulch_dir, write_config
from mulch.config.constants import (
    ENV_CONFIRMATION_BOOST,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_PRIME_BUDGET,
    ENV_SEARCH_B,
    ENV_SEARCH_K1,
)
from mulch.expertise.store import ExpertiseStore

TEST_DOMAIN = "testing"


@pytest.fixture(autouse=True)
def _clean_mulch_env(monkeypatch):
    """Keep developer MULCH_* settings out of test runs."""
    for name in (
        ENV_PRIME_BUDGET,
        ENV_SEARCH_K1,
        ENV_SEARCH_B,
        ENV_CONFIRMATION_BOOST,
        ENV_LOG_LEVEL,
        ENV_LOG_FILE,
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def mulch_root(tmp_path: Path) -> Path:
    """A project root with an initialized .mulch directory and one empty domain."""
    resolver = PathResolver(tmp_path)
    config = init_mulch_dir(resolver)
    write_config(config.with_domain(TEST_DOMAIN), resolver)
    resolver.expertise_path(TEST_DOMAIN).write_text("", encoding="utf-8")
    return tmp_path


@pytest.fixture
def resolver(mulch_root: Path) -> PathResolver:
    return PathResolver(mulch_root)


@pytest.fixture
def config(mulch_root: Path) -> MulchConfig:
    return MulchConfig.load(mulch_root)


@pytest.fixture
def store(resolver: PathResolver) -> ExpertiseStore:
    return ExpertiseStore(resolver)
