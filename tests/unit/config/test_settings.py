"""Tests for mulch.config.settings loading and env overrides."""
from __future__ import annotations

import pytest

from mulch.config import MulchConfig
from mulch.config.settings import log_config_from_env
from mulch.core.errors import ConfigError


class TestMulchConfigLoad:
    """Tests for MulchConfig.load."""

    def test_missing_config_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            MulchConfig.load(tmp_path)

    def test_invalid_toml_raises(self, tmp_path):
        (tmp_path / ".mulch").mkdir()
        (tmp_path / ".mulch" / "mulch.config.toml").write_text("domains = [", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid TOML"):
            MulchConfig.load(tmp_path)

    def test_defaults_fill_missing_sections(self, tmp_path):
        (tmp_path / ".mulch").mkdir()
        (tmp_path / ".mulch" / "mulch.config.toml").write_text('domains = ["api"]\n', encoding="utf-8")
        config = MulchConfig.load(tmp_path)
        assert config.domains == ("api",)
        assert config.governance.max_entries == 100
        assert config.shelf_life.tactical == 14
        assert config.prime.budget == 4000
        assert config.search.k1 == 1.5

    def test_domains_must_be_strings(self):
        with pytest.raises(ConfigError):
            MulchConfig.from_dict({"domains": ["ok", 3]})


class TestEnvOverrides:
    """Tests for MULCH_* environment overrides."""

    def test_env_beats_file(self, monkeypatch):
        monkeypatch.setenv("MULCH_PRIME_BUDGET", "123")
        monkeypatch.setenv("MULCH_SEARCH_B", "0.5")
        config = MulchConfig.from_dict({"prime": {"budget": 999}})
        assert config.prime.budget == 123
        assert config.search.b == 0.5

    def test_malformed_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("MULCH_PRIME_BUDGET", "lots")
        assert MulchConfig.from_dict({"prime": {"budget": 999}}).prime.budget == 999

    def test_dotenv_file_loaded(self, monkeypatch, tmp_path):
        # register the variable with monkeypatch so the loaded value is undone
        monkeypatch.setenv("MULCH_CONFIRMATION_BOOST", "unset")
        monkeypatch.delenv("MULCH_CONFIRMATION_BOOST")
        (tmp_path / ".mulch").mkdir()
        (tmp_path / ".mulch" / "mulch.config.toml").write_text("domains = []\n", encoding="utf-8")
        (tmp_path / ".env").write_text("MULCH_CONFIRMATION_BOOST=0.25\n", encoding="utf-8")
        assert MulchConfig.load(tmp_path).search.confirmation_boost == 0.25

    def test_log_config_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MULCH_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("MULCH_LOG_FILE", str(tmp_path / "mulch.log"))
        cfg = log_config_from_env()
        assert cfg.level == "DEBUG"
        assert cfg.file_enabled is True
        assert cfg.file_path.endswith("mulch.log")


class TestDomainSnapshots:
    def test_with_and_without_domain_return_new_snapshots(self):
        config = MulchConfig(domains=("a",))
        added = config.with_domain("b")
        assert config.domains == ("a",)
        assert added.domains == ("a", "b")
        assert added.without_domain("a").domains == ("b",)
