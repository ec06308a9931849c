"""Tests for configuration loading, saving, and the security view."""

from __future__ import annotations

import pytest

from tucksafe.core.config import (
    ConfigError,
    SecurityConfig,
    get_config_value,
    load_config,
    load_security_config,
    resolve_store_dir,
    save_config,
)
from tucksafe.core.patterns import Severity


class TestLoadConfig:
    def test_defaults(self, store_dir):
        config = load_config(store_dir)
        assert config["security"]["min_severity"] == "high"
        assert config["security"]["max_file_size"] == 10 * 1024 * 1024

    def test_store_overrides_global(self, store_dir):
        save_config(None, "security.min_severity", "medium")
        save_config(None, "security.scanner", "gitleaks")
        save_config(store_dir, "security.min_severity", "critical")
        config = load_config(store_dir)
        assert config["security"]["min_severity"] == "critical"
        assert config["security"]["scanner"] == "gitleaks"
        assert config["security"]["block_on_secrets"] is True

    def test_invalid_toml(self, store_dir):
        path = store_dir / ".tucksafe" / "config.toml"
        path.parent.mkdir()
        path.write_text("[security\n")
        with pytest.raises(ConfigError):
            load_config(store_dir)


class TestSaveConfig:
    def test_value_parsing(self, store_dir):
        save_config(store_dir, "security.block_on_secrets", "false")
        save_config(store_dir, "security.max_file_size", "2048")
        save_config(store_dir, "security.exclude_patterns", "jwt-token, bearer-token")
        section = load_config(store_dir)["security"]
        assert section["block_on_secrets"] is False
        assert section["max_file_size"] == 2048
        assert section["exclude_patterns"] == ["jwt-token", "bearer-token"]

    def test_get_config_value(self, store_dir):
        assert get_config_value(load_config(store_dir), "restore.workers") == 4
        assert get_config_value(load_config(store_dir), "nope.missing") is None

    def test_custom_patterns_roundtrip_through_toml(self, store_dir):
        path = store_dir / ".tucksafe" / "config.toml"
        path.parent.mkdir()
        path.write_text(
            '[security]\ncustom_patterns = [{ name = "Corp", pattern = "corp_[a-z0-9]{12}", severity = "critical" }]\n'
        )
        save_config(store_dir, "security.min_severity", "low")
        config = load_security_config(store_dir)
        assert config.min_severity == Severity.LOW
        assert [p.severity for p in config.custom_patterns] == [Severity.CRITICAL]


class TestSecurityConfig:
    def test_absent_config_means_defaults(self):
        config = SecurityConfig.from_config(None)
        assert config == SecurityConfig()
        assert config.scan_secrets and config.block_on_secrets
        assert config.scanner == "builtin"

    def test_bad_severity(self):
        with pytest.raises(ConfigError, match="min_severity"):
            SecurityConfig.from_config({"security": {"min_severity": "urgent"}})

    def test_bad_scanner(self):
        with pytest.raises(ConfigError, match="scanner"):
            SecurityConfig.from_config({"security": {"scanner": "grep"}})

    def test_bad_max_file_size(self):
        with pytest.raises(ConfigError):
            SecurityConfig.from_config({"security": {"max_file_size": 0}})

    def test_unsafe_custom_pattern(self):
        with pytest.raises(ConfigError, match="custom_patterns\\[0\\]"):
            SecurityConfig.from_config({"security": {"custom_patterns": [{"pattern": "(a+)+"}]}})

    def test_custom_pattern_ids(self):
        config = SecurityConfig.from_config(
            {"security": {"custom_patterns": [{"name": "Corp", "pattern": "corp_[a-z]{8}", "placeholder": "CORP"}]}}
        )
        (pattern,) = config.custom_patterns
        assert pattern.id == "custom-config-0"
        assert pattern.placeholder == "CORP"


class TestResolveStoreDir:
    def test_explicit(self, tmp_path):
        assert resolve_store_dir(tmp_path / "s") == tmp_path / "s"

    def test_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TUCK_DIR", str(tmp_path / "env"))
        assert resolve_store_dir() == tmp_path / "env"

    def test_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_store_dir() == tmp_path / ".tuck"
