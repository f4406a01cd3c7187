"""Tests for swcscan.core.config — settings loading and scan configuration."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from swcscan.core.config import DetectorOverride, ScanConfig, Settings, get_settings
from swcscan.core.errors import ConfigurationError
from swcscan.core.pragma import Version
from swcscan.core.types import Severity


class TestSettings:
    """Verify settings defaults and environment overrides."""

    def test_defaults(self):
        s = Settings()
        assert s.app_env == "development"
        assert s.max_workers == 4
        assert s.min_safe_compiler_version == "0.8.0"

    @patch.dict(os.environ, {"SWCSCAN_APP_ENV": "ci", "SWCSCAN_MAX_WORKERS": "8"})
    def test_env_override(self):
        """Environment variables with SWCSCAN_ prefix override defaults."""
        s = Settings()
        assert s.app_env == "ci"
        assert s.max_workers == 8

    def test_get_settings_returns_same_instance(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()

    def test_from_settings(self):
        config = ScanConfig.from_settings(Settings(max_workers=3, scan_timeout_seconds=12.5))
        assert config.max_workers == 3
        assert config.timeout_seconds == 12.5
        assert config.detectors == {}

    def test_from_settings_reads_override_file(self, tmp_path):
        path = tmp_path / "detectors.yaml"
        path.write_text("detectors:\n  SWC-103:\n    enabled: false\n", encoding="utf-8")
        config = ScanConfig.from_settings(Settings(detector_config_path=str(path)))
        assert not config.is_enabled("SWC-103")


class TestScanConfig:
    """Per-scan overrides, validation and language selection."""

    def test_from_mapping(self):
        config = ScanConfig.from_mapping({
            "compiler_version": "0.4.24",
            "detectors": {"SWC-104": {"severity_override": "high"}},
        })
        assert config.severity_for("SWC-104", Severity.MEDIUM) == Severity.HIGH
        assert config.severity_for("SWC-101", Severity.HIGH) == Severity.HIGH

    def test_bad_version_rejected(self):
        with pytest.raises(ConfigurationError):
            ScanConfig.from_mapping({"compiler_version": "newest"})

    def test_bad_severity_rejected(self):
        with pytest.raises(ConfigurationError):
            ScanConfig.from_mapping({"detectors": {"SWC-104": {"severity_override": "severe"}}})

    def test_zero_workers_rejected(self):
        with pytest.raises(ConfigurationError):
            ScanConfig.from_mapping({"max_workers": 0})

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "scan.yaml"
        path.write_text(
            'compiler_version: "0.5.17"\n'
            "detectors:\n"
            "  SWC-103:\n"
            "    enabled: false\n",
            encoding="utf-8",
        )
        config = ScanConfig.from_yaml(path)
        assert config.compiler_version == "0.5.17"
        assert not config.is_enabled("SWC-103")
        assert config.is_enabled("SWC-104")

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "scan.yaml"
        path.write_text("- SWC-103\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ScanConfig.from_yaml(path)

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ScanConfig.from_yaml(tmp_path / "absent.yaml")

    def test_unknown_detector_rejected(self):
        config = ScanConfig(detectors={"SWC-999": DetectorOverride(enabled=False)})
        with pytest.raises(ConfigurationError, match="SWC-999"):
            config.validate_against({"SWC-104"})

    def test_disabled_with_override_rejected(self):
        config = ScanConfig(detectors={"SWC-104": DetectorOverride(enabled=False, severity_override=Severity.HIGH)})
        with pytest.raises(ConfigurationError, match="disabled"):
            config.validate_against({"SWC-104"})

    def test_language_pinned_by_compiler_version(self):
        config = ScanConfig(compiler_version="0.4.24")
        assert config.language_for(Version(0, 8, 0)).version == Version(0, 4, 24)

    def test_language_from_pragma_minimum(self):
        assert ScanConfig().language_for(Version(0, 6, 2)).version == Version(0, 6, 2)

    def test_language_default(self):
        config = ScanConfig(default_compiler_version="0.7.0")
        assert config.language_for(None).version == Version(0, 7, 0)
