"""Core configuration for the SWCSCAN engine.

Two layers:
  - ``Settings``   process defaults from ``SWCSCAN_*`` environment variables
  - ``ScanConfig`` per-scan detector overrides and language context, loadable
                   from YAML and validated before any analysis starts
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from swcscan.core.errors import ConfigurationError
from swcscan.core.pragma import LanguageContext, Version
from swcscan.core.types import Severity


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SWCSCAN_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_env: Literal["development", "ci", "production"] = "development"
    log_level: str = "INFO"

    # ── Scheduling ───────────────────────────────────────────────────────
    max_workers: int = 4
    scan_timeout_seconds: float = 300.0

    # ── Language semantics ───────────────────────────────────────────────
    min_safe_compiler_version: str = "0.8.0"
    default_compiler_version: str = "0.8.0"

    # ── Detector overrides ───────────────────────────────────────────────
    detector_config_path: str = ""


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()


class DetectorOverride(BaseModel):
    """Per-detector enablement and severity override."""

    enabled: bool = True
    severity_override: Severity | None = None


class ScanConfig(BaseModel):
    """Configuration for a single scan.

    ``compiler_version`` fixes the language context for every unit; when it is
    left empty each unit's context comes from the lowest version its pragma
    admits.
    """

    detectors: dict[str, DetectorOverride] = Field(default_factory=dict)
    compiler_version: str | None = None
    min_safe_compiler_version: str = "0.8.0"
    default_compiler_version: str = "0.8.0"
    max_workers: int = Field(default=4, ge=1)
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("compiler_version", "min_safe_compiler_version", "default_compiler_version")
    @classmethod
    def _check_version(cls, value: str | None) -> str | None:
        if value is not None:
            Version.parse(value)
        return value

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ScanConfig":
        settings = settings or get_settings()
        config = cls(
            min_safe_compiler_version=settings.min_safe_compiler_version,
            default_compiler_version=settings.default_compiler_version,
            max_workers=settings.max_workers,
            timeout_seconds=settings.scan_timeout_seconds,
        )
        if settings.detector_config_path:
            overrides = cls.from_yaml(settings.detector_config_path)
            config = config.model_copy(update={
                "detectors": overrides.detectors,
                "compiler_version": overrides.compiler_version or config.compiler_version,
            })
        return config

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ScanConfig":
        try:
            return cls.model_validate(data)
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid scan configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ScanConfig":
        """Load a scan configuration file.

        Example::

            compiler_version: "0.4.24"
            detectors:
              SWC-103:
                enabled: false
              SWC-104:
                severity_override: high
        """
        try:
            raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read scan configuration {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Scan configuration {path} must be a mapping")
        return cls.from_mapping(raw)

    def validate_against(self, known_ids: set[str]) -> None:
        """Reject unknown detector ids and contradictory overrides."""
        unknown = sorted(set(self.detectors) - known_ids)
        if unknown:
            raise ConfigurationError(f"Unknown detector id(s): {', '.join(unknown)}")
        for detector_id, override in self.detectors.items():
            if not override.enabled and override.severity_override is not None:
                raise ConfigurationError(
                    f"Detector {detector_id} is disabled but also has a severity override"
                )

    def is_enabled(self, detector_id: str) -> bool:
        override = self.detectors.get(detector_id)
        return override.enabled if override else True

    def severity_for(self, detector_id: str, default: Severity | None = None) -> Severity | None:
        override = self.detectors.get(detector_id)
        if override and override.severity_override is not None:
            return override.severity_override
        return default

    def language_for(self, pragma_minimum: Version | None) -> LanguageContext:
        if self.compiler_version:
            return LanguageContext.from_string(self.compiler_version)
        if pragma_minimum is not None:
            return LanguageContext(version=pragma_minimum)
        return LanguageContext.from_string(self.default_compiler_version)

    @property
    def min_safe_version(self) -> Version:
        return Version.parse(self.min_safe_compiler_version)
