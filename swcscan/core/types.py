"""Shared enums and types used across the engine."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class Severity(str, enum.Enum):
    """Vulnerability severity level."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFORMATIONAL = "informational"

    @property
    def rank(self) -> int:
        """Higher is more severe."""
        return _SEVERITY_RANK[self]


class Confidence(str, enum.Enum):
    """How sure a detector is about a finding."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFORMATIONAL: 0,
}

_CONFIDENCE_RANK = {
    Confidence.HIGH: 2,
    Confidence.MEDIUM: 1,
    Confidence.LOW: 0,
}


class Visibility(str, enum.Enum):
    """Declared visibility of a function or state variable."""

    PUBLIC = "public"
    EXTERNAL = "external"
    INTERNAL = "internal"
    PRIVATE = "private"
    UNSPECIFIED = "unspecified"


class Mutability(str, enum.Enum):
    """Function state mutability."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"


class DiagnosticCode(str, enum.Enum):
    """Codes for non-finding problems reported alongside a scan."""

    FATAL_ADAPTER_ERROR = "FATAL_ADAPTER_ERROR"
    INHERITANCE_ERROR = "INHERITANCE_ERROR"
    LOWERING_ERROR = "LOWERING_ERROR"
    ANALYSIS_ERROR = "ANALYSIS_ERROR"
    DETECTOR_FAILED = "DETECTOR_FAILED"
    SCAN_CANCELLED = "SCAN_CANCELLED"


# ── Shared Schemas ───────────────────────────────────────────────────────────


class SourceSpan(BaseModel):
    """Byte range in a source file, as carried by the AST ``src`` field."""

    model_config = ConfigDict(frozen=True)

    offset: int = 0
    length: int = 0
    file_index: int = 0

    @classmethod
    def from_src(cls, src: str | None) -> "SourceSpan":
        """Parse an AST ``src`` field like ``'120:45:0'``."""
        if not src:
            return cls()
        parts = src.split(":")
        if len(parts) < 2:
            return cls()
        try:
            offset = int(parts[0])
            length = int(parts[1])
            file_index = int(parts[2]) if len(parts) > 2 else 0
        except ValueError:
            return cls()
        return cls(offset=offset, length=length, file_index=file_index)

    @property
    def end(self) -> int:
        return self.offset + self.length

    def contains_offset(self, offset: int) -> bool:
        return self.offset <= offset < max(self.end, self.offset + 1)


class Location(BaseModel):
    """Code location of a finding."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    contract: str
    function: str | None = None
    span: SourceSpan = Field(default_factory=SourceSpan)
    start_line: int = 0
    end_line: int = 0
    snippet: str = ""


class Finding(BaseModel):
    """One reported instance of a suspected vulnerability class."""

    model_config = ConfigDict(frozen=True)

    class_id: str
    title: str
    detector_id: str
    severity: Severity
    confidence: Confidence
    location: Location
    rationale: str
    remediation: str = ""
    related_contracts: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple[str, str, str, str, int, int]:
        """Identity used by the aggregator to merge exact duplicates."""
        loc = self.location
        return (
            self.class_id,
            loc.file_path,
            loc.contract,
            loc.function or "",
            loc.span.offset,
            loc.span.length,
        )

    @property
    def sort_key(self) -> tuple:
        """Severity desc, confidence desc, then source order."""
        loc = self.location
        return (
            -self.severity.rank,
            -self.confidence.rank,
            loc.file_path,
            loc.span.offset,
            loc.span.length,
            self.class_id,
            loc.contract,
            loc.function or "",
        )


class Diagnostic(BaseModel):
    """A scoped, non-fatal problem encountered during a scan."""

    code: DiagnosticCode
    message: str
    file_path: str = ""
    contract: str | None = None
    function: str | None = None
    detector_id: str | None = None


class ScanResult(BaseModel):
    """Result of a completed scan."""

    scan_id: str
    findings: list[Finding] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    suppressed_count: int = 0
    duplicate_count: int = 0
    units_analyzed: int = 0
    contracts_analyzed: int = 0
    functions_analyzed: int = 0
    detectors_run: int = 0
    cancelled: bool = False
    scan_duration_seconds: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def severity_breakdown(self) -> dict[str, int]:
        breakdown: dict[str, int] = {}
        for finding in self.findings:
            sev = finding.severity.value
            breakdown[sev] = breakdown.get(sev, 0) + 1
        return breakdown

    def by_class(self, class_id: str) -> list[Finding]:
        return [f for f in self.findings if f.class_id == class_id]
