"""Exception taxonomy for the analysis engine.

Three kinds of failure exist:

    input errors          : malformed or unresolvable AST fragments, scoped to
                            the smallest enclosing unit (function > contract >
                            compilation unit) and turned into diagnostics
    analysis errors       : a detector or analysis tripping over an unexpected
                            fact shape; isolated to one contract
    configuration errors  : rejected eagerly, before any analysis starts

Only configuration errors ever escape ``Analyzer.analyze``.
"""

from __future__ import annotations

from swcscan.core.types import Diagnostic, DiagnosticCode


class SWCScanError(Exception):
    """Base class for all engine errors."""

    code: DiagnosticCode = DiagnosticCode.ANALYSIS_ERROR

    def __init__(
        self,
        message: str,
        *,
        file_path: str = "",
        contract: str | None = None,
        function: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.file_path = file_path
        self.contract = contract
        self.function = function

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            code=self.code,
            message=self.message,
            file_path=self.file_path,
            contract=self.contract,
            function=self.function,
        )


class FatalAdapterError(SWCScanError):
    """The syntax adapter supplied a compilation unit that cannot be analysed."""

    code = DiagnosticCode.FATAL_ADAPTER_ERROR


class InheritanceError(SWCScanError):
    """Base-contract order cannot be linearized (cycle, unknown or contradictory bases)."""

    code = DiagnosticCode.INHERITANCE_ERROR


class LoweringError(SWCScanError):
    """A function body could not be lowered into a CFG."""

    code = DiagnosticCode.LOWERING_ERROR


class AnalysisError(SWCScanError):
    """Internal analysis failure, e.g. a fixed point that exceeded its bound."""

    code = DiagnosticCode.ANALYSIS_ERROR


class ScanCancelled(SWCScanError):
    """Raised at a cancellation checkpoint once the scan has been cancelled."""

    code = DiagnosticCode.SCAN_CANCELLED


class ConfigurationError(ValueError):
    """Invalid scan configuration. Raised before any analysis starts."""
