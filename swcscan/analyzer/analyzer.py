"""Scan orchestrator — resolves units, analyses contracts in parallel, aggregates.

Pipeline:
  1. Adapter check: units that cannot be analysed become FATAL_ADAPTER_ERROR
     diagnostics; the rest continue
  2. Resolution: one symbol table for all units (linearization, layouts,
     shadowing)
  3. Per contract, on a worker thread: CFG + dataflow for every function and
     modifier, then every enabled detector over the resulting snapshot
  4. Aggregation: dedup, suppression, deterministic ranking
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Sequence

from swcscan.analyzer.aggregator import aggregate
from swcscan.analyzer.base_detector import AnalysisSnapshot, DetectorSpec, FunctionAnalysis
from swcscan.analyzer.registry import DetectorRegistry
from swcscan.core.adapter import CompilationUnit, Suppression, parse_suppressions, validate_unit
from swcscan.core.cancel import CancellationToken
from swcscan.core.cfg import build_cfg
from swcscan.core.config import ScanConfig, get_settings
from swcscan.core.dataflow import analyze_function
from swcscan.core.errors import (
    AnalysisError,
    FatalAdapterError,
    LoweringError,
    ScanCancelled,
)
from swcscan.core.logging import bind_scan_id, setup_logging
from swcscan.core.pragma import LanguageContext
from swcscan.core.resolver import Contract, Function, Resolution, Resolver, SymbolTable
from swcscan.core.types import Diagnostic, DiagnosticCode, Finding, ScanResult

logger = logging.getLogger(__name__)


@dataclass
class ContractOutcome:
    """What one worker produced for one contract."""
    contract: str
    findings: list[Finding] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    functions_analyzed: int = 0
    detectors_run: int = 0
    cancelled: bool = False


class Analyzer:
    """Run every enabled detector over a set of compilation units.

    Configuration is validated eagerly: an unknown detector id or a
    contradictory override raises ``ConfigurationError`` from the
    constructor, before any analysis starts. Everything else is reported as
    diagnostics on the returned ``ScanResult``.
    """

    def __init__(
        self,
        config: ScanConfig | None = None,
        registry: DetectorRegistry | None = None,
    ) -> None:
        self._config = config or ScanConfig.from_settings()
        self._registry = registry or DetectorRegistry()
        self._config.validate_against(self._registry.ids())

    @property
    def config(self) -> ScanConfig:
        return self._config

    def enabled_detectors(self) -> list[DetectorSpec]:
        return [d for d in self._registry.get_all() if self._config.is_enabled(d.detector_id)]

    def language_for(self, unit: CompilationUnit) -> LanguageContext:
        constraint = unit.constraint()
        return self._config.language_for(constraint.minimum_version if constraint else None)

    # ── Entry points ─────────────────────────────────────────────────

    def analyze(
        self,
        units: Sequence[CompilationUnit],
        scan_id: str = "",
        cancel: CancellationToken | None = None,
    ) -> ScanResult:
        """Synchronous wrapper around ``analyze_async``."""
        return asyncio.run(self.analyze_async(units, scan_id=scan_id, cancel=cancel))

    async def analyze_async(
        self,
        units: Sequence[CompilationUnit],
        scan_id: str = "",
        cancel: CancellationToken | None = None,
    ) -> ScanResult:
        scan_id = scan_id or uuid.uuid4().hex[:12]
        with bind_scan_id(scan_id):
            return await self._scan(units, scan_id, cancel or CancellationToken())

    async def _scan(
        self,
        units: Sequence[CompilationUnit],
        scan_id: str,
        cancel: CancellationToken,
    ) -> ScanResult:
        start_time = time.monotonic()
        log_extra = {"scan_id": scan_id}
        logger.info("Scan started with %d unit(s)", len(units), extra=log_extra)

        # ── Adapter check ────────────────────────────────────────────
        diagnostics: list[Diagnostic] = []
        accepted: list[CompilationUnit] = []
        for unit in units:
            try:
                validate_unit(unit)
            except FatalAdapterError as e:
                logger.warning("Skipping %s: %s", unit.file_path, e.message, extra=log_extra)
                diagnostics.append(e.to_diagnostic())
                continue
            accepted.append(unit)

        suppressions: dict[str, tuple[Suppression, ...]] = {
            u.file_path: u.suppressions or parse_suppressions(u.source) for u in accepted
        }

        # ── Resolution ───────────────────────────────────────────────
        resolution = Resolver(self.language_for).resolve(accepted)
        diagnostics.extend(resolution.diagnostics)
        contracts = sorted(resolution.symbols, key=lambda c: (c.file_path, c.name))
        detectors = self.enabled_detectors()

        # ── Per-contract workers ─────────────────────────────────────
        semaphore = asyncio.Semaphore(self._config.max_workers)

        async def _run_one(contract: Contract) -> ContractOutcome:
            async with semaphore:
                if cancel.cancelled:
                    return ContractOutcome(contract=contract.name, cancelled=True)
                return await asyncio.to_thread(
                    self._analyze_contract, contract, resolution, detectors, cancel, scan_id,
                )

        tasks = [asyncio.create_task(_run_one(c)) for c in contracts]
        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=self._config.timeout_seconds)
            if pending:
                logger.warning(
                    "Scan timed out after %.1fs; cancelling %d contract(s)",
                    self._config.timeout_seconds or 0.0, len(pending), extra=log_extra,
                )
                cancel.cancel("scan timeout")
                await asyncio.wait(pending)
        outcomes = [t.result() for t in tasks]

        # ── Aggregation ──────────────────────────────────────────────
        all_findings: list[Finding] = []
        cancelled_contracts: list[str] = []
        for outcome in outcomes:
            all_findings.extend(outcome.findings)
            diagnostics.extend(outcome.diagnostics)
            if outcome.cancelled:
                cancelled_contracts.append(outcome.contract)
        if cancelled_contracts:
            diagnostics.append(Diagnostic(
                code=DiagnosticCode.SCAN_CANCELLED,
                message=(
                    f"Scan cancelled ({cancel.reason}); partial results for "
                    f"{', '.join(sorted(cancelled_contracts))}"
                ),
            ))

        merged = aggregate(all_findings, suppressions)
        duration = time.monotonic() - start_time
        result = ScanResult(
            scan_id=scan_id,
            findings=merged.findings,
            diagnostics=sorted(diagnostics, key=_diagnostic_key),
            suppressed_count=merged.suppressed_count,
            duplicate_count=merged.duplicate_count,
            units_analyzed=len(accepted),
            contracts_analyzed=len(contracts),
            functions_analyzed=sum(o.functions_analyzed for o in outcomes),
            detectors_run=len(detectors),
            cancelled=cancel.cancelled,
            scan_duration_seconds=duration,
            metadata={
                "inheritance_failures": sorted(resolution.failed),
            },
        )
        logger.info(
            "Scan finished: %d finding(s), %d diagnostic(s)",
            len(result.findings), len(result.diagnostics),
            extra={**log_extra, "duration_ms": round(duration * 1000, 1)},
        )
        return result

    # ── Worker ───────────────────────────────────────────────────────

    def _analyze_contract(
        self,
        contract: Contract,
        resolution: Resolution,
        detectors: Sequence[DetectorSpec],
        cancel: CancellationToken,
        scan_id: str,
    ) -> ContractOutcome:
        """Runs on a worker thread; owns this contract's CFGs and facts."""
        outcome = ContractOutcome(contract=contract.name)
        start = time.monotonic()
        log_extra = {"scan_id": scan_id, "contract": contract.name}
        try:
            snapshot = self._build_snapshot(contract, resolution, cancel, outcome)
            for spec in detectors:
                cancel.check(contract.name)
                outcome.detectors_run += 1
                outcome.findings.extend(self._run_detector(spec, snapshot, outcome, scan_id))
        except ScanCancelled:
            outcome.cancelled = True
            logger.info("Contract analysis cancelled", extra=log_extra)
        except Exception as e:
            logger.exception("Analysis of %s failed", contract.name, extra=log_extra)
            outcome.diagnostics.append(Diagnostic(
                code=DiagnosticCode.ANALYSIS_ERROR,
                message=f"Analysis of {contract.name} failed: {e}",
                file_path=contract.file_path,
                contract=contract.name,
            ))
        logger.debug(
            "Contract analyzed: %d finding(s)", len(outcome.findings),
            extra={**log_extra, "duration_ms": round((time.monotonic() - start) * 1000, 1)},
        )
        return outcome

    def _build_snapshot(
        self,
        contract: Contract,
        resolution: Resolution,
        cancel: CancellationToken,
        outcome: ContractOutcome,
    ) -> AnalysisSnapshot:
        symbols = resolution.symbols
        unit = resolution.unit_of(contract)
        if unit is None:
            raise AnalysisError(f"No compilation unit for {contract.name}", contract=contract.name)

        functions = []
        for func in contract.functions:
            cancel.check(contract.name)
            functions.append(self._analyze_function(contract, func, symbols, cancel, outcome))
        modifiers = []
        for mod in contract.modifiers:
            cancel.check(contract.name)
            modifiers.append(self._analyze_function(contract, mod, symbols, cancel, outcome))

        # Inherited modifiers are analysed again here so guard queries see their bodies;
        # their errors are reported with the contract that declares them
        visible: dict[str, FunctionAnalysis] = {}
        for base_name in reversed(contract.linearization[1:]):
            base = symbols.get(base_name)
            if base is None:
                continue
            for mod in base.modifiers:
                cancel.check(contract.name)
                visible[mod.name] = self._analyze_function(contract, mod, symbols, cancel, None)
        for fa in modifiers:
            visible[fa.name] = fa

        return AnalysisSnapshot(
            contract=contract,
            symbols=symbols,
            unit=unit,
            language=contract.language,
            min_safe_version=self._config.min_safe_version,
            functions=tuple(functions),
            modifiers=tuple(modifiers),
            visible_modifiers=visible,
        )

    def _analyze_function(
        self,
        contract: Contract,
        func: Function,
        symbols: SymbolTable,
        cancel: CancellationToken,
        outcome: ContractOutcome | None,
    ) -> FunctionAnalysis:
        scope = symbols.scope_for(func)
        if not func.implemented or func.body is None:
            return FunctionAnalysis(function=func, scope=scope)
        try:
            cfg = build_cfg(func.qualified_name, func.body, scope, func.implemented)
            facts = analyze_function(
                cfg, scope, contract.language,
                externally_reachable=func.is_externally_reachable,
                cancel=cancel,
            )
        except (LoweringError, AnalysisError) as e:
            if outcome is not None:
                e.file_path = e.file_path or contract.file_path
                e.contract = e.contract or func.contract
                e.function = func.name
                outcome.diagnostics.append(e.to_diagnostic())
                logger.warning(
                    "Skipping %s: %s", func.qualified_name, e.message,
                    extra={"contract": contract.name},
                )
            return FunctionAnalysis(function=func, scope=scope)
        if outcome is not None:
            outcome.functions_analyzed += 1
        return FunctionAnalysis(function=func, scope=scope, cfg=cfg, facts=facts)

    def _run_detector(
        self,
        spec: DetectorSpec,
        snapshot: AnalysisSnapshot,
        outcome: ContractOutcome,
        scan_id: str,
    ) -> list[Finding]:
        contract = snapshot.contract
        start = time.monotonic()
        try:
            findings = spec.run(snapshot)
        except ScanCancelled:
            raise
        except Exception as e:
            logger.exception(
                "Detector %s failed on %s", spec.detector_id, contract.name,
                extra={"scan_id": scan_id, "contract": contract.name, "detector_id": spec.detector_id},
            )
            outcome.diagnostics.append(Diagnostic(
                code=DiagnosticCode.DETECTOR_FAILED,
                message=f"{type(e).__name__}: {e}",
                file_path=contract.file_path,
                contract=contract.name,
                detector_id=spec.detector_id,
            ))
            return []

        override = self._config.severity_for(spec.detector_id)
        if override is not None:
            findings = [f if f.severity == override else f.model_copy(update={"severity": override}) for f in findings]
        logger.debug(
            "Detector produced %d finding(s)", len(findings),
            extra={
                "scan_id": scan_id, "contract": contract.name, "detector_id": spec.detector_id,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return findings


def _diagnostic_key(d: Diagnostic) -> tuple:
    return (d.file_path, d.contract or "", d.function or "", d.code.value, d.detector_id or "", d.message)


def analyze(
    units: Sequence[CompilationUnit],
    config: ScanConfig | None = None,
    registry: DetectorRegistry | None = None,
    *,
    configure_logging: bool = False,
) -> ScanResult:
    """Convenience function: one-shot scan with a fresh analyzer.

    With ``configure_logging`` the root logger is set up from ``Settings``
    first (JSON lines in ci/production, colored output otherwise).
    """
    if configure_logging:
        settings = get_settings()
        setup_logging(env=settings.app_env, log_level=settings.log_level)
    return Analyzer(config, registry).analyze(units)
