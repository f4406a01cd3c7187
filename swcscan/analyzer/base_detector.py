"""Detector plumbing: the immutable per-contract snapshot and the ``@detector`` tag.

A detector is a plain function taking a ``DetectorContext`` and yielding
findings::

    @detector("SWC-104")
    def unchecked_call_return(ctx: DetectorContext) -> Iterator[Finding]:
        for fa in ctx.analyzed():
            ...
            yield ctx.finding(span, "Return value of call() is ignored", function=fa)

The decorator attaches a ``DetectorSpec`` to the function; the registry finds
it by walking the ``detectors`` package. Detectors only read the snapshot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping

from swcscan.analyzer.catalog import VulnerabilityClass, get_class
from swcscan.core.adapter import CompilationUnit
from swcscan.core.cfg import CFG
from swcscan.core.dataflow import FunctionFacts
from swcscan.core.ir import CallKind, IRStatement
from swcscan.core.pragma import LanguageContext, Version
from swcscan.core.resolver import Contract, Function, FunctionScope, SymbolTable
from swcscan.core.types import Confidence, Finding, Location, Severity, SourceSpan

GUARD_NAME_RE = re.compile(
    r"^(only[A-Z_]\w*|auth\w*|_?check(Owner|Role|Admin|Auth|Caller)\w*|_?require(Owner|Admin|Auth|Role)\w*|isOwner)$"
)
AUTH_GLOBALS = frozenset({"msg.sender", "tx.origin"})


# ── Snapshot ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FunctionAnalysis:
    """A function or modifier with its CFG and dataflow facts.

    ``cfg`` and ``facts`` are None when the body could not be lowered or the
    function has no body.
    """

    function: Function
    scope: FunctionScope = field(compare=False, repr=False)
    cfg: CFG | None = field(default=None, compare=False, repr=False)
    facts: FunctionFacts | None = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def analyzed(self) -> bool:
        return self.cfg is not None and self.facts is not None

    def live_statements(self) -> Iterator[tuple[int, int, IRStatement]]:
        """Statements in blocks reachable from the entry."""
        if self.cfg is None:
            return
        live = set(self.cfg.reverse_postorder())
        for bid, i, stmt in self.cfg.statements():
            if bid in live:
                yield bid, i, stmt


@dataclass(frozen=True)
class AnalysisSnapshot:
    """Everything detectors may look at for one contract. Never mutated."""

    contract: Contract
    symbols: SymbolTable
    unit: CompilationUnit
    language: LanguageContext
    min_safe_version: Version
    functions: tuple[FunctionAnalysis, ...] = ()
    modifiers: tuple[FunctionAnalysis, ...] = ()
    visible_modifiers: Mapping[str, FunctionAnalysis] = field(default_factory=dict)

    def modifier(self, name: str) -> FunctionAnalysis | None:
        return self.visible_modifiers.get(name)


# ── Detector spec ────────────────────────────────────────────────────────────


DetectorFunc = Callable[["DetectorContext"], Iterable[Finding]]


@dataclass(frozen=True)
class DetectorSpec:
    detector_id: str
    class_id: str
    name: str
    severity: Severity
    confidence: Confidence
    func: DetectorFunc = field(compare=False, repr=False)

    @property
    def entry(self) -> VulnerabilityClass:
        return get_class(self.class_id)

    def run(self, snapshot: AnalysisSnapshot) -> list[Finding]:
        return list(self.func(DetectorContext(snapshot, self)))


def detector(
    class_id: str,
    *,
    detector_id: str | None = None,
    severity: Severity | None = None,
    confidence: Confidence | None = None,
) -> Callable[[DetectorFunc], DetectorFunc]:
    """Tag a function as the detector for ``class_id``.

    Severity and confidence default to the catalog entry.
    """
    entry = get_class(class_id)

    def wrap(func: DetectorFunc) -> DetectorFunc:
        func.__detector_spec__ = DetectorSpec(  # type: ignore[attr-defined]
            detector_id=detector_id or class_id,
            class_id=class_id,
            name=func.__name__,
            severity=severity or entry.severity,
            confidence=confidence or entry.confidence,
            func=func,
        )
        return func

    return wrap


# ── Context ──────────────────────────────────────────────────────────────────


class DetectorContext:
    """Read-only helpers a detector uses against one snapshot."""

    def __init__(self, snapshot: AnalysisSnapshot, spec: DetectorSpec) -> None:
        self.snapshot = snapshot
        self.spec = spec

    @property
    def contract(self) -> Contract:
        return self.snapshot.contract

    @property
    def symbols(self) -> SymbolTable:
        return self.snapshot.symbols

    @property
    def language(self) -> LanguageContext:
        return self.snapshot.language

    @property
    def unit(self) -> CompilationUnit:
        return self.snapshot.unit

    def analyzed(self, include_modifiers: bool = False) -> Iterator[FunctionAnalysis]:
        """Own functions (and optionally modifiers) that have a CFG and facts."""
        items = self.snapshot.functions + (self.snapshot.modifiers if include_modifiers else ())
        for fa in items:
            if fa.analyzed:
                yield fa

    def finding(
        self,
        span: SourceSpan,
        rationale: str,
        *,
        function: FunctionAnalysis | Function | str | None = None,
        severity: Severity | None = None,
        confidence: Confidence | None = None,
        remediation: str | None = None,
        related: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> Finding:
        """Build a finding with this detector's class, defaults and location."""
        if isinstance(function, FunctionAnalysis):
            func_name: str | None = function.function.name
        elif isinstance(function, Function):
            func_name = function.name
        else:
            func_name = function
        start, end = self.unit.line_range(span)
        entry = self.spec.entry
        return Finding(
            class_id=self.spec.class_id,
            title=entry.title,
            detector_id=self.spec.detector_id,
            severity=severity or self.spec.severity,
            confidence=confidence or self.spec.confidence,
            location=Location(
                file_path=self.contract.file_path,
                contract=self.contract.name,
                function=func_name,
                span=span,
                start_line=start,
                end_line=end,
                snippet=self.unit.snippet(span),
            ),
            rationale=rationale,
            remediation=entry.remediation if remediation is None else remediation,
            related_contracts=tuple(sorted(set(related))),
            metadata=metadata or {},
        )

    # ── access control ───────────────────────────────────────────────

    def is_guard_statement(self, stmt: IRStatement, scope: FunctionScope) -> bool:
        """A check that compares the caller against contract state or a constant."""
        if not stmt.is_check:
            return False
        for cmp in stmt.comparisons:
            if not cmp.is_equality:
                continue
            for mine, other in cmp.sides():
                if mine & AUTH_GLOBALS and not (other & AUTH_GLOBALS) and (
                    not other or any(scope.is_state(r) for r in other)
                ):
                    return True
        # ``require(admins[msg.sender])``
        return bool(stmt.reads & AUTH_GLOBALS) and any(
            scope.is_state(r) for r in stmt.reads - AUTH_GLOBALS
        ) and not stmt.comparisons

    def has_inline_guard(self, fa: FunctionAnalysis) -> bool:
        return any(self.is_guard_statement(s, fa.scope) for _, _, s in fa.live_statements())

    def guarding_modifiers(self, fa: FunctionAnalysis) -> list[str]:
        """Names of modifiers on ``fa`` that restrict the caller."""
        out = []
        for call in fa.function.modifiers:
            mod = self.snapshot.modifier(call.name)
            if GUARD_NAME_RE.match(call.name):
                out.append(call.name)
            elif mod is not None and mod.analyzed and self.has_inline_guard(mod):
                out.append(call.name)
        return out

    def is_access_controlled(self, fa: FunctionAnalysis) -> bool:
        """True if the caller is restricted by a modifier, an inline check or a guard helper."""
        if self.guarding_modifiers(fa) or self.has_inline_guard(fa):
            return True
        for _, _, stmt in fa.live_statements():
            for call in stmt.calls_of(CallKind.INTERNAL):
                if GUARD_NAME_RE.match(call.name):
                    return True
                callee = self.symbols.lookup_function(self.contract.name, call.name)
                if callee is not None and callee is not fa.function and self._helper_guards(callee):
                    return True
        return False

    def _helper_guards(self, callee: Function) -> bool:
        # One level into internal helpers such as ``_onlyOwner()``
        for fa in self.snapshot.functions:
            if fa.function == callee:
                return fa.analyzed and self.has_inline_guard(fa)
        return False
