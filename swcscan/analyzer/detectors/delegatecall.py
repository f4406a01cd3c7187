"""Control-flow hijack detectors — SWC-112, SWC-127."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, FunctionAnalysis, detector
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import IRKind, SinkKind
from swcscan.core.types import Confidence, Finding, Severity

UNTRUSTED = frozenset({TaintKind.CALLDATA, TaintKind.MSG_DATA, TaintKind.EXTERNAL_RETURN})


@detector("SWC-112")
def delegatecall_to_untrusted_callee(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed():
        for hit in fa.facts.hits(SinkKind.DELEGATECALL):
            sources = hit.sources & UNTRUSTED
            if not sources or hit.call is None:
                continue
            guarded = not fa.function.is_externally_reachable or ctx.is_access_controlled(fa)
            origin = ", ".join(sorted(s.value for s in sources))
            if guarded:
                rationale = f"{hit.call.name} target in {fa.name} comes from {origin}; only restricted callers can choose it."
                severity, confidence = Severity.MEDIUM, Confidence.LOW
            else:
                rationale = f"Any caller of {fa.name} chooses the {hit.call.name} target ({origin}) and runs code with this contract's storage."
                severity, confidence = None, None
            yield ctx.finding(
                hit.call.span,
                rationale,
                function=fa,
                severity=severity,
                confidence=confidence,
                metadata={"call": hit.call.name, "sources": sorted(s.value for s in sources), "guarded": guarded},
            )


def _is_function_typed(fa: FunctionAnalysis, name: str) -> bool:
    desc = fa.scope.type_of(name)
    return desc is not None and desc.is_function


@detector("SWC-127")
def arbitrary_jump(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        taint = fa.facts.taint_analysis
        for block, index, stmt in fa.live_statements():
            for name in stmt.yul_assigned:
                if _is_function_typed(fa, name):
                    yield ctx.finding(
                        stmt.span,
                        f"Inline assembly in {fa.name} assigns the function-type variable {name}; calling it can jump anywhere.",
                        function=fa,
                        metadata={"variable": name, "via": "assembly"},
                    )

            if stmt.kind != IRKind.ASSIGN or taint is None:
                continue
            targets = [t for t in stmt.targets if _is_function_typed(fa, t)]
            if not targets:
                continue
            sources = taint.evaluate(stmt.value, fa.facts.taint.before(block, index)) & UNTRUSTED
            if not sources:
                continue
            yield ctx.finding(
                stmt.span,
                f"{fa.name} assigns the function-type variable {targets[0]} from {', '.join(sorted(s.value for s in sources))}.",
                function=fa,
                confidence=Confidence.MEDIUM,
                metadata={"variable": targets[0], "via": "assignment", "sources": sorted(s.value for s in sources)},
            )
