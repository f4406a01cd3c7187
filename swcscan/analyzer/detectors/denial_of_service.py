"""Denial-of-service detectors — SWC-113, SWC-128."""

from __future__ import annotations

from typing import Any, Iterator

from swcscan.analyzer.base_detector import DetectorContext, FunctionAnalysis, detector
from swcscan.core.ir import EXTERNAL_CALLS, CallKind, CallSite, IRKind, root_name
from swcscan.core.types import Confidence, Finding, Severity, SourceSpan


def _reverting_calls(fa: FunctionAnalysis) -> Iterator[tuple[int, int, CallSite]]:
    """External calls whose failure reverts the whole transaction."""
    checks = {s.span: s for _, _, s in fa.live_statements() if s.kind in (IRKind.REQUIRE, IRKind.ASSERT)}
    effects = {e.call.id: e for e in fa.facts.call_effects}
    for block, index, stmt in fa.live_statements():
        for call in stmt.calls:
            if call.kind in (CallKind.TRANSFER, CallKind.HIGH_LEVEL):
                yield block, index, call
            elif call.is_low_level and call.kind != CallKind.STATICCALL:
                effect = effects.get(call.id)
                if effect is not None and effect.checked and effect.checked_at in checks:
                    yield block, index, call


@detector("SWC-113")
def dos_with_failed_call(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed():
        loops = fa.cfg.blocks_in_loops()
        for block, index, call in _reverting_calls(fa):
            where = f"{call.target + '.' if call.target else ''}{call.name}()"
            if block in loops:
                yield ctx.finding(
                    call.span,
                    f"{where} runs inside a loop in {fa.name}; one failing callee reverts every iteration.",
                    function=fa,
                    severity=Severity.HIGH if call.sends_value else None,
                    metadata={"call": call.name, "in_loop": True},
                )
                continue
            later = [
                c for _, _, s in fa.cfg.statements_after(block, index)
                for c in s.calls if c.kind in EXTERNAL_CALLS and c.id != call.id
            ]
            if not later:
                continue
            yield ctx.finding(
                call.span,
                f"{where} in {fa.name} must succeed before the next external call can run; a failing callee blocks it.",
                function=fa,
                confidence=Confidence.LOW,
                metadata={"call": call.name, "in_loop": False, "blocked": sorted({c.name for c in later})},
            )


def _length_reads(node: Any) -> Iterator[tuple[str, dict[str, Any]]]:
    if isinstance(node, list):
        for item in node:
            yield from _length_reads(item)
        return
    if not isinstance(node, dict):
        return
    if node.get("nodeType") == "MemberAccess" and node.get("memberName") == "length":
        name = root_name(node.get("expression"))
        if name:
            yield name, node
    for value in node.values():
        if isinstance(value, (dict, list)):
            yield from _length_reads(value)


def _growers(ctx: DetectorContext, array: str) -> list[str]:
    """Functions anyone can call that append to ``array``."""
    out = []
    for fa in ctx.analyzed():
        if not fa.function.is_externally_reachable or ctx.is_access_controlled(fa):
            continue
        for _, _, stmt in fa.live_statements():
            if any(c.name == "push" and c.target.split("[")[0].split(".")[0] == array for c in stmt.calls):
                out.append(fa.name)
                break
    return out


@detector("SWC-128")
def dos_block_gas_limit(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed():
        cfg = fa.cfg
        # for/while conditions sit in the header; do-while conditions branch back to it
        conditions = set(cfg.loop_headers) | {
            b for b in cfg.blocks_in_loops() if any(s in cfg.loop_headers for s in cfg.blocks[b].successors)
        }
        for header in sorted(conditions):
            term = cfg.blocks[header].terminator
            if term is None or term.kind != IRKind.BRANCH:
                continue
            for name, node in _length_reads(term.value):
                var = ctx.symbols.lookup_state_variable(ctx.contract.name, name)
                if var is None or not var.type.is_array or not var.type.is_dynamic or not fa.scope.is_state(name):
                    continue
                growers = _growers(ctx, name)
                rationale = f"Loop in {fa.name} iterates over the whole of {name}, which only grows."
                if growers:
                    rationale += f" Anyone can append to it through {', '.join(sorted(growers))}."
                yield ctx.finding(
                    SourceSpan.from_src(node.get("src")) if node.get("src") else term.span,
                    rationale,
                    function=fa,
                    severity=Severity.HIGH if growers else None,
                    confidence=Confidence.HIGH if growers else None,
                    metadata={"array": name, "growers": sorted(growers)},
                )
