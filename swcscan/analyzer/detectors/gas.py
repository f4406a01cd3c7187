"""Gas detectors — SWC-126, SWC-134."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import CallKind, SinkKind
from swcscan.core.types import Confidence, Finding

FORWARDED = frozenset({TaintKind.CALLDATA, TaintKind.MSG_DATA})
STIPEND = 2300


@detector("SWC-126")
def insufficient_gas_griefing(ctx: DetectorContext) -> Iterator[Finding]:
    """Relayed calls whose sub-call can be starved of gas by the relayer."""
    for fa in ctx.analyzed():
        if not fa.function.is_externally_reachable:
            continue
        checks_gas = any(s.is_check and "gasleft" in s.reads for _, _, s in fa.live_statements())
        if checks_gas:
            continue
        effects = {e.call.id: e for e in fa.facts.call_effects}
        for hit in fa.facts.hits(SinkKind.LOW_LEVEL_CALL):
            call = hit.call
            if call is None or call.kind != CallKind.CALL or call.gas_option:
                continue
            if not hit.sources & FORWARDED:
                continue
            effect = effects.get(call.id)
            outcome_ignored = effect is not None and not effect.checked
            yield ctx.finding(
                call.span,
                (
                    f"{fa.name} forwards caller-supplied data in {call.target or 'a'}.call() without checking "
                    f"gasleft(); the sender can supply just enough gas for the outer call to succeed."
                ),
                function=fa,
                confidence=Confidence.MEDIUM if outcome_ignored else None,
                metadata={"outcome_checked": not outcome_ignored},
            )


@detector("SWC-134")
def hardcoded_gas(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        for _, _, stmt in fa.live_statements():
            for call in stmt.calls:
                if call.kind in (CallKind.TRANSFER, CallKind.SEND):
                    yield ctx.finding(
                        call.span,
                        (
                            f"{call.target}.{call.name}() forwards a fixed {STIPEND} gas stipend; "
                            f"recipients whose fallback needs more gas will fail."
                        ),
                        function=fa,
                        metadata={"call": call.name, "gas": STIPEND},
                    )
                elif call.gas_literal is not None:
                    yield ctx.finding(
                        call.span,
                        f"{call.name}() is given a hardcoded gas amount ({call.gas_literal}); gas costs change between forks.",
                        function=fa,
                        metadata={"call": call.name, "gas": call.gas_literal},
                    )
