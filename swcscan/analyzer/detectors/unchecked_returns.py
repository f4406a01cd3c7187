"""Unchecked return value detector — SWC-104."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.core.ir import CallKind, ResultUsage
from swcscan.core.types import Finding, Severity


@detector("SWC-104")
def unchecked_call_return(ctx: DetectorContext) -> Iterator[Finding]:
    """Every low-level call whose success flag never reaches a check."""
    for fa in ctx.analyzed(include_modifiers=True):
        for effect in fa.facts.call_effects:
            if effect.checked:
                continue
            call = effect.call
            how = "discarded" if call.usage == ResultUsage.DISCARDED else "never checked"
            rationale = f"Return value of {call.target + '.' if call.target else ''}{call.name}() is {how}; a failed call goes unnoticed."
            if effect.state_write_after:
                rationale += " State is updated afterwards as if the call succeeded."
            severity = None
            if call.kind in (CallKind.DELEGATECALL, CallKind.CALLCODE) or (call.sends_value and effect.state_write_after):
                severity = Severity.HIGH
            yield ctx.finding(
                call.span,
                rationale,
                function=fa,
                severity=severity,
                metadata={
                    "call_kind": call.kind.value,
                    "usage": call.usage.value,
                    "state_write_after": effect.state_write_after,
                },
            )
