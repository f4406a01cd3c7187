"""Integer overflow / underflow detector — SWC-101."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, FunctionAnalysis, detector
from swcscan.core.dataflow import OverflowCandidate
from swcscan.core.resolver import TypeDescriptor
from swcscan.core.types import Confidence, Finding


def _guarded(fa: FunctionAnalysis, cand: OverflowCandidate) -> bool:
    """A bounds check relates the operands (``require(a >= b)`` / SafeMath post-check)."""
    operands = set(cand.operands)
    if not operands:
        return False
    targets = set(cand.statement.targets)
    for _, _, stmt in fa.live_statements():
        if not stmt.is_check:
            continue
        for cmp in stmt.comparisons:
            if operands <= cmp.reads:
                return True
            if targets & cmp.reads and operands & cmp.reads:
                return True
    return False


@detector("SWC-101")
def integer_overflow(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        for cand in fa.facts.overflow_candidates:
            if not cand.definite and _guarded(fa, cand):
                continue
            direction = "overflow" if cand.high > TypeDescriptor.from_type_string(cand.type_name).max_value else "underflow"
            if cand.definite:
                confidence = Confidence.HIGH
                verb = "always"
            elif cand.precise:
                confidence = Confidence.MEDIUM
                verb = "can"
            else:
                confidence = Confidence.LOW
                verb = "may"
            context = "an unchecked block" if cand.statement.unchecked else f"compiler {ctx.language.version}"
            yield ctx.finding(
                cand.span,
                (
                    f"'{cand.operator}' on {cand.type_name} {verb} {direction} in {context}: "
                    f"result range [{cand.low}, {cand.high}] exceeds the type."
                ),
                function=fa,
                confidence=confidence,
                metadata={
                    "operator": cand.operator,
                    "type": cand.type_name,
                    "direction": direction,
                    "definite": cand.definite,
                },
            )

        ranges = fa.facts.range_analysis
        for cmp in fa.facts.comparison_candidates:
            if ranges is None or not ranges.unchecked_at(cmp.statement):
                continue
            yield ctx.finding(
                cmp.span,
                (
                    f"{cmp.variable} ({cmp.type_name}) is compared with {cmp.constant}, "
                    f"which the type cannot represent; the variable wraps before the condition changes."
                ),
                function=fa,
                confidence=Confidence.MEDIUM,
                metadata={"variable": cmp.variable, "type": cmp.type_name, "constant": cmp.constant},
            )
