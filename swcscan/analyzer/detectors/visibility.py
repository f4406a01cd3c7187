"""Default visibility detectors — SWC-100, SWC-108."""

from __future__ import annotations

import re
from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.core.ir import SinkKind
from swcscan.core.types import Finding, Severity, SourceSpan, Visibility

VISIBILITY_RE = re.compile(r"\b(public|private|internal|external)\b")
DANGEROUS_SINKS = frozenset({SinkKind.SELFDESTRUCT, SinkKind.ETHER_TRANSFER, SinkKind.DELEGATECALL})


def _header(ctx: DetectorContext, span: SourceSpan, stop: str) -> str | None:
    """Declaration text up to the first character in ``stop``, if source is available."""
    if not ctx.unit.source or span.length <= 0:
        return None
    text = ctx.unit.source[span.offset:span.end].replace("=>", "  ")
    return re.split(f"[{re.escape(stop)}]", text, maxsplit=1)[0]


def _written_visibility_missing(ctx: DetectorContext, visibility: Visibility, span: SourceSpan, stop: str) -> bool:
    if visibility == Visibility.UNSPECIFIED:
        return True
    # Compilers fill in the default in the AST; the source text still shows whether it was written
    header = _header(ctx, span, stop)
    return header is not None and not VISIBILITY_RE.search(header)


@detector("SWC-100")
def function_default_visibility(ctx: DetectorContext) -> Iterator[Finding]:
    if not ctx.language.function_visibility_optional or ctx.contract.is_interface:
        return
    for func in ctx.contract.functions:
        if func.kind != "function":
            continue
        if not _written_visibility_missing(ctx, func.visibility, func.span, "{;"):
            continue
        reachable = ctx.symbols.reachable_sinks(ctx.contract.name, func)
        dangerous = sorted(s.value for s in reachable & DANGEROUS_SINKS)
        rationale = f"Function {func.name} has no visibility specifier and defaults to public."
        if dangerous:
            rationale += f" Anyone can reach its {', '.join(dangerous)} operation(s)."
        yield ctx.finding(
            func.span,
            rationale,
            function=func,
            severity=Severity.HIGH if dangerous else None,
            metadata={"sinks": dangerous},
        )


@detector("SWC-108")
def state_variable_default_visibility(ctx: DetectorContext) -> Iterator[Finding]:
    for var in ctx.contract.state_variables:
        if var.constant:
            continue
        if not _written_visibility_missing(ctx, var.visibility, var.span, "=;"):
            continue
        yield ctx.finding(
            var.span,
            f"State variable {var.name} has no visibility specifier and defaults to internal.",
            metadata={"variable": var.name},
        )
