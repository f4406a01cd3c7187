"""Compiler pragma detectors — SWC-102, SWC-103.

Both report once per compilation unit, attached to the first non-library
contract declared in it.
"""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.core.types import Finding


def _reports_for_unit(ctx: DetectorContext) -> bool:
    for node in ctx.unit.contract_nodes:
        if node.get("contractKind", "contract") == "library":
            continue
        return node.get("name") == ctx.contract.name
    return False


@detector("SWC-102")
def outdated_compiler_version(ctx: DetectorContext) -> Iterator[Finding]:
    if not _reports_for_unit(ctx):
        return
    constraint = ctx.unit.constraint()
    if constraint is None:
        return
    minimum = constraint.minimum_version
    safe = ctx.snapshot.min_safe_version
    if minimum >= safe:
        return
    yield ctx.finding(
        ctx.unit.pragma_span,
        f"Pragma '{constraint.raw}' admits compiler {minimum}, older than the minimum safe version {safe}.",
        metadata={"pragma": constraint.raw, "minimum_version": str(minimum), "min_safe_version": str(safe)},
    )


@detector("SWC-103")
def floating_pragma(ctx: DetectorContext) -> Iterator[Finding]:
    if not _reports_for_unit(ctx):
        return
    constraint = ctx.unit.constraint()
    if constraint is None or not constraint.is_floating:
        return
    yield ctx.finding(
        ctx.unit.pragma_span,
        f"Pragma '{constraint.raw}' is not locked to a single compiler version.",
        metadata={"pragma": constraint.raw},
    )
