"""Chain-attribute detectors — SWC-116, SWC-120."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import SinkKind
from swcscan.core.types import Confidence, Finding


@detector("SWC-116")
def block_values_as_time(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        for hit in fa.facts.hits(SinkKind.CONDITION, TaintKind.BLOCK_TIME):
            # Randomness built from the timestamp is reported as weak randomness instead
            if TaintKind.BLOCK_RANDOMNESS in hit.sources:
                continue
            strict = any(
                c.operator in ("==", "!=") for c in hit.statement.comparisons
                if c.reads & {"block.timestamp", "block.number"}
            )
            yield ctx.finding(
                hit.span,
                (
                    f"Control flow in {fa.name} depends on block.timestamp/block.number, "
                    f"which the block producer can shift."
                    + (" An exact equality on it can be made to never hold." if strict else "")
                ),
                function=fa,
                confidence=Confidence.HIGH if strict else None,
                metadata={"strict_equality": strict},
            )


@detector("SWC-120")
def weak_randomness(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        seen: set[tuple[int, int]] = set()
        for hit in fa.facts.taint_hits:
            key = (hit.block, hit.index)
            if key in seen:
                continue
            if TaintKind.BLOCK_RANDOMNESS in hit.sources:
                how = "derives a random value from chain attributes"
                confidence = Confidence.HIGH if hit.sink in (SinkKind.CONDITION, SinkKind.ETHER_TRANSFER) else None
            elif hit.sink == SinkKind.CONDITION and TaintKind.BLOCK_ATTRIBUTE in hit.sources:
                how = "branches on a block attribute the producer controls"
                confidence = Confidence.LOW
            else:
                continue
            seen.add(key)
            yield ctx.finding(
                hit.span,
                f"{fa.name} {how}; miners and validators can predict or bias it.",
                function=fa,
                confidence=confidence,
                metadata={"sink": hit.sink.value, "sources": sorted(s.value for s in hit.sources)},
            )
