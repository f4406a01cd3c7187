"""Signature detectors — SWC-117, SWC-121, SWC-133.

Signature handling is followed by name: the variables handed to
``ecrecover`` (or an ECDSA ``recover`` helper) and everything assigned from
them inside the same function.
"""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, FunctionAnalysis, detector
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import HASH_FUNCTIONS, CallSite, IRKind, SinkKind
from swcscan.core.resolver import TypeDescriptor
from swcscan.core.types import Confidence, Finding

RECOVER_NAMES = frozenset({"ecrecover", "recover", "tryRecover"})
REPLAY_MARKERS = ("nonce", "used", "executed", "processed", "claimed", "consumed")
CHECK_SINKS = frozenset({SinkKind.SIGNATURE_INPUT, SinkKind.HASH_COMPARISON, SinkKind.AUTH_CHECK, SinkKind.CONDITION})


def _recover_calls(fa: FunctionAnalysis) -> list[CallSite]:
    return [c for _, _, s in fa.live_statements() for c in s.calls if c.name in RECOVER_NAMES]


def _argument_reads(call: CallSite, positions: slice) -> set[str]:
    out: set[str] = set()
    for arg in (call.node.get("arguments") or [])[positions]:
        out |= _reads_of(arg)
    return out


def _reads_of(node: object) -> set[str]:
    """Identifier names under an expression node."""
    out: set[str] = set()
    stack = [node]
    while stack:
        cur = stack.pop()
        if isinstance(cur, list):
            stack.extend(cur)
        elif isinstance(cur, dict):
            if cur.get("nodeType") == "Identifier" and cur.get("name"):
                out.add(cur["name"])
            stack.extend(v for v in cur.values() if isinstance(v, (dict, list)))
    return out


def _derived(fa: FunctionAnalysis, seeds: set[str]) -> set[str]:
    """``seeds`` plus every local assigned from them."""
    names = set(seeds)
    changed = True
    while changed:
        changed = False
        for _, _, stmt in fa.live_statements():
            if stmt.kind != IRKind.ASSIGN or stmt.state_targets or not stmt.reads & names:
                continue
            new = set(stmt.targets) - names
            if new:
                names |= new
                changed = True
    return names


def _sources(fa: FunctionAnalysis, sinks: set[str]) -> set[str]:
    """``sinks`` plus every variable they were assigned from."""
    names = set(sinks)
    changed = True
    while changed:
        changed = False
        for _, _, stmt in fa.live_statements():
            if stmt.kind != IRKind.ASSIGN or not set(stmt.targets) & names:
                continue
            new = set(stmt.reads) - names
            if new:
                names |= new
                changed = True
    return names


# ── SWC-117 ──────────────────────────────────────────────────────────────────


@detector("SWC-117")
def signature_malleability(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed():
        calls = _recover_calls(fa)
        if not calls:
            continue
        seeds: set[str] = set()
        for call in calls:
            # ecrecover(hash, v, r, s) / recover(hash, signature)
            seeds |= _argument_reads(call, slice(1, None))
        if not seeds:
            continue
        # r and s usually come out of the signature bytes
        seeds = _sources(fa, seeds) & (set(fa.scope.locals) | set(fa.scope.parameters))
        if any(set(s.yul_assigned) & seeds for _, _, s in fa.live_statements()):
            seeds |= {p for p in fa.scope.parameters if fa.scope.type_string(p).split(" ")[0] == "bytes"}
        tainted = _derived(fa, seeds)
        for _, _, stmt in fa.live_statements():
            if stmt.kind != IRKind.ASSIGN or not stmt.state_targets or not stmt.indexed_write:
                continue
            keys = stmt.index_reads & tainted
            if not keys:
                continue
            yield ctx.finding(
                stmt.span,
                (
                    f"{fa.name} records {', '.join(stmt.state_targets)} keyed by the signature itself "
                    f"({', '.join(sorted(keys))}); a second valid encoding of the same signature bypasses it."
                ),
                function=fa,
                metadata={"keys": sorted(keys), "mapping": list(stmt.state_targets)},
            )


# ── SWC-121 ──────────────────────────────────────────────────────────────────


def _has_marker(name: str) -> bool:
    lower = name.lower()
    return any(m in lower for m in REPLAY_MARKERS)


@detector("SWC-121")
def signature_replay(ctx: DetectorContext) -> Iterator[Finding]:
    contract_markers = any(_has_marker(v.name) for v in ctx.contract.state_variables)
    for fa in ctx.analyzed():
        if not fa.function.is_externally_reachable:
            continue
        calls = _recover_calls(fa)
        if not calls:
            continue
        message: set[str] = set()
        for call in calls:
            message |= _argument_reads(call, slice(0, 1))
        # Only hash-valued variables identify a message; its inputs may be anything
        message = {n for n in _sources(fa, message) if fa.scope.type_string(n) == "bytes32"}

        protected = False
        for _, _, stmt in fa.live_statements():
            if not stmt.state_targets:
                continue
            hashed_key = stmt.indexed_write and any(c.name in HASH_FUNCTIONS for c in stmt.calls)
            if any(_has_marker(t) for t in stmt.state_targets) or stmt.index_reads & message or hashed_key:
                protected = True
                break
        if protected:
            continue
        yield ctx.finding(
            calls[0].span,
            (
                f"{fa.name} accepts a signed message without recording a nonce or the message hash; "
                f"the same signature can be submitted again."
            ),
            function=fa,
            confidence=Confidence.LOW if contract_markers else Confidence.MEDIUM,
            metadata={"recover_calls": len(calls)},
        )


# ── SWC-133 ──────────────────────────────────────────────────────────────────


def _dynamic_arguments(call: CallSite) -> list[str]:
    out = []
    for ts in call.arg_types:
        if not ts or ts.startswith(("literal_", "mapping")):
            continue
        if TypeDescriptor.from_type_string(ts).is_dynamic:
            out.append(ts)
    return out


@detector("SWC-133")
def packed_hash_collision(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        packed_hits = [h for h in fa.facts.taint_hits if TaintKind.PACKED_HASH in h.sources]
        feeds_check = any(h.sink in CHECK_SINKS for h in packed_hits)
        feeds_storage = any(h.sink == SinkKind.STATE_WRITE for h in packed_hits)
        for _, _, stmt in fa.live_statements():
            for call in stmt.calls_named("abi.encodePacked"):
                dynamic = _dynamic_arguments(call)
                if len(dynamic) < 2:
                    continue
                if feeds_check:
                    use, confidence = "feeds a signature or hash check", Confidence.HIGH
                elif feeds_storage:
                    use, confidence = "is used as a storage key", Confidence.MEDIUM
                else:
                    use, confidence = "is hashed", Confidence.LOW
                yield ctx.finding(
                    call.span,
                    (
                        f"abi.encodePacked in {fa.name} packs {len(dynamic)} variable-length arguments "
                        f"({', '.join(dynamic)}) and {use}; different inputs can encode to the same bytes."
                    ),
                    function=fa,
                    confidence=confidence,
                    metadata={"dynamic_arguments": dynamic},
                )
