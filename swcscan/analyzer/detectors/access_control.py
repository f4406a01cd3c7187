"""Access control detectors — SWC-105, SWC-106, SWC-115, SWC-118."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import AUTH_GLOBALS, DetectorContext, FunctionAnalysis, detector
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import IRKind, SinkKind
from swcscan.core.resolver import Function
from swcscan.core.types import Confidence, Finding, Severity

CALLER_CONTROLLED = frozenset({TaintKind.CALLDATA, TaintKind.MSG_SENDER, TaintKind.TX_ORIGIN})
SENSITIVE_SINKS = frozenset({
    SinkKind.STATE_WRITE,
    SinkKind.SELFDESTRUCT,
    SinkKind.ETHER_TRANSFER,
    SinkKind.DELEGATECALL,
    SinkKind.LOW_LEVEL_CALL,
})


def _public_entry(fa: FunctionAnalysis) -> bool:
    return fa.function.is_externally_reachable


def _accounts_per_caller(fa: FunctionAnalysis) -> bool:
    """Bookkeeping like ``balances[msg.sender] -= amount`` limits what a caller can take."""
    for _, _, stmt in fa.live_statements():
        if stmt.kind == IRKind.ASSIGN and stmt.state_targets and stmt.indexed_write:
            if stmt.index_reads & AUTH_GLOBALS:
                return True
    return False


def _guard_variables(ctx: DetectorContext) -> set[str]:
    """State variables that guards in this contract compare the caller against."""
    names: set[str] = set()
    for fa in ctx.analyzed(include_modifiers=True):
        for _, _, stmt in fa.live_statements():
            if ctx.is_guard_statement(stmt, fa.scope):
                names |= {r for r in stmt.reads if fa.scope.is_state(r)}
    for mod in ctx.snapshot.visible_modifiers.values():
        if mod.analyzed:
            for _, _, stmt in mod.live_statements():
                if ctx.is_guard_statement(stmt, mod.scope):
                    names |= {r for r in stmt.reads if mod.scope.is_state(r)}
    return names


@detector("SWC-105")
def unprotected_ether_withdrawal(ctx: DetectorContext) -> Iterator[Finding]:
    if ctx.contract.is_library:
        return
    for fa in ctx.analyzed():
        if not _public_entry(fa) or ctx.is_access_controlled(fa) or _accounts_per_caller(fa):
            continue
        for hit in fa.facts.hits(SinkKind.ETHER_TRANSFER):
            if not hit.sources & CALLER_CONTROLLED or hit.call is None:
                continue
            if hit.call.arg_reads and hit.call.arg_reads <= {"msg.value"}:
                continue
            yield ctx.finding(
                hit.call.span,
                (
                    f"{fa.name} sends ether to a caller-chosen address without any "
                    f"authorization check or per-caller accounting."
                ),
                function=fa,
                metadata={"sources": sorted(s.value for s in hit.sources)},
            )

    # Anyone can overwrite the variable that guards withdrawals elsewhere
    if not any(SinkKind.ETHER_TRANSFER in f.sinks or SinkKind.SELFDESTRUCT in f.sinks for f in ctx.contract.functions):
        return
    guard_vars = _guard_variables(ctx)
    if not guard_vars:
        return
    for fa in ctx.analyzed():
        if not _public_entry(fa) or ctx.is_access_controlled(fa):
            continue
        for hit in fa.facts.hits(SinkKind.STATE_WRITE):
            written = set(hit.statement.state_targets) & guard_vars
            if not written or not hit.sources & CALLER_CONTROLLED or hit.statement.indexed_write:
                continue
            yield ctx.finding(
                hit.span,
                (
                    f"{fa.name} lets any caller overwrite {', '.join(sorted(written))}, which "
                    f"authorizes ether withdrawals in this contract."
                ),
                function=fa,
                confidence=Confidence.MEDIUM,
                metadata={"variables": sorted(written)},
            )


@detector("SWC-106")
def unprotected_selfdestruct(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed():
        if not _public_entry(fa) or ctx.is_access_controlled(fa):
            continue
        own = [(s, b, i) for b, i, s in fa.live_statements() if s.kind == IRKind.SELFDESTRUCT]
        for stmt, _, _ in own:
            yield ctx.finding(
                stmt.span,
                f"{fa.name} is callable by anyone and destroys the contract.",
                function=fa,
            )
        if own:
            continue
        if SinkKind.SELFDESTRUCT in ctx.symbols.reachable_sinks(ctx.contract.name, fa.function):
            yield ctx.finding(
                fa.function.span,
                f"{fa.name} is callable by anyone and reaches selfdestruct through an internal call.",
                function=fa,
                confidence=Confidence.MEDIUM,
            )


def _gated_sinks(ctx: DetectorContext, fa: FunctionAnalysis) -> tuple[frozenset[SinkKind], list[Function]]:
    """Sensitive sinks behind the check, and the functions it gates when ``fa`` is a modifier."""
    if fa.function.is_modifier:
        users = ctx.symbols.functions_using_modifier(fa.function)
        sinks: set[SinkKind] = set()
        for user in users:
            sinks |= ctx.symbols.reachable_sinks(user.contract, user)
        return frozenset(sinks) & SENSITIVE_SINKS, users
    return ctx.symbols.reachable_sinks(ctx.contract.name, fa.function) & SENSITIVE_SINKS, []


@detector("SWC-115")
def tx_origin_authorization(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.analyzed(include_modifiers=True):
        hits = [h for h in fa.facts.hits(SinkKind.AUTH_CHECK, TaintKind.TX_ORIGIN) if h.comparison is not None]
        if not hits:
            continue
        sinks, users = _gated_sinks(ctx, fa)
        for hit in hits:
            # tx.origin == msg.sender only tells contracts and EOAs apart
            if "msg.sender" in hit.comparison.reads:
                continue
            if sinks:
                severity, confidence = Severity.CRITICAL, Confidence.HIGH
                gated = f" and gates {', '.join(sorted(s.value for s in sinks))}"
            else:
                severity, confidence = Severity.MEDIUM, Confidence.LOW
                gated = ""
            where = f"modifier {fa.name}" if fa.function.is_modifier else fa.name
            yield ctx.finding(
                hit.comparison.span,
                f"Authorization in {where} compares tx.origin{gated}; a contract the victim calls can pass it.",
                function=fa,
                severity=severity,
                confidence=confidence,
                related=[u.contract for u in users if u.contract != ctx.contract.name],
                metadata={
                    "gated_sinks": sorted(s.value for s in sinks),
                    "gated_functions": sorted(u.qualified_name for u in users),
                },
            )


def _edit_distance(a: str, b: str) -> int:
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


@detector("SWC-118")
def incorrect_constructor_name(ctx: DetectorContext) -> Iterator[Finding]:
    contract = ctx.contract
    if contract.is_interface or contract.is_library or contract.constructor is not None:
        return
    for func in contract.functions:
        if func.kind != "function" or not func.is_externally_reachable:
            continue
        name = func.name
        if name == "constructor" and not ctx.language.constructor_keyword:
            reason = "is named 'constructor', which this compiler version treats as an ordinary function"
        elif name.lower() == contract.name.lower() and name != contract.name:
            reason = f"differs from the contract name {contract.name} only in case"
        elif len(contract.name) >= 4 and 0 < _edit_distance(name.lower(), contract.name.lower()) <= 2:
            reason = f"is a near-miss of the contract name {contract.name}"
        else:
            continue
        writes = SinkKind.STATE_WRITE in func.sinks
        yield ctx.finding(
            func.span,
            f"Function {name} {reason}; it was likely meant as the constructor but anyone can call it.",
            function=func,
            confidence=Confidence.HIGH if writes else Confidence.MEDIUM,
            metadata={"contract_name": contract.name, "writes_state": writes},
        )
