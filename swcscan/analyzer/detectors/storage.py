"""Storage detectors — SWC-109, SWC-119, SWC-124."""

from __future__ import annotations

from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, FunctionAnalysis, detector
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import IRKind, IRStatement, root_name
from swcscan.core.pragma import Version
from swcscan.core.resolver import TypeDescriptor
from swcscan.core.types import Confidence, Finding, Severity, SourceSpan

IMPLICIT_STORAGE_UNTIL = Version(0, 5, 0)
INDEX_SOURCES = frozenset({TaintKind.CALLDATA, TaintKind.MSG_DATA, TaintKind.EXTERNAL_RETURN})


# ── SWC-109 ──────────────────────────────────────────────────────────────────


@detector("SWC-109")
def uninitialized_storage_pointer(ctx: DetectorContext) -> Iterator[Finding]:
    implicit = ctx.language.version < IMPLICIT_STORAGE_UNTIL
    for fa in ctx.analyzed(include_modifiers=True):
        for _, _, stmt in fa.live_statements():
            if stmt.kind != IRKind.DECLARE or not stmt.declared_type:
                continue
            desc = TypeDescriptor.from_type_string(stmt.declared_type)
            if not desc.is_reference or desc.is_mapping:
                continue
            location = stmt.storage_location
            explicit = location == "storage" or stmt.declared_type.endswith("storage pointer")
            if not explicit and not (implicit and location in ("", "default")):
                continue
            name = stmt.targets[0] if stmt.targets else "<unnamed>"
            how = "declared storage" if explicit else "implicitly in storage"
            yield ctx.finding(
                stmt.span,
                (
                    f"Local {name} ({desc.name}) is {how} without an initializer; "
                    f"it points at slot 0 and writes through it overwrite state."
                ),
                function=fa,
                confidence=Confidence.HIGH if explicit else Confidence.MEDIUM,
                metadata={"variable": name, "type": desc.name, "explicit": explicit},
            )


# ── SWC-119 ──────────────────────────────────────────────────────────────────


@detector("SWC-119")
def shadowing_state_variables(ctx: DetectorContext) -> Iterator[Finding]:
    contract = ctx.contract
    for sh in contract.shadowing:
        yield ctx.finding(
            sh.derived_span,
            (
                f"State variable {sh.name} is declared in {sh.derived} and again in its base {sh.base}; "
                f"the two are separate storage slots and code in {sh.base} keeps using its own."
            ),
            related=(sh.base,),
            metadata={"variable": sh.name, "declared_in": [sh.derived, sh.base]},
        )

    visible = ctx.symbols.visible_state_variables(contract.name)
    if not visible:
        return
    for fa in ctx.analyzed(include_modifiers=True):
        func = fa.function
        for param in func.parameters + func.returns:
            if param.name and param.name in visible:
                yield _local_shadow(ctx, fa, param.name, param.span, visible[param.name].contract, "Parameter")
        for _, _, stmt in fa.live_statements():
            if not stmt.is_declaration:
                continue
            for name in stmt.targets:
                if name in visible:
                    yield _local_shadow(ctx, fa, name, stmt.span, visible[name].contract, "Local variable")


def _local_shadow(ctx: DetectorContext, fa: FunctionAnalysis, name: str, span: SourceSpan, owner: str, what: str) -> Finding:
    return ctx.finding(
        span,
        f"{what} {name} in {fa.name} hides the state variable {owner}.{name}.",
        function=fa,
        severity=Severity.LOW,
        confidence=Confidence.MEDIUM,
        related=(owner,) if owner != ctx.contract.name else (),
        metadata={"variable": name, "kind": "local"},
    )


# ── SWC-124 ──────────────────────────────────────────────────────────────────


def _length_written(ctx: DetectorContext) -> set[str]:
    out: set[str] = set()
    for fa in ctx.analyzed():
        for _, _, stmt in fa.live_statements():
            if stmt.kind == IRKind.ASSIGN and stmt.writes_length:
                out |= set(stmt.state_targets)
    return out


def _index_sources(fa: FunctionAnalysis, block: int, index: int, stmt: IRStatement) -> frozenset[TaintKind]:
    """Taint of the outermost index expression of an array write."""
    lhs = stmt.lhs or {}
    if lhs.get("nodeType") != "IndexAccess" or fa.facts is None or fa.facts.taint_analysis is None:
        return frozenset()
    env = fa.facts.taint.before(block, index)
    return fa.facts.taint_analysis.evaluate(lhs.get("indexExpression"), env)


def _dynamic_state_array(ctx: DetectorContext, name: str) -> bool:
    var = ctx.symbols.lookup_state_variable(ctx.contract.name, name)
    return var is not None and var.type.is_array and var.type.is_dynamic


@detector("SWC-124")
def arbitrary_storage_write(ctx: DetectorContext) -> Iterator[Finding]:
    writable = ctx.language.array_length_writable
    resized = _length_written(ctx) if writable else set()

    for fa in ctx.analyzed():
        public = fa.function.is_externally_reachable
        for block, index, stmt in fa.live_statements():
            if stmt.kind == IRKind.ASSIGN and stmt.writes_length and stmt.state_targets and writable:
                yield ctx.finding(
                    stmt.span,
                    (
                        f"{fa.name} assigns the length of {', '.join(stmt.state_targets)} directly; "
                        f"shrinking it below zero makes every storage slot addressable through the array."
                    ),
                    function=fa,
                    confidence=Confidence.HIGH if stmt.operator in ("--", "-=") else Confidence.MEDIUM,
                    metadata={"array": list(stmt.state_targets), "operator": stmt.operator},
                )
                continue

            if stmt.kind == IRKind.ASSIGN and stmt.indexed_write and not stmt.writes_length:
                arrays = [t for t in stmt.state_targets if t in resized and _dynamic_state_array(ctx, t)]
                if not arrays or root_name(stmt.lhs) not in arrays:
                    continue
                sources = _index_sources(fa, block, index, stmt) & INDEX_SOURCES
                if not sources:
                    continue
                yield ctx.finding(
                    stmt.span,
                    (
                        f"{fa.name} writes {arrays[0]} at a caller-controlled index while the array length "
                        f"can be manipulated, so the write can land on any storage slot."
                    ),
                    function=fa,
                    metadata={"array": arrays[0], "sources": sorted(s.value for s in sources)},
                )
                continue

            asm = stmt.assembly
            if stmt.kind == IRKind.ASSEMBLY_WRITE and asm is not None and asm.op == "sstore":
                if asm.slot_constant or not public:
                    continue
                guarded = ctx.is_access_controlled(fa)
                yield ctx.finding(
                    asm.span,
                    f"{fa.name} stores to a computed slot ({asm.slot_text}) in inline assembly.",
                    function=fa,
                    severity=Severity.MEDIUM if guarded else None,
                    confidence=Confidence.LOW if guarded else Confidence.MEDIUM,
                    metadata={"slot": asm.slot_text, "guarded": guarded},
                )
