"""Inheritance order detector — SWC-125."""

from __future__ import annotations

from itertools import combinations
from typing import Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.core.types import Finding


@detector("SWC-125")
def incorrect_inheritance_order(ctx: DetectorContext) -> Iterator[Finding]:
    """Two unrelated direct bases implement the same function and the contract does not pick one."""
    contract = ctx.contract
    bases = [b for b in contract.bases if b in ctx.symbols]
    if len(bases) < 2:
        return
    own = {f.name for f in contract.functions if f.implemented}

    names: set[str] = set()
    for base in bases:
        for c in ctx.symbols.linearization(base):
            record = ctx.symbols.get(c)
            if record is not None:
                names |= {f.name for f in record.functions if f.kind == "function" and f.implemented}

    for name in sorted(names - own):
        impls = {}
        for base in bases:
            func = ctx.symbols.lookup_function(base, name)
            if func is not None and func.implemented and func.kind == "function":
                impls[base] = func
        conflicting: set[str] = set()
        for a, b in combinations(impls, 2):
            related = a in ctx.symbols.linearization(b) or b in ctx.symbols.linearization(a)
            if not related and impls[a] != impls[b]:
                conflicting |= {a, b}
        if not conflicting:
            continue
        chosen = ctx.symbols.lookup_function(contract.name, name)
        owner = chosen.contract if chosen is not None else "?"
        ordered = [b for b in bases if b in conflicting]
        yield ctx.finding(
            contract.span,
            (
                f"{contract.name} inherits {name}() from unrelated bases {', '.join(ordered)} without overriding it; "
                f"the declaration order silently selects {owner}.{name}()."
            ),
            function=name,
            related=[impls[b].contract for b in ordered],
            metadata={"function": name, "bases": ordered, "selected": owner},
        )
