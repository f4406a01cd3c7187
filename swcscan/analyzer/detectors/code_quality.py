"""Code quality detectors — SWC-110, SWC-111, SWC-129, SWC-130."""

from __future__ import annotations

import re
from typing import Any, Iterator

from swcscan.analyzer.base_detector import DetectorContext, detector
from swcscan.analyzer.catalog import DEPRECATED_SUBSTITUTIONS
from swcscan.core.dataflow import TaintKind
from swcscan.core.ir import IRKind, SinkKind
from swcscan.core.types import Confidence, Finding, Severity, SourceSpan

INPUT_SOURCES = frozenset({
    TaintKind.CALLDATA,
    TaintKind.MSG_DATA,
    TaintKind.MSG_VALUE,
    TaintKind.MSG_SENDER,
    TaintKind.EXTERNAL_RETURN,
})


# ── SWC-110 ──────────────────────────────────────────────────────────────────


@detector("SWC-110")
def assert_violation(ctx: DetectorContext) -> Iterator[Finding]:
    """``assert`` guards invariants; input the caller controls belongs in ``require``."""
    for fa in ctx.analyzed(include_modifiers=True):
        for hit in fa.facts.hits(SinkKind.CONDITION):
            if hit.statement.kind != IRKind.ASSERT:
                continue
            sources = hit.sources & INPUT_SOURCES
            if not sources:
                continue
            yield ctx.finding(
                hit.span,
                (
                    f"assert in {fa.name} depends on {', '.join(sorted(s.value for s in sources))}; "
                    f"callers can make it fail, which is not an invariant violation."
                ),
                function=fa,
                metadata={"sources": sorted(s.value for s in sources)},
            )

        for _, _, stmt in fa.live_statements():
            cond = stmt.value or {}
            if stmt.kind == IRKind.ASSERT and cond.get("nodeType") == "Literal" and cond.get("value") == "false":
                yield ctx.finding(
                    stmt.span,
                    f"assert(false) in {fa.name} is reachable and always fails.",
                    function=fa,
                    confidence=Confidence.HIGH,
                    metadata={"always_fails": True},
                )

        for block in fa.cfg.unreachable_blocks():
            if not block.statements:
                continue
            yield ctx.finding(
                block.span,
                f"{len(block.statements)} statement(s) in {fa.name} can never execute.",
                function=fa,
                severity=Severity.LOW,
                confidence=Confidence.LOW,
                metadata={"dead_code": True, "block": block.id},
            )


# ── SWC-111 ──────────────────────────────────────────────────────────────────


def _describe(constructs: list[str]) -> str:
    return ", ".join(f"{c} (use {DEPRECATED_SUBSTITUTIONS.get(c, 'a current equivalent')})" for c in constructs)


@detector("SWC-111")
def deprecated_functions(ctx: DetectorContext) -> Iterator[Finding]:
    for fa in ctx.snapshot.functions + ctx.snapshot.modifiers:
        func = fa.function
        if func.declared_constant:
            yield ctx.finding(
                func.span,
                f"Function {func.name} is declared constant; {_describe(['constant'])}.",
                function=fa,
                metadata={"constructs": ["constant"]},
            )
        for _, _, stmt in fa.live_statements():
            if not stmt.deprecated:
                continue
            constructs = sorted(set(stmt.deprecated))
            yield ctx.finding(
                stmt.span,
                f"Deprecated construct(s) in {fa.name}: {_describe(constructs)}.",
                function=fa,
                metadata={"constructs": constructs},
            )


# ── SWC-129 ──────────────────────────────────────────────────────────────────


_COMMENT_OR_STRING_RE = re.compile(r'//[^\n]*|/\*.*?\*/|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\'', re.S)
_TYPO_RE = re.compile(r"(?<![=!<>+\-*/%&|^])=([+-])(?![+\-=])")


def _blank(text: str) -> str:
    """Replace comments and string literals with spaces, keeping offsets."""
    return _COMMENT_OR_STRING_RE.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


def _unary_nodes(node: Any) -> Iterator[dict[str, Any]]:
    if isinstance(node, list):
        for item in node:
            yield from _unary_nodes(item)
        return
    if not isinstance(node, dict):
        return
    if node.get("nodeType") == "UnaryOperation" and node.get("operator") in ("+", "-"):
        yield node
    for key, value in node.items():
        if isinstance(value, (dict, list)):
            yield from _unary_nodes(value)


def _operand_type(node: dict[str, Any]) -> str:
    sub = node.get("subExpression") or {}
    return (sub.get("typeDescriptions") or {}).get("typeString") or ""


@detector("SWC-129")
def typographical_error(ctx: DetectorContext) -> Iterator[Finding]:
    source = ctx.unit.source or ""
    for fa in ctx.snapshot.functions + ctx.snapshot.modifiers:
        func = fa.function
        reported: set[int] = set()

        for node in _unary_nodes(func.body):
            span = SourceSpan.from_src(node.get("src"))
            operand = _operand_type(node)
            if node.get("operator") == "+":
                why = "Unary + has no effect and usually stands for a mistyped '+='."
            elif operand.startswith("uint"):
                why = f"Unary - on {operand} wraps to a huge value instead of negating it."
            else:
                continue
            reported.add(span.offset)
            yield ctx.finding(span, why, function=fa, metadata={"operator": node.get("operator"), "type": operand})

        body = func.body or {}
        body_span = SourceSpan.from_src(body.get("src"))
        if not source or body_span.length <= 0:
            continue
        text = _blank(source[body_span.offset:body_span.end])
        for match in _TYPO_RE.finditer(text):
            op = match.group(1)
            after = text[match.end():match.end() + 1]
            # ``x =-1`` is an ordinary negative literal; ``x =- 1`` is the typo
            if op == "-" and not after.isspace():
                continue
            offset = body_span.offset + match.start()
            if offset + 1 in reported:
                continue
            yield ctx.finding(
                SourceSpan(offset=offset, length=2, file_index=body_span.file_index),
                f"'={op}' assigns {'the negated' if op == '-' else 'the'} value; '{op}=' was probably intended.",
                function=fa,
                confidence=Confidence.HIGH if op == "+" else Confidence.MEDIUM,
                metadata={"operator": f"={op}"},
            )


# ── SWC-130 ──────────────────────────────────────────────────────────────────


BIDI_CHARACTERS = {
    "\u202a": "LEFT-TO-RIGHT EMBEDDING",
    "\u202b": "RIGHT-TO-LEFT EMBEDDING",
    "\u202c": "POP DIRECTIONAL FORMATTING",
    "\u202d": "LEFT-TO-RIGHT OVERRIDE",
    "\u202e": "RIGHT-TO-LEFT OVERRIDE",
    "\u2066": "LEFT-TO-RIGHT ISOLATE",
    "\u2067": "RIGHT-TO-LEFT ISOLATE",
    "\u2068": "FIRST STRONG ISOLATE",
    "\u2069": "POP DIRECTIONAL ISOLATE",
}
_BIDI_RE = re.compile("[" + "".join(BIDI_CHARACTERS) + "]")


def _owner(ctx: DetectorContext, offset: int) -> str | None:
    """Contract whose source range holds ``offset``; the first contract of the file otherwise."""
    names = []
    for node in ctx.unit.contract_nodes:
        if SourceSpan.from_src(node.get("src")).contains_offset(offset):
            return node.get("name")
        names.append(node.get("name"))
    return names[0] if names else None


@detector("SWC-130")
def right_to_left_override(ctx: DetectorContext) -> Iterator[Finding]:
    source = ctx.unit.source
    if not source:
        return
    for match in _BIDI_RE.finditer(source):
        # AST offsets count bytes
        offset = len(source[:match.start()].encode("utf-8"))
        if _owner(ctx, offset) != ctx.contract.name:
            continue
        char = match.group(0)
        name = BIDI_CHARACTERS[char]
        yield ctx.finding(
            SourceSpan(offset=offset, length=len(char.encode("utf-8")), file_index=ctx.contract.span.file_index),
            f"Source contains U+{ord(char):04X} {name}, which makes the code display differently from how it compiles.",
            severity=None if char == "\u202e" else Severity.MEDIUM,
            metadata={"codepoint": f"U+{ord(char):04X}", "byte_offset": offset, "char_offset": match.start()},
        )
