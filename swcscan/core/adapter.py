"""Syntax adapter interface — the engine's view of a parsed compilation unit.

The engine does not parse Solidity text. A front-end (solc ``--ast-compact-json``
or an equivalent parser) supplies one ``SourceUnit`` JSON AST per file, the
source text when available, the pragma string, and inline suppressions.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, field
from typing import Any

from swcscan.core.errors import FatalAdapterError
from swcscan.core.pragma import PragmaConstraint, parse_pragma
from swcscan.core.types import SourceSpan

SUPPRESSION_RE = re.compile(
    r"//\s*swcscan-disable-(?P<scope>next-line|line)\s+(?P<ids>SWC-\d+(?:\s*,\s*SWC-\d+)*)"
)


@dataclass(frozen=True)
class Suppression:
    """Inline opt-out for one vulnerability class at one source span."""

    class_id: str
    span: SourceSpan

    def matches(self, class_id: str, span: SourceSpan) -> bool:
        return class_id == self.class_id and self.span.contains_offset(span.offset)


class LineIndex:
    """Maps byte offsets to 1-based line numbers."""

    def __init__(self, source: str) -> None:
        self._starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def line_of(self, offset: int) -> int:
        return bisect.bisect_right(self._starts, offset)

    def line_span(self, line: int) -> tuple[int, int]:
        """Return (start offset, end offset) of a 1-based line."""
        start = self._starts[line - 1]
        end = self._starts[line] if line < len(self._starts) else start + 10**9
        return start, end

    @property
    def line_count(self) -> int:
        return len(self._starts)


@dataclass
class CompilationUnit:
    """One parsed source file as handed over by the syntax adapter."""

    file_path: str
    ast: dict[str, Any]
    source: str = ""
    pragma: str | None = None
    suppressions: tuple[Suppression, ...] = ()
    _lines: LineIndex | None = field(default=None, init=False, repr=False)

    @property
    def contract_nodes(self) -> list[dict[str, Any]]:
        return [
            n for n in self.ast.get("nodes", [])
            if isinstance(n, dict) and n.get("nodeType") == "ContractDefinition"
        ]

    @property
    def pragma_text(self) -> str | None:
        """The explicit pragma, or the one found in the AST's PragmaDirective."""
        if self.pragma:
            return self.pragma
        for node in self.ast.get("nodes", []):
            if isinstance(node, dict) and node.get("nodeType") == "PragmaDirective":
                literals = node.get("literals", [])
                if literals and literals[0] == "solidity":
                    return _join_pragma_literals(literals[1:])
        return None

    @property
    def pragma_span(self) -> SourceSpan:
        for node in self.ast.get("nodes", []):
            if isinstance(node, dict) and node.get("nodeType") == "PragmaDirective":
                literals = node.get("literals", [])
                if literals and literals[0] == "solidity":
                    return SourceSpan.from_src(node.get("src"))
        return SourceSpan()

    def constraint(self) -> PragmaConstraint | None:
        text = self.pragma_text
        if not text:
            return None
        try:
            return parse_pragma(text)
        except ValueError:
            return None

    def lines(self) -> LineIndex | None:
        if not self.source:
            return None
        if self._lines is None:
            self._lines = LineIndex(self.source)
        return self._lines

    def line_range(self, span: SourceSpan) -> tuple[int, int]:
        index = self.lines()
        if index is None:
            return 0, 0
        return index.line_of(span.offset), index.line_of(max(span.offset, span.end - 1))

    def snippet(self, span: SourceSpan, limit: int = 200) -> str:
        if not self.source or span.length <= 0:
            return ""
        text = self.source[span.offset:span.end]
        return text if len(text) <= limit else text[:limit] + "..."


def _join_pragma_literals(literals: list[str]) -> str:
    # solc splits "^0.8.0" into ["^", "0.8", ".0"] and ">=0.4.22 <0.6.0"
    # into [">=", "0.4", ".22", "<", "0.6", ".0"]
    out = ""
    for lit in literals:
        if lit and lit[0] in "^~<>=|" and out and not out.endswith(" "):
            out += " "
        out += lit
    return out.strip()


def validate_unit(unit: CompilationUnit) -> None:
    """Reject units the engine cannot analyse at all.

    Raises:
        FatalAdapterError: if the AST is missing or is not a SourceUnit.
    """
    if not isinstance(unit.ast, dict) or not unit.ast:
        raise FatalAdapterError("Compilation unit has no AST", file_path=unit.file_path)
    if unit.ast.get("nodeType") != "SourceUnit":
        raise FatalAdapterError(
            f"Expected a SourceUnit AST, got {unit.ast.get('nodeType')!r}",
            file_path=unit.file_path,
        )
    nodes = unit.ast.get("nodes")
    if not isinstance(nodes, list):
        raise FatalAdapterError("SourceUnit has no node list", file_path=unit.file_path)
    for node in unit.contract_nodes:
        if not node.get("name"):
            raise FatalAdapterError("ContractDefinition without a name", file_path=unit.file_path)


def parse_suppressions(source: str, file_index: int = 0) -> tuple[Suppression, ...]:
    """Turn ``// swcscan-disable-line SWC-104`` style comments into suppressions.

    ``disable-line`` covers the comment's own line, ``disable-next-line`` the
    line after it. Several ids may be comma-separated.
    """
    if not source:
        return ()
    index = LineIndex(source)
    out: list[Suppression] = []
    for match in SUPPRESSION_RE.finditer(source):
        line = index.line_of(match.start())
        if match.group("scope") == "next-line":
            line += 1
        if line > index.line_count:
            continue
        start, end = index.line_span(line)
        end = min(end, len(source))
        span = SourceSpan(offset=start, length=max(end - start, 1), file_index=file_index)
        for class_id in re.split(r"\s*,\s*", match.group("ids")):
            out.append(Suppression(class_id=class_id, span=span))
    return tuple(out)
