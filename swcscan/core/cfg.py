"""Control Flow Graph (CFG) builder for Solidity function bodies.

Builds a per-function CFG of basic blocks holding lowered ``IRStatement``s:

  - sequential statements → single basic block
  - if/else → a BRANCH statement ends the block; successors are
    ``[true, false]`` (the false edge goes straight to the merge block when
    there is no else)
  - for/while/do-while → loop header with a back-edge; ``break`` and
    ``continue`` jump to the loop exit and step blocks
  - try/catch → the external call ends the block; success clause first
  - return/revert/throw → terminal block with no successors

There is no synthetic exit block. Statements that follow a terminator land
in a block without predecessors, which ``unreachable_blocks`` reports.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterator

from swcscan.core.errors import LoweringError
from swcscan.core.ir import CallSite, IRKind, IRStatement, Scope, StatementLowerer
from swcscan.core.types import SourceSpan


# ── CFG Data Structures ─────────────────────────────────────────────────────


@dataclass
class BasicBlock:
    """Straight-line code with a single entry and a single exit."""
    id: int
    label: str = ""
    statements: list[IRStatement] = field(default_factory=list)
    predecessors: list[int] = field(default_factory=list)
    successors: list[int] = field(default_factory=list)
    is_entry: bool = False

    @property
    def terminator(self) -> IRStatement | None:
        if self.statements and (self.statements[-1].is_terminal or self.statements[-1].kind == IRKind.BRANCH):
            return self.statements[-1]
        return None

    @property
    def is_terminal(self) -> bool:
        return bool(self.statements) and self.statements[-1].is_terminal

    @property
    def span(self) -> SourceSpan:
        if not self.statements:
            return SourceSpan()
        first, last = self.statements[0].span, self.statements[-1].span
        return SourceSpan(
            offset=first.offset,
            length=max(last.end - first.offset, first.length),
            file_index=first.file_index,
        )


@dataclass
class CFG:
    """Control Flow Graph for a single function or modifier."""
    function_name: str
    blocks: dict[int, BasicBlock] = field(default_factory=dict)
    entry_block: int = 0
    loop_headers: set[int] = field(default_factory=set)
    _next_id: int = 0

    def new_block(self, label: str = "", is_entry: bool = False) -> BasicBlock:
        block = BasicBlock(id=self._next_id, label=label, is_entry=is_entry)
        self.blocks[block.id] = block
        self._next_id += 1
        return block

    def add_edge(self, from_id: int, to_id: int) -> None:
        if to_id not in self.blocks[from_id].successors:
            self.blocks[from_id].successors.append(to_id)
        if from_id not in self.blocks[to_id].predecessors:
            self.blocks[to_id].predecessors.append(from_id)

    @property
    def block_count(self) -> int:
        return len(self.blocks)

    @property
    def entry(self) -> BasicBlock:
        return self.blocks[self.entry_block]

    # ── Graph queries ────────────────────────────────────────────────

    def reachable(self, start: int | None = None) -> set[int]:
        """Blocks reachable from ``start`` (default: entry), including ``start``."""
        root = self.entry_block if start is None else start
        seen = {root}
        queue = deque([root])
        while queue:
            for succ in self.blocks[queue.popleft()].successors:
                if succ not in seen:
                    seen.add(succ)
                    queue.append(succ)
        return seen

    def reachable_after(self, block_id: int) -> set[int]:
        """Blocks reachable through at least one edge from ``block_id``."""
        seen: set[int] = set()
        queue = deque(self.blocks[block_id].successors)
        while queue:
            b = queue.popleft()
            if b in seen:
                continue
            seen.add(b)
            queue.extend(self.blocks[b].successors)
        return seen

    def unreachable_blocks(self) -> list[BasicBlock]:
        """Non-empty blocks no path from the entry reaches."""
        live = self.reachable()
        return [b for bid, b in sorted(self.blocks.items()) if bid not in live and b.statements]

    @property
    def exit_blocks(self) -> list[int]:
        live = self.reachable()
        return [bid for bid in sorted(live) if not self.blocks[bid].successors]

    def reverse_postorder(self) -> list[int]:
        """Reachable blocks in reverse postorder (iterative DFS)."""
        visited: set[int] = set()
        order: list[int] = []
        stack: list[tuple[int, Iterator[int]]] = [(self.entry_block, iter(self.entry.successors))]
        visited.add(self.entry_block)
        while stack:
            node, it = stack[-1]
            nxt = next(it, None)
            if nxt is None:
                stack.pop()
                order.append(node)
            elif nxt not in visited:
                visited.add(nxt)
                stack.append((nxt, iter(self.blocks[nxt].successors)))
        order.reverse()
        return order

    def back_edges(self) -> list[tuple[int, int]]:
        """Edges whose target is on the DFS stack (loop back-edges)."""
        rpo = {b: i for i, b in enumerate(self.reverse_postorder())}
        edges = []
        for src in rpo:
            for dst in self.blocks[src].successors:
                if dst in rpo and rpo[dst] <= rpo[src]:
                    edges.append((src, dst))
        return edges

    def blocks_in_loops(self) -> set[int]:
        """Blocks belonging to the natural loop of some back-edge."""
        live = self.reachable()
        members: set[int] = set()
        for tail, header in self.back_edges():
            loop = {header}
            stack = [tail]
            while stack:
                b = stack.pop()
                if b in loop:
                    continue
                loop.add(b)
                stack.extend(p for p in self.blocks[b].predecessors if p in live)
            members |= loop
        return members

    # ── Statement queries ────────────────────────────────────────────

    def statements(self) -> Iterator[tuple[int, int, IRStatement]]:
        for bid in sorted(self.blocks):
            for i, stmt in enumerate(self.blocks[bid].statements):
                yield bid, i, stmt

    def call_sites(self) -> Iterator[tuple[int, int, IRStatement, CallSite]]:
        for bid, i, stmt in self.statements():
            for call in stmt.calls:
                yield bid, i, stmt, call

    def statements_after(self, block_id: int, index: int) -> Iterator[tuple[int, int, IRStatement]]:
        """Statements that may execute after (block_id, index) on some path."""
        block = self.blocks[block_id]
        for i in range(index + 1, len(block.statements)):
            yield block_id, i, block.statements[i]
        for bid in sorted(self.reachable_after(block_id)):
            limit = len(self.blocks[bid].statements)
            if bid == block_id:
                # Loop back into the same block: everything up to the statement itself
                limit = index + 1
            for i in range(limit):
                yield bid, i, self.blocks[bid].statements[i]

    def variables(self) -> set[str]:
        names: set[str] = set()
        for _, _, stmt in self.statements():
            names |= stmt.reads
            names.update(stmt.targets)
        return names


# ── CFG Builder ──────────────────────────────────────────────────────────────


@dataclass
class _LoopContext:
    continue_target: int
    break_target: int


class CFGBuilder:
    """Build a Control Flow Graph from a function or modifier body.

    Raises:
        LoweringError: when an implemented function has no body or a
            statement node is malformed. The error is scoped to the function.
    """

    def __init__(self, scope: Scope) -> None:
        self._scope = scope
        self._loops: list[_LoopContext] = []
        self._lowerer: StatementLowerer | None = None

    def build(self, func_name: str, body_node: dict[str, Any] | None, implemented: bool = True) -> CFG:
        """Build the CFG of one body."""
        cfg = CFG(function_name=func_name)
        entry = cfg.new_block("entry", is_entry=True)
        cfg.entry_block = entry.id

        if body_node is None:
            if implemented:
                raise LoweringError(f"Function {func_name} has no body", function=func_name)
            return cfg
        if not isinstance(body_node, dict) or body_node.get("nodeType") not in ("Block", "UncheckedBlock"):
            raise LoweringError(f"Body of {func_name} is not a block", function=func_name)

        self._lowerer = StatementLowerer(self._scope, func_name)
        self._loops = []
        try:
            self._process_statements(cfg, entry, [body_node], unchecked=False)
        except LoweringError as e:
            e.function = e.function or func_name
            raise
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise LoweringError(f"Malformed statement in {func_name}: {e}", function=func_name) from e
        return cfg

    @property
    def lowerer(self) -> StatementLowerer:
        assert self._lowerer is not None
        return self._lowerer

    def _process_statements(
        self,
        cfg: CFG,
        current: BasicBlock | None,
        statements: list[Any],
        unchecked: bool,
    ) -> BasicBlock | None:
        """Process a list of statements, building blocks and edges."""
        for stmt in statements:
            if current is None:
                # Code after return/revert/break
                current = cfg.new_block("unreachable")

            if not isinstance(stmt, dict) or "nodeType" not in stmt:
                raise LoweringError("Statement node without nodeType")
            nt = stmt["nodeType"]

            if nt == "Block":
                current = self._process_statements(cfg, current, stmt.get("statements") or [], unchecked)

            elif nt == "UncheckedBlock":
                current = self._process_statements(cfg, current, stmt.get("statements") or [], True)

            elif nt == "IfStatement":
                current = self._process_if(cfg, current, stmt, unchecked)

            elif nt in ("ForStatement", "WhileStatement"):
                current = self._process_loop(cfg, current, stmt, unchecked)

            elif nt == "DoWhileStatement":
                current = self._process_do_while(cfg, current, stmt, unchecked)

            elif nt == "TryStatement":
                current = self._process_try(cfg, current, stmt, unchecked)

            elif nt == "Break":
                if self._loops:
                    cfg.add_edge(current.id, self._loops[-1].break_target)
                current = None

            elif nt == "Continue":
                if self._loops:
                    cfg.add_edge(current.id, self._loops[-1].continue_target)
                current = None

            else:
                lowered = self.lowerer.lower(stmt, unchecked)
                current.statements.extend(lowered)
                if lowered and lowered[-1].is_terminal:
                    current = None

        return current

    def _process_if(
        self, cfg: CFG, current: BasicBlock, stmt: dict[str, Any], unchecked: bool
    ) -> BasicBlock | None:
        """Process an if/else statement into CFG blocks."""
        current.statements.append(self.lowerer.condition(stmt.get("condition"), unchecked))

        true_block = cfg.new_block("if.true")
        cfg.add_edge(current.id, true_block.id)
        true_end = self._process_statements(cfg, true_block, [stmt.get("trueBody") or {"nodeType": "Block"}], unchecked)

        false_body = stmt.get("falseBody")
        if false_body is None:
            merge = cfg.new_block("if.merge")
            cfg.add_edge(current.id, merge.id)
            if true_end is not None:
                cfg.add_edge(true_end.id, merge.id)
            return merge

        false_block = cfg.new_block("if.false")
        cfg.add_edge(current.id, false_block.id)
        false_end = self._process_statements(cfg, false_block, [false_body], unchecked)

        if true_end is None and false_end is None:
            return None
        merge = cfg.new_block("if.merge")
        for end in (true_end, false_end):
            if end is not None:
                cfg.add_edge(end.id, merge.id)
        return merge

    def _process_loop(
        self, cfg: CFG, current: BasicBlock, stmt: dict[str, Any], unchecked: bool
    ) -> BasicBlock | None:
        """Process for/while loops."""
        init = stmt.get("initializationExpression")
        if init:
            current.statements.extend(self.lowerer.lower(init, unchecked))

        header = cfg.new_block("loop.header")
        cfg.add_edge(current.id, header.id)
        cfg.loop_headers.add(header.id)

        condition = stmt.get("condition")
        if condition:
            header.statements.append(self.lowerer.condition(condition, unchecked))

        body_block = cfg.new_block("loop.body")
        after = cfg.new_block("loop.exit")
        cfg.add_edge(header.id, body_block.id)
        if condition:
            cfg.add_edge(header.id, after.id)

        loop_expr = stmt.get("loopExpression")
        step = cfg.new_block("loop.step") if loop_expr else None
        continue_target = step.id if step else header.id

        self._loops.append(_LoopContext(continue_target, after.id))
        body_end = self._process_statements(cfg, body_block, [stmt.get("body") or {"nodeType": "Block"}], unchecked)
        self._loops.pop()

        if body_end is not None:
            cfg.add_edge(body_end.id, continue_target)
        if step is not None:
            step.statements.extend(self.lowerer.lower(loop_expr, unchecked))
            cfg.add_edge(step.id, header.id)

        return after if after.predecessors else None

    def _process_do_while(
        self, cfg: CFG, current: BasicBlock, stmt: dict[str, Any], unchecked: bool
    ) -> BasicBlock | None:
        """Process do-while loops (body executes at least once)."""
        body_block = cfg.new_block("loop.body")
        cfg.add_edge(current.id, body_block.id)
        cfg.loop_headers.add(body_block.id)

        cond_block = cfg.new_block("loop.cond")
        after = cfg.new_block("loop.exit")

        self._loops.append(_LoopContext(cond_block.id, after.id))
        body_end = self._process_statements(cfg, body_block, [stmt.get("body") or {"nodeType": "Block"}], unchecked)
        self._loops.pop()

        if body_end is not None:
            cfg.add_edge(body_end.id, cond_block.id)

        cond_block.statements.append(self.lowerer.condition(stmt.get("condition"), unchecked))
        cfg.add_edge(cond_block.id, body_block.id)
        cfg.add_edge(cond_block.id, after.id)

        return after

    def _process_try(
        self, cfg: CFG, current: BasicBlock, stmt: dict[str, Any], unchecked: bool
    ) -> BasicBlock | None:
        """Process try/catch: the call's outcome selects the clause."""
        current.statements.append(self.lowerer.condition(stmt.get("externalCall"), unchecked))

        ends: list[BasicBlock] = []
        for i, clause in enumerate(stmt.get("clauses") or []):
            block = cfg.new_block("try.success" if i == 0 else "try.catch")
            cfg.add_edge(current.id, block.id)
            for param in (clause.get("parameters") or {}).get("parameters") or []:
                block.statements.append(IRStatement(
                    kind=IRKind.DECLARE,
                    span=SourceSpan.from_src(param.get("src")),
                    targets=(param.get("name", ""),),
                    is_declaration=True,
                    declared_type=(param.get("typeDescriptions") or {}).get("typeString"),
                    storage_location=param.get("storageLocation", "") or "",
                    node=param,
                ))
            end = self._process_statements(cfg, block, [clause.get("block") or {"nodeType": "Block"}], unchecked)
            if end is not None:
                ends.append(end)

        if not ends:
            return None
        merge = cfg.new_block("try.merge")
        for end in ends:
            cfg.add_edge(end.id, merge.id)
        return merge


def build_cfg(func_name: str, body_node: dict[str, Any] | None, scope: Scope, implemented: bool = True) -> CFG:
    """Convenience function to build a CFG."""
    return CFGBuilder(scope).build(func_name, body_node, implemented)
