"""Data and taint flow engine.

Forward analyses over a function's CFG, all run by one worklist solver:

  - ``ReachingDefinitions``  which assignments may reach each statement
  - ``TaintAnalysis``        provenance of values (caller input, tx.origin,
                             block attributes, external return data, ...)
  - ``RangeAnalysis``        integer intervals with branch refinement
  - call effects             low-level calls, whether their success flag is
                             checked and whether state is written afterwards

Facts are immutable ``DataflowFact`` values joined per variable. The solver
counts every strict ascent of a block's entry state as a join step and
fails with ``AnalysisError`` if the count exceeds ``blocks × height``;
``height`` is the height of the per-block environment lattice.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Mapping

from swcscan.core.cancel import CancellationToken
from swcscan.core.cfg import CFG
from swcscan.core.errors import AnalysisError
from swcscan.core.ir import (
    CallKind,
    CallSite,
    Comparison,
    ExpressionScanner,
    HASH_FUNCTIONS,
    IRKind,
    IRStatement,
    ResultUsage,
    SinkKind,
    classify_call,
    literal_int,
    root_name,
)
from swcscan.core.pragma import LanguageContext
from swcscan.core.resolver import FunctionScope, TypeDescriptor
from swcscan.core.types import SourceSpan

logger = logging.getLogger(__name__)


# ── Facts ────────────────────────────────────────────────────────────────────


class FactKind(str, Enum):
    UNTAINTED = "untainted"
    TAINTED = "tainted"
    RANGE = "range"
    UNKNOWN = "unknown"


class TaintKind(str, Enum):
    """Where a value may come from."""
    TX_ORIGIN = "tx.origin"
    MSG_SENDER = "msg.sender"
    MSG_VALUE = "msg.value"
    MSG_DATA = "msg.data"
    CALLDATA = "calldata"
    EXTERNAL_RETURN = "external_return"
    BLOCK_TIME = "block_time"
    BLOCK_ATTRIBUTE = "block_attribute"
    BLOCK_RANDOMNESS = "block_randomness"
    PACKED_HASH = "packed_hash"


GLOBAL_SOURCES: dict[str, TaintKind] = {
    "msg.sender": TaintKind.MSG_SENDER,
    "tx.origin": TaintKind.TX_ORIGIN,
    "msg.value": TaintKind.MSG_VALUE,
    "msg.data": TaintKind.MSG_DATA,
    "msg.sig": TaintKind.MSG_DATA,
    "block.timestamp": TaintKind.BLOCK_TIME,
    "block.number": TaintKind.BLOCK_TIME,
    "block.difficulty": TaintKind.BLOCK_ATTRIBUTE,
    "block.prevrandao": TaintKind.BLOCK_ATTRIBUTE,
    "block.coinbase": TaintKind.BLOCK_ATTRIBUTE,
    "block.gaslimit": TaintKind.BLOCK_ATTRIBUTE,
    "block.basefee": TaintKind.BLOCK_ATTRIBUTE,
}

CHAIN_ATTRIBUTES = frozenset({TaintKind.BLOCK_TIME, TaintKind.BLOCK_ATTRIBUTE})


@dataclass(frozen=True)
class DataflowFact:
    """Per-variable lattice value.

    ``UNTAINTED`` is the bottom, ``UNKNOWN`` the top. Taint joins by source
    union, ranges by interval hull; mixing the two goes to ``UNKNOWN``.
    """

    kind: FactKind
    sources: frozenset[TaintKind] = frozenset()
    low: int | None = None
    high: int | None = None

    @classmethod
    def untainted(cls) -> "DataflowFact":
        return _UNTAINTED

    @classmethod
    def unknown(cls) -> "DataflowFact":
        return _UNKNOWN

    @classmethod
    def tainted(cls, sources: frozenset[TaintKind] | set[TaintKind]) -> "DataflowFact":
        if not sources:
            return _UNTAINTED
        return cls(kind=FactKind.TAINTED, sources=frozenset(sources))

    @classmethod
    def interval(cls, low: int, high: int) -> "DataflowFact":
        return cls(kind=FactKind.RANGE, low=low, high=high)

    @property
    def is_tainted(self) -> bool:
        return self.kind == FactKind.TAINTED

    @property
    def is_range(self) -> bool:
        return self.kind == FactKind.RANGE

    @property
    def bounds(self) -> tuple[int, int] | None:
        if self.kind == FactKind.RANGE and self.low is not None and self.high is not None:
            return self.low, self.high
        return None

    def has(self, kind: TaintKind) -> bool:
        return kind in self.sources

    def join(self, other: "DataflowFact") -> "DataflowFact":
        if self == other:
            return self
        if self.kind == FactKind.UNKNOWN or other.kind == FactKind.UNKNOWN:
            return _UNKNOWN
        if self.kind == FactKind.UNTAINTED:
            return other
        if other.kind == FactKind.UNTAINTED:
            return self
        if self.kind == FactKind.TAINTED and other.kind == FactKind.TAINTED:
            return DataflowFact.tainted(self.sources | other.sources)
        if self.kind == FactKind.RANGE and other.kind == FactKind.RANGE:
            return DataflowFact.interval(min(self.low, other.low), max(self.high, other.high))
        return _UNKNOWN

    def leq(self, other: "DataflowFact") -> bool:
        return self.join(other) == other


_UNTAINTED = DataflowFact(kind=FactKind.UNTAINTED)
_UNKNOWN = DataflowFact(kind=FactKind.UNKNOWN)

Env = dict[str, Any]


def join_env(a: Mapping[str, Any], b: Mapping[str, Any], join_value: Callable[[Any, Any], Any]) -> Env:
    """Pointwise join; a missing variable is bottom."""
    out = dict(a)
    for key, value in b.items():
        out[key] = join_value(out[key], value) if key in out else value
    return out


# ── Solver ───────────────────────────────────────────────────────────────────


class ForwardAnalysis:
    """Subclass contract for the fixpoint solver."""

    name = "analysis"

    def initial_env(self) -> Env:
        return {}

    def transfer(self, stmt: IRStatement, env: Env, block_id: int, index: int) -> None:
        """Update ``env`` in place for one statement."""

    def edge_env(self, cfg: CFG, block_id: int, succ_index: int, env: Env) -> Env:
        """Environment flowing along the ``succ_index``-th out-edge of ``block_id``."""
        return env

    def join_value(self, a: Any, b: Any) -> Any:
        return a.join(b)

    def widen(self, cfg: CFG, block_id: int, old: Env, new: Env) -> Env:
        return new

    def value_height(self, cfg: CFG) -> int:
        """Longest strictly ascending chain of one variable's value."""
        return 1


@dataclass
class FlowResult:
    """Fixed point of one analysis over one CFG."""
    analysis: str
    block_in: dict[int, Env] = field(default_factory=dict)
    block_out: dict[int, Env] = field(default_factory=dict)
    statement_in: dict[tuple[int, int], Env] = field(default_factory=dict)
    join_steps: int = 0
    evaluations: int = 0
    height: int = 1
    bound: int = 0

    def before(self, block_id: int, index: int) -> Env:
        return self.statement_in.get((block_id, index), {})

    def at_exit(self, block_id: int) -> Env:
        return self.block_out.get(block_id, {})


class FixpointSolver:
    """Worklist iteration in reverse postorder until no entry state changes."""

    def __init__(self, cancel: CancellationToken | None = None) -> None:
        self._cancel = cancel

    def solve(self, cfg: CFG, analysis: ForwardAnalysis) -> FlowResult:
        blocks = cfg.blocks
        order = cfg.reverse_postorder()
        live = set(order)
        initial = analysis.initial_env()
        variables = len(cfg.variables() | set(initial))
        height = analysis.value_height(cfg) * max(1, variables) + 1
        result = FlowResult(analysis=analysis.name, height=height, bound=len(blocks) * height)

        worklist = deque(order)
        queued = set(order)
        while worklist:
            if self._cancel is not None:
                self._cancel.check()
            bid = worklist.popleft()
            queued.discard(bid)
            result.evaluations += 1
            block = blocks[bid]

            incoming: Env = dict(initial) if bid == cfg.entry_block else {}
            for pred in block.predecessors:
                if pred not in result.block_out:
                    continue
                succ_index = blocks[pred].successors.index(bid)
                edge = analysis.edge_env(cfg, pred, succ_index, result.block_out[pred])
                incoming = join_env(incoming, edge, analysis.join_value)

            old = result.block_in.get(bid)
            if old is not None:
                incoming = analysis.widen(cfg, bid, old, join_env(old, incoming, analysis.join_value))
                if incoming == old:
                    continue

            result.join_steps += 1
            if result.join_steps > result.bound:
                raise AnalysisError(
                    f"{analysis.name} did not converge within {result.bound} join steps "
                    f"on {cfg.function_name}",
                    function=cfg.function_name,
                )
            result.block_in[bid] = incoming

            env = dict(incoming)
            for i, stmt in enumerate(block.statements):
                analysis.transfer(stmt, env, bid, i)
            if result.block_out.get(bid) != env:
                result.block_out[bid] = env
                for succ in block.successors:
                    if succ in live and succ not in queued:
                        worklist.append(succ)
                        queued.add(succ)

        for bid in order:
            env = dict(result.block_in.get(bid, {}))
            for i, stmt in enumerate(blocks[bid].statements):
                result.statement_in[(bid, i)] = dict(env)
                analysis.transfer(stmt, env, bid, i)

        logger.debug(
            "%s converged on %s: %d join steps, %d evaluations (bound %d)",
            analysis.name, cfg.function_name, result.join_steps, result.evaluations, result.bound,
        )
        return result


# ── Reaching definitions ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class DefSite:
    var: str
    block: int
    index: int
    span: SourceSpan = field(default_factory=SourceSpan, compare=False)


class ReachingDefinitions(ForwardAnalysis):
    """Which definitions of each variable may reach a program point.

    Writes through an index or member (``a[i] = v``) are weak: they add a
    definition without killing earlier ones.
    """

    name = "reaching-definitions"

    def transfer(self, stmt: IRStatement, env: Env, block_id: int, index: int) -> None:
        if stmt.kind in (IRKind.ASSIGN, IRKind.DECLARE):
            for target in stmt.targets:
                site = DefSite(target, block_id, index, stmt.span)
                if stmt.indexed_write:
                    env[target] = env.get(target, frozenset()) | {site}
                else:
                    env[target] = frozenset({site})
        for target in stmt.yul_assigned:
            env[target] = frozenset({DefSite(target, block_id, index, stmt.span)})

    def join_value(self, a: frozenset[DefSite], b: frozenset[DefSite]) -> frozenset[DefSite]:
        return a | b

    def value_height(self, cfg: CFG) -> int:
        counts: dict[str, int] = {}
        for _, _, stmt in cfg.statements():
            for target in (*stmt.targets, *stmt.yul_assigned):
                counts[target] = counts.get(target, 0) + 1
        return max(counts.values(), default=0) + 1


# ── Taint ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TaintHit:
    """A tainted value reaching a sink."""
    sink: SinkKind
    sources: frozenset[TaintKind]
    block: int
    index: int
    statement: IRStatement
    span: SourceSpan
    call: CallSite | None = None
    comparison: Comparison | None = None
    detail: str = ""


class TaintAnalysis(ForwardAnalysis):
    """Source-to-sink provenance tracking.

    Parameters of externally reachable functions carry ``CALLDATA``. An
    equality check in ``require``/``assert`` (or on the true edge of a
    branch) against an untainted value clears the compared variable;
    ``msg.sender`` and ``tx.origin`` can be cleared the same way.
    """

    name = "taint"

    def __init__(self, scope: FunctionScope, tainted_parameters: tuple[str, ...] = ()) -> None:
        self._scope = scope
        self._params = tainted_parameters
        self._scanner = ExpressionScanner(scope)

    def initial_env(self) -> Env:
        return {p: DataflowFact.tainted({TaintKind.CALLDATA}) for p in self._params if p}

    def value_height(self, cfg: CFG) -> int:
        return len(TaintKind) + 2

    # ── expression evaluation ────────────────────────────────────────

    def evaluate(self, node: Any, env: Mapping[str, DataflowFact]) -> frozenset[TaintKind]:
        """Taint sources an expression may carry under ``env``."""
        return frozenset(self._eval(node, env))

    def _lookup(self, name: str, env: Mapping[str, DataflowFact]) -> set[TaintKind]:
        fact = env.get(name)
        if fact is None or not fact.is_tainted:
            return set()
        return set(fact.sources)

    def _eval(self, node: Any, env: Mapping[str, DataflowFact]) -> set[TaintKind]:
        if not isinstance(node, dict):
            return set()
        nt = node.get("nodeType", "")

        if nt == "Identifier":
            name = node.get("name", "")
            if name == "now":
                return self._global("block.timestamp", env)
            return self._lookup(name, env)

        if nt == "MemberAccess":
            base = node.get("expression") or {}
            if base.get("nodeType") == "Identifier" and base.get("name") in ("msg", "tx", "block"):
                return self._global(f"{base['name']}.{node.get('memberName', '')}", env)
            return self._eval(base, env)

        if nt in ("IndexAccess", "IndexRangeAccess"):
            out = self._eval(node.get("baseExpression"), env)
            for key in ("indexExpression", "startExpression", "endExpression"):
                out |= self._eval(node.get(key), env)
            return out

        if nt == "BinaryOperation":
            out = self._eval(node.get("leftExpression"), env) | self._eval(node.get("rightExpression"), env)
            if node.get("operator") == "%" and out & CHAIN_ATTRIBUTES:
                out.add(TaintKind.BLOCK_RANDOMNESS)
            return out

        if nt == "UnaryOperation":
            return self._eval(node.get("subExpression"), env)

        if nt == "Conditional":
            return self._eval(node.get("trueExpression"), env) | self._eval(node.get("falseExpression"), env)

        if nt == "TupleExpression":
            out: set[TaintKind] = set()
            for comp in node.get("components") or []:
                out |= self._eval(comp, env)
            return out

        if nt == "FunctionCall":
            return self._eval_call(node, env)

        if nt == "Assignment":
            return self._eval(node.get("rightHandSide"), env)

        return set()

    def _global(self, name: str, env: Mapping[str, DataflowFact]) -> set[TaintKind]:
        if name in env and not env[name].is_tainted:
            return set()
        source = GLOBAL_SOURCES.get(name)
        return {source} if source else set()

    def _eval_call(self, node: dict[str, Any], env: Mapping[str, DataflowFact]) -> set[TaintKind]:
        shape = classify_call(node)
        args: set[TaintKind] = set()
        for arg in shape.arguments:
            args |= self._eval(arg, env)

        if shape.conversion:
            return args
        kind = self._scanner.refine_kind(shape)
        if kind in (CallKind.CALL, CallKind.DELEGATECALL, CallKind.CALLCODE,
                    CallKind.STATICCALL, CallKind.HIGH_LEVEL):
            return {TaintKind.EXTERNAL_RETURN}
        if kind == CallKind.INTERNAL and shape.base is not None:
            # Library call bound with ``using ... for``: the receiver is an argument too
            return args | self._eval(shape.base, env)
        if shape.kind == CallKind.BUILTIN:
            if shape.name in HASH_FUNCTIONS:
                if args & CHAIN_ATTRIBUTES:
                    args.add(TaintKind.BLOCK_RANDOMNESS)
                return args
            if shape.name in ("blockhash", "block.blockhash"):
                return args | {TaintKind.BLOCK_ATTRIBUTE}
            if shape.name == "abi.encodePacked":
                dynamic = sum(1 for a in shape.arguments if self._is_dynamic(a))
                if dynamic >= 2:
                    args.add(TaintKind.PACKED_HASH)
                return args
            if shape.name == "gasleft":
                return set()
            return args
        # Internal calls, library calls and struct constructors pass argument taint through
        return args

    def _is_dynamic(self, node: dict[str, Any]) -> bool:
        ts = (node.get("typeDescriptions") or {}).get("typeString") or ""
        if not ts and node.get("nodeType") == "Identifier":
            ts = self._scope.type_string(node.get("name", ""))
        if not ts and node.get("nodeType") == "Literal" and node.get("kind") == "string":
            return True
        return bool(ts) and TypeDescriptor.from_type_string(ts).is_dynamic and not ts.startswith("mapping")

    # ── transfer ─────────────────────────────────────────────────────

    def transfer(self, stmt: IRStatement, env: Env, block_id: int, index: int) -> None:
        if stmt.kind == IRKind.ASSIGN:
            if stmt.operator == "delete":
                value: set[TaintKind] = set()
            elif stmt.operator in ("++", "--"):
                return
            else:
                value = set(self.evaluate(stmt.value, env))
            if stmt.operator not in ("=", "delete"):
                for target in stmt.targets:
                    value |= self._lookup(target, env)
            fact = DataflowFact.tainted(value)
            for target in stmt.targets:
                if stmt.indexed_write:
                    env[target] = env.get(target, _UNTAINTED).join(fact)
                else:
                    env[target] = fact
        elif stmt.kind == IRKind.DECLARE:
            for target in stmt.targets:
                env[target] = _UNTAINTED
        elif stmt.kind in (IRKind.REQUIRE, IRKind.ASSERT):
            for name in self._sanitized(stmt.value, env, True):
                env[name] = _UNTAINTED
        for target in stmt.yul_assigned:
            env[target] = _UNKNOWN

    def edge_env(self, cfg: CFG, block_id: int, succ_index: int, env: Env) -> Env:
        term = cfg.blocks[block_id].terminator
        if term is None or term.kind != IRKind.BRANCH or len(cfg.blocks[block_id].successors) != 2:
            return env
        cleared = self._sanitized(term.value, env, succ_index == 0)
        if not cleared:
            return env
        out = dict(env)
        for name in cleared:
            out[name] = _UNTAINTED
        return out

    def _sanitized(self, cond: Any, env: Mapping[str, DataflowFact], truth: bool) -> list[str]:
        """Variables proven equal to an untainted value when ``cond`` has ``truth``."""
        if not isinstance(cond, dict):
            return []
        nt = cond.get("nodeType", "")
        if nt == "UnaryOperation" and cond.get("operator") == "!":
            return self._sanitized(cond.get("subExpression"), env, not truth)
        if nt == "TupleExpression":
            comps = [c for c in cond.get("components") or [] if c]
            return self._sanitized(comps[0], env, truth) if len(comps) == 1 else []
        if nt != "BinaryOperation":
            return []
        op = cond.get("operator")
        if (op == "&&" and truth) or (op == "||" and not truth):
            return (self._sanitized(cond.get("leftExpression"), env, truth)
                    + self._sanitized(cond.get("rightExpression"), env, truth))
        if not ((op == "==" and truth) or (op == "!=" and not truth)):
            return []
        out = []
        left, right = cond.get("leftExpression") or {}, cond.get("rightExpression") or {}
        for side, other in ((left, right), (right, left)):
            name = _checked_name(side)
            if name and not self.evaluate(other, env) and _has_reads(other):
                out.append(name)
        return out


def _checked_name(node: dict[str, Any]) -> str:
    if node.get("nodeType") == "Identifier":
        return node.get("name", "")
    if node.get("nodeType") == "MemberAccess":
        base = node.get("expression") or {}
        if base.get("nodeType") == "Identifier" and base.get("name") in ("msg", "tx"):
            return f"{base['name']}.{node.get('memberName', '')}"
    return ""


def _has_reads(node: Any) -> bool:
    """True unless the expression is a bare literal."""
    return isinstance(node, dict) and node.get("nodeType") not in ("Literal", None)


def collect_taint_hits(cfg: CFG, result: FlowResult, taint: TaintAnalysis) -> list[TaintHit]:
    """Evaluate every sink in the CFG against the taint fixed point."""
    hits: list[TaintHit] = []
    live = set(cfg.reverse_postorder())
    for bid, i, stmt in cfg.statements():
        if bid not in live:
            continue
        env = result.before(bid, i)

        def hit(sink: SinkKind, sources: frozenset[TaintKind], span: SourceSpan, **extra: Any) -> None:
            if sources:
                hits.append(TaintHit(sink, sources, bid, i, stmt, span, **extra))

        if stmt.kind == IRKind.ASSIGN and stmt.state_targets:
            sources = taint.evaluate(stmt.value, env) | _lhs_index_taint(taint, stmt.lhs, env)
            hit(SinkKind.STATE_WRITE, sources, stmt.span, detail=", ".join(stmt.state_targets))

        if stmt.kind == IRKind.SELFDESTRUCT:
            hit(SinkKind.SELFDESTRUCT, taint.evaluate(stmt.value, env), stmt.span)

        if stmt.is_check:
            hit(SinkKind.CONDITION, taint.evaluate(stmt.value, env), stmt.span)
            for cmp in stmt.comparisons:
                sources = taint.evaluate(cmp.left, env) | taint.evaluate(cmp.right, env)
                if cmp.is_equality:
                    hit(SinkKind.AUTH_CHECK, sources, cmp.span, comparison=cmp)
                if TaintKind.PACKED_HASH in sources:
                    hit(SinkKind.HASH_COMPARISON, sources, cmp.span, comparison=cmp)

        for call in stmt.calls:
            shape = classify_call(call.node)
            if call.kind == CallKind.BUILTIN and call.name == "ecrecover":
                sources = frozenset().union(*(taint.evaluate(a, env) for a in shape.arguments)) if shape.arguments else frozenset()
                hit(SinkKind.SIGNATURE_INPUT, sources, call.span, call=call)
            if call.kind in (CallKind.DELEGATECALL, CallKind.CALLCODE):
                hit(SinkKind.DELEGATECALL, taint.evaluate(shape.base, env), call.span, call=call, detail="target")
            if call.is_low_level:
                data = frozenset().union(*(taint.evaluate(a, env) for a in shape.arguments)) if shape.arguments else frozenset()
                hit(SinkKind.LOW_LEVEL_CALL, data, call.span, call=call, detail="data")
            if call.sends_value:
                hit(SinkKind.ETHER_TRANSFER, taint.evaluate(shape.base, env), call.span, call=call, detail="target")
    return hits


def _lhs_index_taint(taint: TaintAnalysis, lhs: Any, env: Mapping[str, DataflowFact]) -> frozenset[TaintKind]:
    out: set[TaintKind] = set()
    node = lhs
    while isinstance(node, dict):
        nt = node.get("nodeType", "")
        if nt == "IndexAccess":
            out |= taint.evaluate(node.get("indexExpression"), env)
            node = node.get("baseExpression")
        elif nt == "MemberAccess":
            node = node.get("expression")
        else:
            break
    return frozenset(out)


# ── Ranges ───────────────────────────────────────────────────────────────────


UINT256 = TypeDescriptor.from_type_string("uint256")
ARITHMETIC_OPS = frozenset({"+", "-", "*", "**"})
_NEGATED = {"<": ">=", "<=": ">", ">": "<=", ">=": "<", "==": "!=", "!=": "=="}
_MIRRORED = {"<": ">", "<=": ">=", ">": "<", ">=": "<=", "==": "==", "!=": "!="}
_UINT_GLOBALS = frozenset({
    "msg.value", "block.timestamp", "block.number", "block.difficulty",
    "block.prevrandao", "block.gaslimit", "block.basefee", "tx.gasprice",
})


@dataclass(frozen=True)
class OverflowCandidate:
    """An unchecked arithmetic operation whose interval leaves its type's range."""
    block: int
    index: int
    statement: IRStatement
    span: SourceSpan
    operator: str
    low: int
    high: int
    type_name: str
    definite: bool
    precise: bool
    operands: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComparisonCandidate:
    """A comparison against a constant the variable's type can never reach."""
    block: int
    index: int
    statement: IRStatement
    span: SourceSpan
    variable: str
    type_name: str
    constant: int


def _arith(op: str, a: tuple[int, int], b: tuple[int, int]) -> tuple[int, int] | None:
    (alo, ahi), (blo, bhi) = a, b
    if op == "+":
        return alo + blo, ahi + bhi
    if op == "-":
        return alo - bhi, ahi - blo
    if op == "*":
        corners = (alo * blo, alo * bhi, ahi * blo, ahi * bhi)
        return min(corners), max(corners)
    if op == "/":
        if blo <= 0 <= bhi:
            if blo == bhi == 0:
                return None
            m = max(abs(alo), abs(ahi))
            return -m, m
        corners = (_tdiv(alo, blo), _tdiv(alo, bhi), _tdiv(ahi, blo), _tdiv(ahi, bhi))
        return min(corners), max(corners)
    if op == "%":
        if alo >= 0 and blo > 0:
            return 0, min(ahi, bhi - 1)
        return None
    if op == "**":
        if alo >= 0 and blo >= 0 and bhi <= 256 and ahi <= 2**256:
            return alo ** blo, ahi ** bhi
        return None
    if op == ">>":
        if alo >= 0 and blo >= 0:
            return alo >> min(bhi, 512), ahi >> blo
        return None
    if op == "<<":
        if alo >= 0 and blo >= 0 and bhi <= 256:
            return alo << blo, ahi << bhi
        return None
    if op == "&":
        if alo >= 0 and blo >= 0:
            return 0, min(ahi, bhi)
        return None
    return None


def _tdiv(x: int, y: int) -> int:
    q = abs(x) // abs(y)
    return q if (x >= 0) == (y > 0) else -q


class RangeAnalysis(ForwardAnalysis):
    """Integer interval analysis.

    Seeds parameters with their type's range and fresh locals with zero,
    refines on ``require``/``assert`` and on branch edges, forgets state
    variables at external calls and widens to ``UNKNOWN`` at loop headers
    (and after repeated growth anywhere else).
    """

    name = "range"
    MAX_GROWTH = 2

    def __init__(
        self,
        scope: FunctionScope,
        language: LanguageContext,
        parameters: tuple[str, ...] = (),
    ) -> None:
        self._scope = scope
        self._language = language
        self._params = parameters
        self._growth: dict[tuple[int, str], int] = {}
        self.unchecked_context = False

    def initial_env(self) -> Env:
        env: Env = {}
        for name in self._params:
            t = self._scope.type_of(name)
            if t is not None and t.is_integer:
                env[name] = DataflowFact.interval(t.min_value, t.max_value)
        return env

    def value_height(self, cfg: CFG) -> int:
        return self.MAX_GROWTH + 2

    # ── typing ───────────────────────────────────────────────────────

    def node_type(self, node: Any) -> TypeDescriptor | None:
        if not isinstance(node, dict):
            return None
        ts = (node.get("typeDescriptions") or {}).get("typeString") or ""
        if ts and not ts.startswith(("int_const", "rational_const")):
            t = TypeDescriptor.from_type_string(ts)
            return t if t.name else None
        nt = node.get("nodeType", "")
        if nt == "Identifier":
            return self._scope.type_of(node.get("name", ""))
        if nt == "IndexAccess":
            base = self.node_type(node.get("baseExpression"))
            return base.element_type() if base is not None and base.element else None
        if nt == "MemberAccess":
            base = node.get("expression") or {}
            name = f"{base.get('name', '')}.{node.get('memberName', '')}"
            if name in _UINT_GLOBALS or node.get("memberName") == "length":
                return UINT256
            return None
        if nt == "TupleExpression":
            comps = [c for c in node.get("components") or [] if c]
            return self.node_type(comps[0]) if len(comps) == 1 else None
        if nt == "BinaryOperation" and node.get("operator") in ARITHMETIC_OPS | {"/", "%"}:
            return self.node_type(node.get("leftExpression")) or self.node_type(node.get("rightExpression"))
        if nt == "UnaryOperation":
            return self.node_type(node.get("subExpression"))
        if nt == "FunctionCall" and classify_call(node).conversion:
            callee = node.get("expression") or {}
            tn = callee.get("typeName")
            name = tn.get("name", "") if isinstance(tn, dict) else str(tn or "")
            return TypeDescriptor.from_type_string(name) if name else None
        return None

    def _full(self, node: Any) -> tuple[int, int] | None:
        t = self.node_type(node)
        if t is not None and t.is_integer:
            return t.min_value, t.max_value
        return None

    # ── evaluation ───────────────────────────────────────────────────

    def evaluate(self, node: Any, env: Mapping[str, DataflowFact]) -> DataflowFact:
        bounds = self.interval(node, env)
        return DataflowFact.interval(*bounds) if bounds is not None else _UNKNOWN

    def interval(self, node: Any, env: Mapping[str, DataflowFact], typed_fallback: bool = False) -> tuple[int, int] | None:
        """Interval of an integer expression, or None when unknown.

        With ``typed_fallback`` an unknown but integer-typed operand counts as
        its type's full range.
        """
        if not isinstance(node, dict):
            return None
        nt = node.get("nodeType", "")

        if nt == "Literal":
            value = literal_int(node)
            return (value, value) if value is not None else None

        if nt == "Identifier":
            fact = env.get(node.get("name", ""))
            if fact is not None and fact.bounds is not None:
                return fact.bounds
            if fact is None or typed_fallback:
                return self._full(node)
            return None

        if nt in ("IndexAccess", "MemberAccess"):
            return self._full(node)

        if nt == "TupleExpression":
            comps = [c for c in node.get("components") or [] if c]
            return self.interval(comps[0], env, typed_fallback) if len(comps) == 1 else None

        if nt == "BinaryOperation":
            op = node.get("operator", "")
            left = self.interval(node.get("leftExpression"), env, typed_fallback)
            right = self.interval(node.get("rightExpression"), env, typed_fallback)
            if left is None or right is None:
                return None
            raw = _arith(op, left, right)
            if raw is None:
                return None
            t = self.node_type(node)
            if t is not None and t.is_integer and not (t.min_value <= raw[0] and raw[1] <= t.max_value):
                # Result wraps (unchecked) or reverts (checked): any value of the type remains possible
                if self._language.checked_arithmetic and not self.unchecked_context:
                    return max(raw[0], t.min_value), min(raw[1], t.max_value)
                return t.min_value, t.max_value
            return raw

        if nt == "UnaryOperation" and node.get("operator") == "-":
            inner = self.interval(node.get("subExpression"), env, typed_fallback)
            return (-inner[1], -inner[0]) if inner is not None else None

        if nt == "Conditional":
            a = self.interval(node.get("trueExpression"), env, typed_fallback)
            b = self.interval(node.get("falseExpression"), env, typed_fallback)
            if a is None or b is None:
                return None
            return min(a[0], b[0]), max(a[1], b[1])

        if nt == "FunctionCall":
            shape = classify_call(node)
            if shape.conversion and len(shape.arguments) == 1:
                t = self.node_type(node)
                inner = self.interval(shape.arguments[0], env, typed_fallback)
                if t is None or not t.is_integer:
                    return inner
                if inner is not None and t.min_value <= inner[0] and inner[1] <= t.max_value:
                    return inner
                return t.min_value, t.max_value
            return self._full(node)

        return None

    # ── transfer ─────────────────────────────────────────────────────

    def transfer(self, stmt: IRStatement, env: Env, block_id: int, index: int) -> None:
        self.unchecked_context = stmt.unchecked
        if stmt.kind == IRKind.ASSIGN and not stmt.indexed_write:
            for target in stmt.targets:
                t = self._scope.type_of(target)
                if t is None or not t.is_integer:
                    continue
                bounds = self._assigned_bounds(stmt, target, env, t)
                env[target] = DataflowFact.interval(*bounds) if bounds is not None else _UNKNOWN
        elif stmt.kind == IRKind.DECLARE:
            for target in stmt.targets:
                t = self._scope.type_of(target)
                if t is not None and t.is_integer:
                    env[target] = DataflowFact.interval(0, 0)
        elif stmt.kind in (IRKind.REQUIRE, IRKind.ASSERT):
            self._refine(stmt.value, env, True)

        if any(c.is_external for c in stmt.calls):
            for name in list(env):
                if self._scope.is_state(name):
                    env[name] = _UNKNOWN
        for target in stmt.yul_assigned:
            env[target] = _UNKNOWN
        self.unchecked_context = False

    def _assigned_bounds(
        self, stmt: IRStatement, target: str, env: Env, t: TypeDescriptor
    ) -> tuple[int, int] | None:
        if len(stmt.targets) > 1:
            return None
        current = env.get(target)
        cur = current.bounds if current is not None and current.bounds else (
            (t.min_value, t.max_value) if current is None or current.kind == FactKind.UNKNOWN else None
        )
        op = stmt.operator
        if op == "delete":
            return 0, 0
        if op in ("++", "--"):
            raw = _arith("+" if op == "++" else "-", cur, (1, 1)) if cur else None
        elif op == "=":
            raw = self.interval(stmt.value, env)
        else:
            value = self.interval(stmt.value, env)
            raw = _arith(op[:-1], cur, value) if cur and value else None
        if raw is None:
            return None
        if t.min_value <= raw[0] and raw[1] <= t.max_value:
            return raw
        if self._language.checked_arithmetic and not stmt.unchecked:
            lo, hi = max(raw[0], t.min_value), min(raw[1], t.max_value)
            return (lo, hi) if lo <= hi else (t.min_value, t.max_value)
        return t.min_value, t.max_value

    def edge_env(self, cfg: CFG, block_id: int, succ_index: int, env: Env) -> Env:
        block = cfg.blocks[block_id]
        term = block.terminator
        if term is None or term.kind != IRKind.BRANCH or len(block.successors) != 2:
            return env
        out = dict(env)
        self._refine(term.value, out, succ_index == 0)
        return out

    def _refine(self, cond: Any, env: Env, truth: bool) -> None:
        if not isinstance(cond, dict):
            return
        nt = cond.get("nodeType", "")
        if nt == "UnaryOperation" and cond.get("operator") == "!":
            self._refine(cond.get("subExpression"), env, not truth)
            return
        if nt == "TupleExpression":
            comps = [c for c in cond.get("components") or [] if c]
            if len(comps) == 1:
                self._refine(comps[0], env, truth)
            return
        if nt != "BinaryOperation":
            return
        op = cond.get("operator", "")
        left, right = cond.get("leftExpression") or {}, cond.get("rightExpression") or {}
        if (op == "&&" and truth) or (op == "||" and not truth):
            self._refine(left, env, truth)
            self._refine(right, env, truth)
            return
        if op not in _NEGATED:
            return
        if not truth:
            op = _NEGATED[op]
        if left.get("nodeType") == "Identifier":
            self._narrow(left.get("name", ""), op, self.interval(right, env), env)
        if right.get("nodeType") == "Identifier":
            self._narrow(right.get("name", ""), _MIRRORED[op], self.interval(left, env), env)

    def _narrow(self, name: str, op: str, other: tuple[int, int] | None, env: Env) -> None:
        t = self._scope.type_of(name)
        if other is None or t is None or not t.is_integer:
            return
        current = env.get(name)
        lo, hi = current.bounds if current is not None and current.bounds else (t.min_value, t.max_value)
        olo, ohi = other
        if op == "<":
            hi = min(hi, ohi - 1)
        elif op == "<=":
            hi = min(hi, ohi)
        elif op == ">":
            lo = max(lo, olo + 1)
        elif op == ">=":
            lo = max(lo, olo)
        elif op == "==":
            lo, hi = max(lo, olo), min(hi, ohi)
        else:
            return
        if lo <= hi:
            env[name] = DataflowFact.interval(lo, hi)

    def widen(self, cfg: CFG, block_id: int, old: Env, new: Env) -> Env:
        out = dict(new)
        for name, fact in new.items():
            before = old.get(name)
            if before is None or before == fact or not (fact.is_range and before.is_range):
                continue
            key = (block_id, name)
            self._growth[key] = self._growth.get(key, 0) + 1
            if block_id in cfg.loop_headers or self._growth[key] >= self.MAX_GROWTH:
                out[name] = _UNKNOWN
        return out

    # ── candidates ───────────────────────────────────────────────────

    def unchecked_at(self, stmt: IRStatement) -> bool:
        return stmt.unchecked or not self._language.checked_arithmetic


def collect_overflow_candidates(cfg: CFG, result: FlowResult, ranges: RangeAnalysis) -> list[OverflowCandidate]:
    """Arithmetic in unchecked context whose interval can leave its type."""
    out: list[OverflowCandidate] = []
    live = set(cfg.reverse_postorder())
    for bid, i, stmt in cfg.statements():
        if bid not in live or not ranges.unchecked_at(stmt):
            continue
        env = result.before(bid, i)
        ranges.unchecked_context = True

        if stmt.kind == IRKind.ASSIGN and stmt.operator in ("+=", "-=", "*=", "++", "--") and stmt.lhs is not None:
            t = ranges.node_type(stmt.lhs)
            if t is not None and t.is_integer:
                op = {"+=": "+", "-=": "-", "*=": "*", "++": "+", "--": "-"}[stmt.operator]
                cur = ranges.interval(stmt.lhs, env, typed_fallback=True) or (t.min_value, t.max_value)
                value = (1, 1) if stmt.operator in ("++", "--") else ranges.interval(stmt.value, env, typed_fallback=True)
                cand = _candidate(bid, i, stmt, stmt.span, op, cur, value, t, ranges, stmt.lhs, stmt.value, literal_rhs=stmt.operator in ("++", "--"))
                if cand is not None:
                    out.append(cand)

        for node in _arithmetic_nodes(stmt.node if stmt.node else stmt.value):
            t = ranges.node_type(node)
            if t is None or not t.is_integer:
                continue
            left, right = node.get("leftExpression"), node.get("rightExpression")
            if literal_int(left) is not None and literal_int(right) is not None:
                continue
            a = ranges.interval(left, env, typed_fallback=True)
            b = ranges.interval(right, env, typed_fallback=True)
            if a is None or b is None:
                continue
            cand = _candidate(bid, i, stmt, SourceSpan.from_src(node.get("src")), node["operator"], a, b, t, ranges, left, right)
            if cand is not None:
                out.append(cand)
        ranges.unchecked_context = False
    return out


def _candidate(
    bid: int, index: int, stmt: IRStatement, span: SourceSpan, op: str,
    a: tuple[int, int] | None, b: tuple[int, int] | None, t: TypeDescriptor,
    ranges: RangeAnalysis, left: Any, right: Any, literal_rhs: bool = False,
) -> OverflowCandidate | None:
    if a is None or b is None:
        return None
    raw = _arith(op, a, b)
    if raw is None or (t.min_value <= raw[0] and raw[1] <= t.max_value):
        return None
    definite = raw[1] < t.min_value or raw[0] > t.max_value
    full_a = ranges._full(left)
    full_b = None if literal_rhs else ranges._full(right)
    precise = (full_a is None or a != full_a) and (literal_rhs or full_b is None or b != full_b)
    return OverflowCandidate(
        block=bid, index=index, statement=stmt, span=span, operator=op,
        low=raw[0], high=raw[1], type_name=t.name, definite=definite, precise=precise,
        operands=tuple(n for n in (root_name(left), root_name(right) if not literal_rhs else "") if n),
    )


def _arithmetic_nodes(node: Any) -> Iterator[dict[str, Any]]:
    if isinstance(node, list):
        for item in node:
            yield from _arithmetic_nodes(item)
        return
    if not isinstance(node, dict):
        return
    if node.get("nodeType") == "BinaryOperation" and node.get("operator") in ARITHMETIC_OPS:
        yield node
    if node.get("nodeType") in ("FunctionDefinition", "ModifierDefinition", "Block", "UncheckedBlock"):
        return
    for key, value in node.items():
        if key in ("typeDescriptions", "typeName"):
            continue
        if isinstance(value, (dict, list)):
            yield from _arithmetic_nodes(value)


def collect_constant_comparisons(cfg: CFG, result: FlowResult, ranges: RangeAnalysis) -> list[ComparisonCandidate]:
    """Comparisons of an integer variable against a constant outside its type."""
    out: list[ComparisonCandidate] = []
    for bid, i, stmt in cfg.statements():
        for cmp in stmt.comparisons:
            for var_node, const_node in ((cmp.left, cmp.right), (cmp.right, cmp.left)):
                if var_node.get("nodeType") != "Identifier":
                    continue
                value = literal_int(const_node)
                t = ranges.node_type(var_node)
                if value is None or t is None or not t.is_integer:
                    continue
                if value > t.max_value or value < t.min_value:
                    out.append(ComparisonCandidate(
                        block=bid, index=i, statement=stmt, span=cmp.span,
                        variable=var_node.get("name", ""), type_name=t.name, constant=value,
                    ))
    return out


# ── Call effects ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CallEffect:
    """What a low-level call's surroundings do with its outcome."""
    call: CallSite
    block: int
    index: int
    statement: IRStatement
    checked: bool
    checked_at: SourceSpan | None = None
    state_write_after: bool = False


def compute_call_effects(cfg: CFG, reaching: FlowResult) -> list[CallEffect]:
    effects: list[CallEffect] = []
    live = set(cfg.reverse_postorder())
    for bid, i, stmt, call in cfg.call_sites():
        if bid not in live or not call.is_low_level:
            continue
        checked, at = _success_checked(cfg, reaching, live, bid, i, stmt, call)
        writes_after = any(s.writes_state for _, _, s in cfg.statements_after(bid, i))
        effects.append(CallEffect(
            call=call, block=bid, index=i, statement=stmt,
            checked=checked, checked_at=at, state_write_after=writes_after,
        ))
    return effects


def _success_checked(
    cfg: CFG, reaching: FlowResult, live: set[int], bid: int, index: int,
    stmt: IRStatement, call: CallSite,
) -> tuple[bool, SourceSpan | None]:
    if call.usage in (ResultUsage.CONDITION, ResultUsage.NESTED, ResultUsage.RETURNED):
        return True, stmt.span
    if call.usage == ResultUsage.DISCARDED:
        return False, None
    var = call.success_var
    if not var:
        return False, None

    # Follow the success flag through plain copies (``ok = success``)
    pending = [DefSite(var, bid, index)]
    seen: set[DefSite] = set()
    while pending:
        site = pending.pop()
        if site in seen:
            continue
        seen.add(site)
        for b2, i2, s2 in cfg.statements():
            if b2 not in live or site.var not in s2.reads:
                continue
            if site not in reaching.before(b2, i2).get(site.var, frozenset()):
                continue
            if s2.is_check or s2.kind == IRKind.RETURN:
                return True, s2.span
            if any(site.var in c.arg_reads for c in s2.calls):
                return True, s2.span
            if s2.kind == IRKind.ASSIGN:
                pending.extend(DefSite(t, b2, i2) for t in s2.targets)
    return False, None


# ── Per-function driver ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class FunctionFacts:
    """Every dataflow fact computed for one function or modifier."""
    reaching: FlowResult
    taint: FlowResult
    ranges: FlowResult
    taint_hits: tuple[TaintHit, ...] = ()
    overflow_candidates: tuple[OverflowCandidate, ...] = ()
    comparison_candidates: tuple[ComparisonCandidate, ...] = ()
    call_effects: tuple[CallEffect, ...] = ()
    taint_analysis: TaintAnalysis | None = field(default=None, compare=False, repr=False)
    range_analysis: RangeAnalysis | None = field(default=None, compare=False, repr=False)

    def hits(self, sink: SinkKind, source: TaintKind | None = None) -> list[TaintHit]:
        return [h for h in self.taint_hits if h.sink == sink and (source is None or source in h.sources)]


def analyze_function(
    cfg: CFG,
    scope: FunctionScope,
    language: LanguageContext,
    *,
    externally_reachable: bool = False,
    cancel: CancellationToken | None = None,
) -> FunctionFacts:
    """Run every analysis over one CFG.

    Raises:
        AnalysisError: if a fixed point exceeds its join-step bound.
        ScanCancelled: if ``cancel`` fires mid-analysis.
    """
    solver = FixpointSolver(cancel)
    params = scope.parameters

    reaching = solver.solve(cfg, ReachingDefinitions())

    taint_analysis = TaintAnalysis(scope, params if externally_reachable else ())
    taint = solver.solve(cfg, taint_analysis)

    range_analysis = RangeAnalysis(scope, language, params)
    ranges = solver.solve(cfg, range_analysis)

    return FunctionFacts(
        reaching=reaching,
        taint=taint,
        ranges=ranges,
        taint_hits=tuple(collect_taint_hits(cfg, taint, taint_analysis)),
        overflow_candidates=tuple(collect_overflow_candidates(cfg, ranges, range_analysis)),
        comparison_candidates=tuple(collect_constant_comparisons(cfg, ranges, range_analysis)),
        call_effects=tuple(compute_call_effects(cfg, reaching)),
        taint_analysis=taint_analysis,
        range_analysis=range_analysis,
    )
