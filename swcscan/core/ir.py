"""Typed statement IR lowered from the Solidity JSON AST.

Every CFG block holds ``IRStatement``s. A statement keeps what the analyses
and detectors need without re-walking the AST:

  - the variables it reads, including pseudo-variables for globals
    (``msg.sender``, ``tx.origin``, ``block.timestamp``, ``arr.length``)
  - the variables it writes and whether any of them is state
  - every call site it contains, classified (low-level, high-level,
    internal, builtin) with value/gas options and how the result is used
  - comparisons appearing in it (for authorization and range reasoning)
  - raw inline-assembly storage/memory writes
  - deprecated constructs seen while lowering

The raw AST node stays attached so expression-level analyses (taint, range)
can evaluate sub-expressions.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Protocol

from swcscan.core.errors import LoweringError
from swcscan.core.types import SourceSpan


# ── Enums ────────────────────────────────────────────────────────────────────


class CallKind(str, Enum):
    """How a call site transfers control."""
    CALL = "call"
    DELEGATECALL = "delegatecall"
    CALLCODE = "callcode"
    STATICCALL = "staticcall"
    SEND = "send"
    TRANSFER = "transfer"
    HIGH_LEVEL = "high_level"
    INTERNAL = "internal"
    BUILTIN = "builtin"
    CREATE = "create"


LOW_LEVEL_CALLS = frozenset({
    CallKind.CALL, CallKind.DELEGATECALL, CallKind.CALLCODE, CallKind.STATICCALL, CallKind.SEND,
})
EXTERNAL_CALLS = LOW_LEVEL_CALLS | {CallKind.TRANSFER, CallKind.HIGH_LEVEL, CallKind.CREATE}


class SinkKind(str, Enum):
    """Dangerous operations a function may contain or a taint may reach."""
    STATE_WRITE = "state_write"
    SELFDESTRUCT = "selfdestruct"
    DELEGATECALL = "delegatecall"
    LOW_LEVEL_CALL = "low_level_call"
    ETHER_TRANSFER = "ether_transfer"
    AUTH_CHECK = "auth_check"
    SIGNATURE_INPUT = "signature_input"
    CONDITION = "condition"
    HASH_COMPARISON = "hash_comparison"


class ResultUsage(str, Enum):
    """What happens to a call's return value."""
    DISCARDED = "discarded"
    ASSIGNED = "assigned"
    CONDITION = "condition"
    RETURNED = "returned"
    NESTED = "nested"


class IRKind(str, Enum):
    ASSIGN = "assign"
    DECLARE = "declare"
    EXPR = "expr"
    BRANCH = "branch"
    REQUIRE = "require"
    ASSERT = "assert"
    RETURN = "return"
    REVERT = "revert"
    SELFDESTRUCT = "selfdestruct"
    ASSEMBLY_WRITE = "assembly_write"
    PLACEHOLDER = "placeholder"


TERMINAL_KINDS = frozenset({IRKind.RETURN, IRKind.REVERT})
CHECK_KINDS = frozenset({IRKind.BRANCH, IRKind.REQUIRE, IRKind.ASSERT})

COMPARISON_OPS = frozenset({"==", "!=", "<", "<=", ">", ">="})

BUILTIN_FUNCTIONS = frozenset({
    "require", "assert", "revert", "selfdestruct", "suicide",
    "keccak256", "sha3", "sha256", "ripemd160", "ecrecover",
    "blockhash", "gasleft", "addmod", "mulmod",
})
HASH_FUNCTIONS = frozenset({"keccak256", "sha3", "sha256", "ripemd160"})
GLOBAL_OBJECTS = frozenset({"msg", "tx", "block"})

# Deprecated construct -> replacement
DEPRECATED_CALLS = {
    "suicide": "selfdestruct",
    "sha3": "keccak256",
    "callcode": "delegatecall",
    "block.blockhash": "blockhash",
}


class Scope(Protocol):
    """Name resolution the lowering needs; implemented by the resolver."""

    def is_state(self, name: str) -> bool: ...

    def is_contract_name(self, name: str) -> bool: ...

    def type_string(self, name: str) -> str: ...


# ── IR records ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CallSite:
    """One call expression inside a statement."""
    id: int
    kind: CallKind
    name: str
    span: SourceSpan
    target: str = ""
    target_reads: frozenset[str] = frozenset()
    arg_reads: frozenset[str] = frozenset()
    has_value: bool = False
    gas_option: bool = False
    gas_literal: int | None = None
    usage: ResultUsage = ResultUsage.NESTED
    result_vars: tuple[str | None, ...] = ()
    arg_types: tuple[str, ...] = ()
    node: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_low_level(self) -> bool:
        return self.kind in LOW_LEVEL_CALLS

    @property
    def is_external(self) -> bool:
        return self.kind in EXTERNAL_CALLS

    @property
    def sends_value(self) -> bool:
        return self.kind in (CallKind.TRANSFER, CallKind.SEND) or self.has_value

    @property
    def success_var(self) -> str | None:
        return self.result_vars[0] if self.result_vars else None


@dataclass(frozen=True)
class Comparison:
    """A relational or equality test found in an expression."""
    operator: str
    left_reads: frozenset[str]
    right_reads: frozenset[str]
    span: SourceSpan
    left: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    right: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def reads(self) -> frozenset[str]:
        return self.left_reads | self.right_reads

    @property
    def is_equality(self) -> bool:
        return self.operator in ("==", "!=")

    def sides(self) -> tuple[tuple[frozenset[str], frozenset[str]], ...]:
        return ((self.left_reads, self.right_reads), (self.right_reads, self.left_reads))


@dataclass(frozen=True)
class AssemblyWrite:
    """An ``sstore``/``mstore``/``mstore8`` inside inline assembly."""
    op: str
    slot_constant: bool
    slot_text: str
    span: SourceSpan


@dataclass(frozen=True)
class IRStatement:
    kind: IRKind
    span: SourceSpan
    reads: frozenset[str] = frozenset()
    targets: tuple[str, ...] = ()
    state_targets: tuple[str, ...] = ()
    indexed_write: bool = False
    index_reads: frozenset[str] = frozenset()
    writes_length: bool = False
    operator: str = ""
    calls: tuple[CallSite, ...] = ()
    comparisons: tuple[Comparison, ...] = ()
    assembly: AssemblyWrite | None = None
    yul_assigned: tuple[str, ...] = ()
    unchecked: bool = False
    is_declaration: bool = False
    declared_type: str | None = None
    storage_location: str = ""
    deprecated: tuple[str, ...] = ()
    value: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    lhs: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    node: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    @property
    def is_check(self) -> bool:
        return self.kind in CHECK_KINDS

    @property
    def writes_state(self) -> bool:
        if self.kind == IRKind.ASSEMBLY_WRITE:
            return self.assembly is not None and self.assembly.op == "sstore"
        return bool(self.state_targets)

    def calls_of(self, *kinds: CallKind) -> list[CallSite]:
        return [c for c in self.calls if c.kind in kinds]

    def calls_named(self, *names: str) -> list[CallSite]:
        return [c for c in self.calls if c.name in names]


# ── Call classification ──────────────────────────────────────────────────────


@dataclass
class CallShape:
    """Structural view of a FunctionCall node, before scope refinement."""
    kind: CallKind
    name: str
    base: dict[str, Any] | None
    arguments: list[dict[str, Any]]
    options: dict[str, dict[str, Any]]
    conversion: bool = False


def classify_call(node: dict[str, Any]) -> CallShape:
    """Classify a FunctionCall node from its syntax alone.

    Handles both option syntaxes for low-level calls:
    ``to.call{value: v, gas: g}(data)`` and the legacy ``to.call.value(v).gas(g)(data)``.
    """
    callee = node.get("expression") or {}
    arguments = [a for a in node.get("arguments") or [] if isinstance(a, dict)]
    options: dict[str, dict[str, Any]] = {}

    while True:
        ct = callee.get("nodeType", "")
        if ct == "FunctionCallOptions":
            for name, opt in zip(callee.get("names") or [], callee.get("options") or []):
                options[name] = opt
            callee = callee.get("expression") or {}
            continue
        if ct == "FunctionCall":
            inner = callee.get("expression") or {}
            if inner.get("nodeType") == "MemberAccess" and inner.get("memberName") in ("value", "gas"):
                inner_args = callee.get("arguments") or []
                if inner_args:
                    options[inner["memberName"]] = inner_args[0]
                callee = inner.get("expression") or {}
                continue
        break

    ct = callee.get("nodeType", "")
    if node.get("kind") == "typeConversion" or ct == "ElementaryTypeNameExpression":
        return CallShape(CallKind.BUILTIN, "conversion", None, arguments, options, conversion=True)
    if node.get("kind") == "structConstructorCall":
        return CallShape(CallKind.INTERNAL, "struct", None, arguments, options, conversion=True)
    if ct == "NewExpression":
        return CallShape(CallKind.CREATE, "new", None, arguments, options)

    if ct == "Identifier":
        name = callee.get("name", "")
        if name in BUILTIN_FUNCTIONS:
            return CallShape(CallKind.BUILTIN, name, None, arguments, options)
        return CallShape(CallKind.INTERNAL, name, None, arguments, options)

    if ct == "MemberAccess":
        member = callee.get("memberName", "")
        base = callee.get("expression") or {}
        base_name = base.get("name", "") if base.get("nodeType") == "Identifier" else ""
        if base_name == "abi":
            return CallShape(CallKind.BUILTIN, f"abi.{member}", None, arguments, options)
        if base_name == "block" and member == "blockhash":
            return CallShape(CallKind.BUILTIN, "block.blockhash", None, arguments, options)
        if base_name == "super":
            return CallShape(CallKind.INTERNAL, member, None, arguments, options)
        low_level = {
            "call": CallKind.CALL,
            "delegatecall": CallKind.DELEGATECALL,
            "callcode": CallKind.CALLCODE,
            "staticcall": CallKind.STATICCALL,
        }
        if member in low_level and not _is_contract_typed(base):
            return CallShape(low_level[member], member, base, arguments, options)
        if member in ("transfer", "send") and len(arguments) == 1 and not _is_contract_typed(base):
            kind = CallKind.TRANSFER if member == "transfer" else CallKind.SEND
            return CallShape(kind, member, base, arguments, options)
        return CallShape(CallKind.HIGH_LEVEL, member, base, arguments, options)

    return CallShape(CallKind.INTERNAL, "", None, arguments, options)


def _type_string(node: dict[str, Any] | None) -> str:
    if not isinstance(node, dict):
        return ""
    return (node.get("typeDescriptions") or {}).get("typeString") or ""


def _is_contract_typed(node: dict[str, Any]) -> bool:
    ts = _type_string(node)
    return ts.startswith("contract ") or ts.startswith("interface ")


def root_name(node: dict[str, Any] | None) -> str:
    """Name of the variable at the root of an lvalue-like expression."""
    if not isinstance(node, dict):
        return ""
    nt = node.get("nodeType", "")
    if nt == "Identifier":
        return node.get("name", "")
    if nt in ("IndexAccess", "IndexRangeAccess"):
        return root_name(node.get("baseExpression"))
    if nt == "MemberAccess":
        return root_name(node.get("expression"))
    if nt == "TupleExpression":
        comps = [c for c in node.get("components") or [] if c]
        if len(comps) == 1:
            return root_name(comps[0])
    return ""


def expression_text(node: dict[str, Any] | None) -> str:
    """Readable text for an expression node."""
    if not isinstance(node, dict):
        return ""
    nt = node.get("nodeType", "")
    if nt == "Identifier":
        return node.get("name", "")
    if nt == "MemberAccess":
        return f"{expression_text(node.get('expression'))}.{node.get('memberName', '')}"
    if nt == "IndexAccess":
        return f"{expression_text(node.get('baseExpression'))}[{expression_text(node.get('indexExpression'))}]"
    if nt == "Literal":
        return str(node.get("value", ""))
    if nt == "FunctionCall":
        return f"{expression_text(node.get('expression'))}(...)"
    if nt == "FunctionCallOptions":
        return expression_text(node.get("expression"))
    if nt == "ElementaryTypeNameExpression":
        tn = node.get("typeName")
        return tn.get("name", "") if isinstance(tn, dict) else str(tn or "")
    if nt == "TupleExpression":
        return "(" + ", ".join(expression_text(c) for c in node.get("components") or []) + ")"
    if nt == "BinaryOperation":
        return (
            f"{expression_text(node.get('leftExpression'))} {node.get('operator', '')} "
            f"{expression_text(node.get('rightExpression'))}"
        )
    if nt == "UnaryOperation":
        sub = expression_text(node.get("subExpression"))
        op = node.get("operator", "")
        return f"{op}{sub}" if node.get("prefix", True) else f"{sub}{op}"
    return node.get("name", "") or ""


def literal_int(node: dict[str, Any] | None) -> int | None:
    """Integer value of a number literal, honouring subdenominations."""
    if not isinstance(node, dict) or node.get("nodeType") != "Literal":
        return None
    if node.get("kind", "number") != "number":
        return None
    raw = str(node.get("value", "")).replace("_", "")
    try:
        if raw.lower().startswith("0x"):
            value = int(raw, 16)
        elif "e" in raw.lower():
            mantissa, exponent = re.split("[eE]", raw)
            value = int(float(mantissa) * 10 ** int(exponent)) if "." in mantissa else int(mantissa) * 10 ** int(exponent)
        elif "." in raw:
            return None
        else:
            value = int(raw)
    except ValueError:
        return None
    return value * _SUBDENOMINATIONS.get(node.get("subdenomination") or "", 1)


_SUBDENOMINATIONS = {
    "wei": 1, "gwei": 10**9, "szabo": 10**12, "finney": 10**15, "ether": 10**18,
    "seconds": 1, "minutes": 60, "hours": 3600, "days": 86400, "weeks": 604800, "years": 31536000,
}


# ── Expression scanner ───────────────────────────────────────────────────────


@dataclass
class ExprSummary:
    reads: set[str] = field(default_factory=set)
    calls: list[CallSite] = field(default_factory=list)
    comparisons: list[Comparison] = field(default_factory=list)
    deprecated: set[str] = field(default_factory=set)

    def merge(self, other: "ExprSummary") -> None:
        self.reads |= other.reads
        self.calls.extend(other.calls)
        self.comparisons.extend(other.comparisons)
        self.deprecated |= other.deprecated


class ExpressionScanner:
    """Collect reads, call sites, comparisons and deprecated uses of an expression."""

    def __init__(self, scope: Scope, call_ids: Iterable[int] | None = None) -> None:
        self._scope = scope
        self._ids = iter(call_ids) if call_ids is not None else itertools.count()

    def scan(
        self,
        node: dict[str, Any] | None,
        usage: ResultUsage = ResultUsage.NESTED,
        result_vars: tuple[str | None, ...] = (),
    ) -> ExprSummary:
        out = ExprSummary()
        self._visit(node, out, usage, result_vars)
        return out

    def _visit(
        self,
        node: Any,
        out: ExprSummary,
        usage: ResultUsage,
        result_vars: tuple[str | None, ...] = (),
    ) -> None:
        if not isinstance(node, dict):
            return
        nt = node.get("nodeType", "")
        child_usage = ResultUsage.CONDITION if usage == ResultUsage.CONDITION else ResultUsage.NESTED

        if nt == "Identifier":
            name = node.get("name", "")
            if name == "now":
                out.reads.add("block.timestamp")
            elif name and name not in ("this", "super") and not self._scope.is_contract_name(name):
                out.reads.add(name)

        elif nt == "MemberAccess":
            base = node.get("expression") or {}
            member = node.get("memberName", "")
            base_name = base.get("name", "") if base.get("nodeType") == "Identifier" else ""
            if base_name in GLOBAL_OBJECTS:
                out.reads.add(f"{base_name}.{member}")
                if base_name == "msg" and member == "gas":
                    out.deprecated.add("msg.gas")
            else:
                if member == "length":
                    root = root_name(base)
                    if root:
                        out.reads.add(f"{root}.length")
                self._visit(base, out, child_usage)

        elif nt in ("IndexAccess", "IndexRangeAccess"):
            self._visit(node.get("baseExpression"), out, ResultUsage.NESTED)
            for key in ("indexExpression", "startExpression", "endExpression"):
                self._visit(node.get(key), out, ResultUsage.NESTED)

        elif nt == "BinaryOperation":
            left = self.scan(node.get("leftExpression"), child_usage)
            right = self.scan(node.get("rightExpression"), child_usage)
            op = node.get("operator", "")
            if op in COMPARISON_OPS:
                out.comparisons.append(Comparison(
                    operator=op,
                    left_reads=frozenset(left.reads),
                    right_reads=frozenset(right.reads),
                    span=SourceSpan.from_src(node.get("src")),
                    left=node.get("leftExpression") or {},
                    right=node.get("rightExpression") or {},
                ))
            out.merge(left)
            out.merge(right)

        elif nt == "UnaryOperation":
            self._visit(node.get("subExpression"), out, child_usage)

        elif nt == "Conditional":
            self._visit(node.get("condition"), out, ResultUsage.CONDITION)
            self._visit(node.get("trueExpression"), out, child_usage)
            self._visit(node.get("falseExpression"), out, child_usage)

        elif nt == "Assignment":
            self._visit(node.get("leftHandSide"), out, ResultUsage.NESTED)
            self._visit(node.get("rightHandSide"), out, ResultUsage.NESTED)

        elif nt == "TupleExpression":
            for comp in node.get("components") or []:
                self._visit(comp, out, child_usage)

        elif nt == "FunctionCall":
            self._visit_call(node, out, usage, result_vars)

        elif nt == "FunctionCallOptions":
            self._visit(node.get("expression"), out, ResultUsage.NESTED)
            for opt in node.get("options") or []:
                self._visit(opt, out, ResultUsage.NESTED)

    def _visit_call(
        self,
        node: dict[str, Any],
        out: ExprSummary,
        usage: ResultUsage,
        result_vars: tuple[str | None, ...],
    ) -> None:
        shape = classify_call(node)

        if shape.conversion:
            for arg in shape.arguments:
                self._visit(arg, out, usage if len(shape.arguments) == 1 else ResultUsage.NESTED, result_vars)
            return

        target = self.scan(shape.base) if shape.base else ExprSummary()
        out.merge(target)

        option_reads: set[str] = set()
        for opt in shape.options.values():
            opt_summary = self.scan(opt)
            option_reads |= opt_summary.reads
            out.merge(opt_summary)

        args = ExprSummary()
        for i, arg in enumerate(shape.arguments):
            arg_usage = ResultUsage.NESTED
            if shape.kind == CallKind.BUILTIN and shape.name in ("require", "assert") and i == 0:
                arg_usage = ResultUsage.CONDITION
            self._visit(arg, args, arg_usage)
        out.merge(args)

        kind = self.refine_kind(shape)
        name = shape.name
        if name in DEPRECATED_CALLS or (kind == CallKind.CALLCODE):
            out.deprecated.add(name if name in DEPRECATED_CALLS else "callcode")
        if name == "blockhash" or name == "block.blockhash":
            out.reads.add("blockhash")
        if name == "gasleft":
            out.reads.add("gasleft")

        gas_node = shape.options.get("gas")
        out.calls.append(CallSite(
            id=next(self._ids),
            kind=kind,
            name=name,
            span=SourceSpan.from_src(node.get("src")),
            target=expression_text(shape.base) if shape.base else "",
            target_reads=frozenset(target.reads),
            arg_reads=frozenset(args.reads | option_reads),
            has_value="value" in shape.options,
            gas_option=gas_node is not None,
            gas_literal=literal_int(gas_node),
            usage=usage,
            result_vars=result_vars if usage == ResultUsage.ASSIGNED else (),
            arg_types=tuple(self._arg_type(a) for a in shape.arguments),
            node=node,
        ))

    def refine_kind(self, shape: CallShape) -> CallKind:
        """Split member calls into external (contract/address) and internal (library) ones."""
        if shape.kind != CallKind.HIGH_LEVEL or shape.base is None:
            return shape.kind
        base = shape.base
        ts = _type_string(base)
        if ts.startswith(("contract ", "interface ")) or ts.split(" ")[0] == "address":
            return CallKind.HIGH_LEVEL
        if ts.startswith("type(library") or ts.startswith("library "):
            return CallKind.INTERNAL
        if base.get("nodeType") == "Identifier":
            name = base.get("name", "")
            if name == "this":
                return CallKind.HIGH_LEVEL
            if self._scope.is_contract_name(name):
                # Library or contract-type reference: ``SafeMath.add`` / ``Base.f``
                return CallKind.INTERNAL
            declared = self._scope.type_string(name)
            if declared:
                from swcscan.core.resolver import TypeDescriptor

                desc = TypeDescriptor.from_type_string(declared)
                if desc.is_user_defined or desc.is_address:
                    return CallKind.HIGH_LEVEL
                # ``using Lib for uint256`` style call on a value type
                return CallKind.INTERNAL
        return CallKind.HIGH_LEVEL

    def _arg_type(self, arg: dict[str, Any]) -> str:
        ts = _type_string(arg)
        if ts:
            return ts
        if arg.get("nodeType") == "Identifier":
            return self._scope.type_string(arg.get("name", ""))
        if arg.get("nodeType") == "Literal" and arg.get("kind") == "string":
            return "literal_string"
        return ""


# ── Inline assembly ──────────────────────────────────────────────────────────


_LEGACY_WRITE_RE = re.compile(r"\b(sstore|mstore8|mstore)\s*\(\s*([^,()]+(?:\([^()]*\))?)\s*,")
_CONST_TEXT_RE = re.compile(r"^(0x[0-9a-fA-F]+|\d+|\w+[._]slot)$")
YUL_WRITES = ("sstore", "mstore", "mstore8")
YUL_PURE_OPS = frozenset({"add", "sub", "mul", "div", "shl", "shr", "and", "or", "xor", "not"})


def lower_inline_assembly(node: dict[str, Any], span: SourceSpan, unchecked: bool) -> list[IRStatement]:
    """Lower an InlineAssembly node into ASSEMBLY_WRITE statements.

    Yul-level locals bound to constants (``let s := 3``) and ``x.slot``
    references count as compile-time constant slots.
    """
    yul = node.get("AST")
    out: list[IRStatement] = []
    if isinstance(yul, dict):
        constants: set[str] = set()
        locals_: set[str] = set()
        assigned: list[str] = []
        _walk_yul(yul, constants, locals_, assigned, out, span, unchecked)
        if assigned:
            out.append(IRStatement(
                kind=IRKind.EXPR, span=span, yul_assigned=tuple(dict.fromkeys(assigned)),
                unchecked=unchecked, node=node,
            ))
    else:
        for match in _LEGACY_WRITE_RE.finditer(node.get("operations") or ""):
            slot_text = match.group(2).strip()
            out.append(IRStatement(
                kind=IRKind.ASSEMBLY_WRITE,
                span=span,
                assembly=AssemblyWrite(
                    op=match.group(1),
                    slot_constant=bool(_CONST_TEXT_RE.match(slot_text)),
                    slot_text=slot_text,
                    span=span,
                ),
                unchecked=unchecked,
                node=node,
            ))
    if not out:
        out.append(IRStatement(kind=IRKind.EXPR, span=span, unchecked=unchecked, node=node))
    return out


def _walk_yul(
    node: Any,
    constants: set[str],
    locals_: set[str],
    assigned: list[str],
    out: list[IRStatement],
    fallback_span: SourceSpan,
    unchecked: bool,
) -> None:
    if isinstance(node, list):
        for item in node:
            _walk_yul(item, constants, locals_, assigned, out, fallback_span, unchecked)
        return
    if not isinstance(node, dict):
        return
    nt = node.get("nodeType", "")

    if nt == "YulVariableDeclaration":
        names = [v.get("name", "") for v in node.get("variables") or []]
        locals_.update(names)
        value = node.get("value")
        if len(names) == 1 and value is not None and _yul_constant(value, constants):
            constants.add(names[0])
        _walk_yul(value, constants, locals_, assigned, out, fallback_span, unchecked)
        return

    if nt == "YulAssignment":
        for var in node.get("variableNames") or []:
            name = var.get("name", "")
            if name in locals_:
                constants.discard(name)
            else:
                assigned.append(name.split(".")[0])
        _walk_yul(node.get("value"), constants, locals_, assigned, out, fallback_span, unchecked)
        return

    if nt == "YulFunctionCall":
        fname = (node.get("functionName") or {}).get("name", "")
        args = node.get("arguments") or []
        if fname in YUL_WRITES and args:
            span = SourceSpan.from_src(node.get("src")) if node.get("src") else fallback_span
            out.append(IRStatement(
                kind=IRKind.ASSEMBLY_WRITE,
                span=span,
                assembly=AssemblyWrite(
                    op=fname,
                    slot_constant=_yul_constant(args[0], constants),
                    slot_text=_yul_text(args[0]),
                    span=span,
                ),
                unchecked=unchecked,
                node=node,
            ))
        for arg in args:
            _walk_yul(arg, constants, locals_, assigned, out, fallback_span, unchecked)
        return

    for key, value in node.items():
        if key in ("src", "nativeSrc", "nodeType"):
            continue
        if isinstance(value, (dict, list)):
            _walk_yul(value, constants, locals_, assigned, out, fallback_span, unchecked)


def _yul_constant(node: Any, constants: set[str]) -> bool:
    if not isinstance(node, dict):
        return False
    nt = node.get("nodeType", "")
    if nt == "YulLiteral":
        return True
    if nt == "YulIdentifier":
        name = node.get("name", "")
        return name in constants or name.endswith(".slot") or name.endswith("_slot")
    if nt == "YulFunctionCall":
        fname = (node.get("functionName") or {}).get("name", "")
        return fname in YUL_PURE_OPS and all(_yul_constant(a, constants) for a in node.get("arguments") or [])
    return False


def _yul_text(node: Any) -> str:
    if not isinstance(node, dict):
        return ""
    nt = node.get("nodeType", "")
    if nt == "YulLiteral":
        return str(node.get("value", ""))
    if nt == "YulIdentifier":
        return node.get("name", "")
    if nt == "YulFunctionCall":
        fname = (node.get("functionName") or {}).get("name", "")
        return f"{fname}(" + ", ".join(_yul_text(a) for a in node.get("arguments") or []) + ")"
    return ""


# ── Statement lowering ───────────────────────────────────────────────────────


class StatementLowerer:
    """Lower straight-line (non control-flow) statements into IR."""

    def __init__(self, scope: Scope, function_name: str = "") -> None:
        self._scope = scope
        self._function = function_name
        self._scanner = ExpressionScanner(scope, itertools.count())

    @property
    def scanner(self) -> ExpressionScanner:
        return self._scanner

    def condition(self, node: dict[str, Any] | None, unchecked: bool = False) -> IRStatement:
        """The BRANCH statement that ends a block on an if/loop condition."""
        summary = self._scanner.scan(node, ResultUsage.CONDITION)
        return IRStatement(
            kind=IRKind.BRANCH,
            span=SourceSpan.from_src((node or {}).get("src")),
            reads=frozenset(summary.reads),
            calls=tuple(summary.calls),
            comparisons=tuple(summary.comparisons),
            deprecated=tuple(sorted(summary.deprecated)),
            unchecked=unchecked,
            value=node,
            node=node or {},
        )

    def lower(self, stmt: dict[str, Any], unchecked: bool = False) -> list[IRStatement]:
        if not isinstance(stmt, dict) or "nodeType" not in stmt:
            raise LoweringError(
                "Statement node without nodeType", function=self._function,
            )
        nt = stmt["nodeType"]
        span = SourceSpan.from_src(stmt.get("src"))

        if nt == "ExpressionStatement":
            return [self._expression_statement(stmt.get("expression") or {}, stmt, span, unchecked)]
        if nt == "VariableDeclarationStatement":
            return self._declaration(stmt, span, unchecked)
        if nt == "Return":
            summary = self._scanner.scan(stmt.get("expression"), ResultUsage.RETURNED)
            return [self._make(IRKind.RETURN, span, summary, stmt, unchecked, value=stmt.get("expression"))]
        if nt == "Throw":
            return [IRStatement(kind=IRKind.REVERT, span=span, deprecated=("throw",), unchecked=unchecked, node=stmt)]
        if nt == "RevertStatement":
            call = stmt.get("errorCall") or {}
            summary = ExprSummary()
            for arg in call.get("arguments") or []:
                summary.merge(self._scanner.scan(arg))
            return [self._make(IRKind.REVERT, span, summary, stmt, unchecked)]
        if nt == "EmitStatement":
            call = stmt.get("eventCall") or {}
            summary = ExprSummary()
            for arg in call.get("arguments") or []:
                summary.merge(self._scanner.scan(arg))
            return [self._make(IRKind.EXPR, span, summary, stmt, unchecked)]
        if nt == "PlaceholderStatement":
            return [IRStatement(kind=IRKind.PLACEHOLDER, span=span, unchecked=unchecked, node=stmt)]
        if nt == "InlineAssembly":
            return lower_inline_assembly(stmt, span, unchecked)

        # Unknown simple statement kinds: keep reads and calls
        summary = self._scanner.scan(stmt)
        return [self._make(IRKind.EXPR, span, summary, stmt, unchecked)]

    # ── helpers ──────────────────────────────────────────────────────

    def _make(
        self,
        kind: IRKind,
        span: SourceSpan,
        summary: ExprSummary,
        node: dict[str, Any],
        unchecked: bool,
        value: dict[str, Any] | None = None,
        **extra: Any,
    ) -> IRStatement:
        return IRStatement(
            kind=kind,
            span=span,
            reads=frozenset(summary.reads),
            calls=tuple(summary.calls),
            comparisons=tuple(summary.comparisons),
            deprecated=tuple(sorted(summary.deprecated)),
            unchecked=unchecked,
            value=value,
            node=node,
            **extra,
        )

    def _expression_statement(
        self, expr: dict[str, Any], stmt: dict[str, Any], span: SourceSpan, unchecked: bool
    ) -> IRStatement:
        nt = expr.get("nodeType", "")

        if nt == "FunctionCall":
            shape = classify_call(expr)
            if shape.kind == CallKind.BUILTIN and shape.name in ("require", "assert", "revert", "selfdestruct", "suicide"):
                summary = self._scanner.scan(expr, ResultUsage.DISCARDED)
                kind = {
                    "require": IRKind.REQUIRE,
                    "assert": IRKind.ASSERT,
                    "revert": IRKind.REVERT,
                    "selfdestruct": IRKind.SELFDESTRUCT,
                    "suicide": IRKind.SELFDESTRUCT,
                }[shape.name]
                value = shape.arguments[0] if shape.arguments else None
                return self._make(kind, span, summary, stmt, unchecked, value=value)

        if nt == "Assignment":
            return self._assignment(expr, stmt, span, unchecked)

        if nt == "UnaryOperation" and expr.get("operator") in ("++", "--", "delete"):
            sub = expr.get("subExpression") or {}
            summary = self._scanner.scan(sub)
            return self._write(
                sub, expr.get("operator", ""), summary, stmt, span, unchecked, value=None,
            )

        summary = self._scanner.scan(expr, ResultUsage.DISCARDED)
        return self._make(IRKind.EXPR, span, summary, stmt, unchecked, value=expr)

    def _assignment(
        self, expr: dict[str, Any], stmt: dict[str, Any], span: SourceSpan, unchecked: bool
    ) -> IRStatement:
        lhs = expr.get("leftHandSide") or {}
        rhs = expr.get("rightHandSide") or {}
        op = expr.get("operator", "=")
        targets = _lvalue_names(lhs)
        rhs_usage = ResultUsage.ASSIGNED if rhs.get("nodeType") == "FunctionCall" else ResultUsage.NESTED
        summary = self._scanner.scan(rhs, rhs_usage, tuple(t or None for t in targets) if rhs_usage == ResultUsage.ASSIGNED else ())
        lhs_summary = self._lhs_summary(lhs)
        if op != "=":
            lhs_summary.reads |= {t for t in targets if t}
        summary.merge(lhs_summary)
        return self._write(lhs, op, summary, stmt, span, unchecked, value=rhs, targets=targets)

    def _write(
        self,
        lhs: dict[str, Any],
        op: str,
        summary: ExprSummary,
        stmt: dict[str, Any],
        span: SourceSpan,
        unchecked: bool,
        value: dict[str, Any] | None,
        targets: list[str] | None = None,
    ) -> IRStatement:
        if targets is None:
            targets = _lvalue_names(lhs)
            if op in ("++", "--"):
                summary.reads |= {t for t in targets if t}
        names = tuple(t for t in targets if t)
        state = tuple(t for t in names if self._scope.is_state(t))
        indexed = lhs.get("nodeType") in ("IndexAccess", "MemberAccess")
        index_summary = self._index_reads(lhs)
        writes_length = lhs.get("nodeType") == "MemberAccess" and lhs.get("memberName") == "length"
        return self._make(
            IRKind.ASSIGN, span, summary, stmt, unchecked,
            value=value,
            targets=names,
            state_targets=state,
            indexed_write=indexed,
            index_reads=frozenset(index_summary),
            writes_length=writes_length,
            operator=op,
            lhs=lhs,
        )

    def _lhs_summary(self, lhs: dict[str, Any]) -> ExprSummary:
        """Reads contributed by an lvalue: its index expressions, not its root."""
        out = ExprSummary()
        out.reads |= self._index_reads(lhs)
        return out

    def _index_reads(self, lhs: Any) -> set[str]:
        reads: set[str] = set()
        if not isinstance(lhs, dict):
            return reads
        nt = lhs.get("nodeType", "")
        if nt == "IndexAccess":
            reads |= self._scanner.scan(lhs.get("indexExpression")).reads
            reads |= self._index_reads(lhs.get("baseExpression"))
        elif nt == "MemberAccess":
            reads |= self._index_reads(lhs.get("expression"))
        elif nt == "TupleExpression":
            for comp in lhs.get("components") or []:
                reads |= self._index_reads(comp)
        return reads

    def _declaration(self, stmt: dict[str, Any], span: SourceSpan, unchecked: bool) -> list[IRStatement]:
        decls = stmt.get("declarations") or []
        names = tuple((d or {}).get("name", "") or None for d in decls)
        init = stmt.get("initialValue")
        first = next((d for d in decls if d), {}) or {}
        type_node = first.get("typeName")
        declared_type = _declared_type(first)
        deprecated = ("var",) if first and type_node is None else ()
        location = first.get("storageLocation", "") or ""

        if init is None:
            return [
                IRStatement(
                    kind=IRKind.DECLARE,
                    span=SourceSpan.from_src((d or {}).get("src")) if d else span,
                    targets=(d.get("name", ""),),
                    is_declaration=True,
                    declared_type=_declared_type(d),
                    storage_location=d.get("storageLocation", "") or "",
                    deprecated=("var",) if d.get("typeName") is None else (),
                    unchecked=unchecked,
                    node=d,
                )
                for d in decls if d
            ]

        usage = ResultUsage.ASSIGNED if init.get("nodeType") == "FunctionCall" else ResultUsage.NESTED
        summary = self._scanner.scan(init, usage, names if usage == ResultUsage.ASSIGNED else ())
        summary.deprecated |= set(deprecated)
        return [self._make(
            IRKind.ASSIGN, span, summary, stmt, unchecked,
            value=init,
            targets=tuple(n for n in names if n),
            operator="=",
            is_declaration=True,
            declared_type=declared_type,
            storage_location=location,
        )]


def _declared_type(decl: dict[str, Any]) -> str | None:
    if not decl:
        return None
    ts = _type_string(decl)
    if ts:
        return ts
    type_node = decl.get("typeName")
    if type_node is None:
        return None
    from swcscan.core.resolver import type_name_to_str

    return type_name_to_str(type_node) or None


def _lvalue_names(lhs: dict[str, Any]) -> list[str]:
    if lhs.get("nodeType") == "TupleExpression":
        return [root_name(c) if c else "" for c in lhs.get("components") or []]
    return [root_name(lhs)]
