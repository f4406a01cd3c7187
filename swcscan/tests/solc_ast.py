"""Builders for solc compact-JSON AST fragments used by the test suite.

Every node gets a ``src`` field. Leaves take fresh offsets from a shared
counter; composite nodes span from their first to their last child, so a
contract's span always covers its members and offsets grow in the order
nodes are built.
"""

from __future__ import annotations

import itertools
from typing import Any

from swcscan.core.adapter import CompilationUnit, Suppression

Node = dict[str, Any]

_offsets = itertools.count(0, 4)


def _leaf_src() -> str:
    return f"{next(_offsets)}:2:0"


def _bounds(node: Any) -> tuple[int, int] | None:
    """(start, end) over every ``src`` below ``node``."""
    lo, hi = None, None
    stack = [node]
    while stack:
        cur = stack.pop()
        if isinstance(cur, list):
            stack.extend(cur)
        elif isinstance(cur, dict):
            src = cur.get("src")
            if src:
                off, length = (int(p) for p in src.split(":")[:2])
                lo = off if lo is None else min(lo, off)
                hi = off + length if hi is None else max(hi, off + length)
            stack.extend(v for k, v in cur.items() if k != "src" and isinstance(v, (dict, list)))
    return (lo, hi) if lo is not None else None


def _wrap(node: Node) -> Node:
    """Give a composite node the hull of its children plus one trailing offset."""
    bounds = _bounds(node)
    end = next(_offsets) + 2
    start = bounds[0] if bounds else end - 2
    node["src"] = f"{start}:{end - start}:0"
    return node


def _typed(ts: str) -> dict[str, str]:
    return {"typeString": ts}


# ── Expressions ──────────────────────────────────────────────────────────────


def ident(name: str, ts: str = "") -> Node:
    return {"nodeType": "Identifier", "name": name, "typeDescriptions": _typed(ts), "src": _leaf_src()}


def number(value: int, ts: str | None = None) -> Node:
    return {
        "nodeType": "Literal", "kind": "number", "value": str(value),
        "typeDescriptions": _typed(ts or f"int_const {value}"), "src": _leaf_src(),
    }


def string(value: str) -> Node:
    return {
        "nodeType": "Literal", "kind": "string", "value": value,
        "typeDescriptions": _typed(f'literal_string "{value}"'), "src": _leaf_src(),
    }


def boolean(value: bool) -> Node:
    return {
        "nodeType": "Literal", "kind": "bool", "value": "true" if value else "false",
        "typeDescriptions": _typed("bool"), "src": _leaf_src(),
    }


def member(expr: Node, name: str, ts: str = "") -> Node:
    return _wrap({"nodeType": "MemberAccess", "expression": expr, "memberName": name, "typeDescriptions": _typed(ts)})


def glob(obj: str, name: str, ts: str = "") -> Node:
    """``msg.sender``, ``tx.origin``, ``block.timestamp`` ..."""
    default = {"sender": "address", "origin": "address", "value": "uint256", "data": "bytes calldata"}
    return member(ident(obj, obj), name, ts or default.get(name, "uint256"))


def index(base: Node, idx: Node, ts: str = "") -> Node:
    return _wrap({"nodeType": "IndexAccess", "baseExpression": base, "indexExpression": idx, "typeDescriptions": _typed(ts)})


def binop(left: Node, op: str, right: Node, ts: str = "") -> Node:
    if not ts and op in ("==", "!=", "<", "<=", ">", ">=", "&&", "||"):
        ts = "bool"
    return _wrap({
        "nodeType": "BinaryOperation", "leftExpression": left, "operator": op,
        "rightExpression": right, "typeDescriptions": _typed(ts),
    })


def unary(op: str, sub: Node, prefix: bool = True, ts: str = "") -> Node:
    return _wrap({
        "nodeType": "UnaryOperation", "operator": op, "prefix": prefix,
        "subExpression": sub, "typeDescriptions": _typed(ts),
    })


def assign(lhs: Node, rhs: Node, op: str = "=") -> Node:
    ts = (lhs.get("typeDescriptions") or {}).get("typeString", "")
    return _wrap({
        "nodeType": "Assignment", "leftHandSide": lhs, "operator": op,
        "rightHandSide": rhs, "typeDescriptions": _typed(ts),
    })


def call(callee: Node, *args: Node, ts: str = "", kind: str = "functionCall") -> Node:
    return _wrap({
        "nodeType": "FunctionCall", "expression": callee, "arguments": list(args),
        "kind": kind, "typeDescriptions": _typed(ts),
    })


def builtin(name: str, *args: Node, ts: str = "") -> Node:
    """``require(...)``, ``keccak256(...)``, ``selfdestruct(...)`` ..."""
    return call(ident(name), *args, ts=ts)


def with_options(callee: Node, **options: Node) -> Node:
    """``callee{value: v, gas: g}``"""
    return _wrap({
        "nodeType": "FunctionCallOptions", "expression": callee,
        "names": list(options), "options": list(options.values()),
    })


def convert(type_name: str, arg: Node, ts: str | None = None) -> Node:
    """Type conversion such as ``payable(x)`` or ``uint8(x)``."""
    callee = {
        "nodeType": "ElementaryTypeNameExpression",
        "typeName": {"nodeType": "ElementaryTypeName", "name": type_name},
        "src": _leaf_src(),
    }
    return call(callee, arg, ts=ts or ("address payable" if type_name == "payable" else type_name), kind="typeConversion")


def abi_call(name: str, *args: Node) -> Node:
    return call(member(ident("abi", "abi"), name), *args, ts="bytes memory")


def tuple_(*components: Node | None) -> Node:
    return _wrap({"nodeType": "TupleExpression", "components": list(components)})


# ── Statements ───────────────────────────────────────────────────────────────


def stmt(expr: Node) -> Node:
    return _wrap({"nodeType": "ExpressionStatement", "expression": expr})


def require(cond: Node) -> Node:
    return stmt(builtin("require", cond))


def assert_(cond: Node) -> Node:
    return stmt(builtin("assert", cond))


def local(name: str, ts: str, location: str = "", var: bool = False) -> Node:
    decl = {
        "nodeType": "VariableDeclaration", "name": name, "storageLocation": location or "default",
        "typeDescriptions": _typed(f"{ts} {location}".strip() if location and location != "default" else ts),
        "src": _leaf_src(),
    }
    if not var:
        decl["typeName"] = {"nodeType": "ElementaryTypeName", "name": ts}
    return decl


def declare(name: str, ts: str, init: Node | None = None, location: str = "", var: bool = False) -> Node:
    """``T name = init;`` (``var name = init;`` with ``var=True``)."""
    return _wrap({
        "nodeType": "VariableDeclarationStatement",
        "declarations": [local(name, ts, location, var)],
        "initialValue": init,
    })


def declare_tuple(decls: list[tuple[str, str] | None], init: Node) -> Node:
    """``(bool ok, ) = init;``"""
    return _wrap({
        "nodeType": "VariableDeclarationStatement",
        "declarations": [local(*d) if d else None for d in decls],
        "initialValue": init,
    })


def block(*statements: Node) -> Node:
    return _wrap({"nodeType": "Block", "statements": list(statements)})


def unchecked(*statements: Node) -> Node:
    return _wrap({"nodeType": "UncheckedBlock", "statements": list(statements)})


def if_(cond: Node, then: list[Node], orelse: list[Node] | None = None) -> Node:
    return _wrap({
        "nodeType": "IfStatement", "condition": cond, "trueBody": block(*then),
        "falseBody": block(*orelse) if orelse is not None else None,
    })


def for_(init: Node | None, cond: Node | None, step: Node | None, body: list[Node]) -> Node:
    return _wrap({
        "nodeType": "ForStatement",
        "initializationExpression": init,
        "condition": cond,
        "loopExpression": stmt(step) if step is not None else None,
        "body": block(*body),
    })


def while_(cond: Node, body: list[Node]) -> Node:
    return _wrap({"nodeType": "WhileStatement", "condition": cond, "body": block(*body)})


def do_while(body: list[Node], cond: Node) -> Node:
    return _wrap({"nodeType": "DoWhileStatement", "body": block(*body), "condition": cond})


def return_(expr: Node | None = None) -> Node:
    if expr is None:
        return {"nodeType": "Return", "expression": None, "src": _leaf_src()}
    return _wrap({"nodeType": "Return", "expression": expr})


def revert() -> Node:
    return stmt(builtin("revert"))


def throw() -> Node:
    return {"nodeType": "Throw", "src": _leaf_src()}


def placeholder() -> Node:
    return {"nodeType": "PlaceholderStatement", "src": _leaf_src()}


def break_() -> Node:
    return {"nodeType": "Break", "src": _leaf_src()}


def assembly(*statements: Node) -> Node:
    """Inline assembly with a Yul AST; see ``yul_call`` and friends."""
    return _wrap({
        "nodeType": "InlineAssembly",
        "AST": {"nodeType": "YulBlock", "statements": list(statements)},
    })


def yul_id(name: str) -> Node:
    return {"nodeType": "YulIdentifier", "name": name, "src": _leaf_src()}


def yul_lit(value: int) -> Node:
    return {"nodeType": "YulLiteral", "kind": "number", "value": str(value), "src": _leaf_src()}


def yul_call(name: str, *args: Node) -> Node:
    return _wrap({
        "nodeType": "YulFunctionCall",
        "functionName": {"nodeType": "YulIdentifier", "name": name},
        "arguments": list(args),
    })


def yul_expr(expr: Node) -> Node:
    return _wrap({"nodeType": "YulExpressionStatement", "expression": expr})


def yul_assign(name: str, value: Node) -> Node:
    return _wrap({
        "nodeType": "YulAssignment",
        "variableNames": [{"nodeType": "YulIdentifier", "name": name}],
        "value": value,
    })


# ── Declarations ─────────────────────────────────────────────────────────────


def param(name: str, ts: str, location: str = "") -> Node:
    full = f"{ts} {location}" if location else ts
    return {
        "nodeType": "VariableDeclaration", "name": name, "storageLocation": location or "default",
        "typeDescriptions": _typed(full), "typeName": {"nodeType": "ElementaryTypeName", "name": ts},
        "src": _leaf_src(),
    }


def uses(name: str, *args: Node) -> Node:
    return _wrap({
        "nodeType": "ModifierInvocation", "kind": "modifierInvocation",
        "modifierName": {"nodeType": "IdentifierPath", "name": name}, "arguments": list(args),
    })


def function(
    name: str,
    body: list[Node] | None = None,
    *,
    params: list[Node] = (),
    returns: list[Node] = (),
    visibility: str | None = "public",
    mutability: str = "nonpayable",
    modifiers: list[Node] = (),
    kind: str | None = "function",
    constant: bool = False,
) -> Node:
    """A FunctionDefinition; ``body=None`` declares it without implementation.

    ``visibility=None`` and ``kind=None`` leave the keys out, as pre-0.5
    compilers did for unannotated functions and named constructors.
    """
    node: Node = {
        "nodeType": "FunctionDefinition",
        "name": name,
        "parameters": {"nodeType": "ParameterList", "parameters": list(params)},
        "returnParameters": {"nodeType": "ParameterList", "parameters": list(returns)},
        "modifiers": list(modifiers),
        "body": block(*body) if body is not None else None,
        "implemented": body is not None,
    }
    if constant:
        node["constant"] = True
    else:
        node["stateMutability"] = mutability
    if visibility is not None:
        node["visibility"] = visibility
    if kind is not None:
        node["kind"] = kind
    return _wrap(node)


def constructor(body: list[Node], *, params: list[Node] = ()) -> Node:
    return function("", body, params=params, kind="constructor")


def modifier(name: str, body: list[Node], *, params: list[Node] = ()) -> Node:
    return _wrap({
        "nodeType": "ModifierDefinition",
        "name": name,
        "parameters": {"nodeType": "ParameterList", "parameters": list(params)},
        "body": block(*body),
    })


def state_var(
    name: str,
    ts: str,
    visibility: str | None = "internal",
    *,
    constant: bool = False,
    value: Node | None = None,
) -> Node:
    node: Node = {
        "nodeType": "VariableDeclaration",
        "name": name,
        "stateVariable": True,
        "typeDescriptions": _typed(ts),
        "typeName": {"nodeType": "ElementaryTypeName", "name": ts},
        "mutability": "constant" if constant else "mutable",
        "constant": constant,
        "value": value,
        "src": _leaf_src(),
    }
    if visibility is not None:
        node["visibility"] = visibility
    return node


def contract(name: str, *members: Node, bases: tuple[str, ...] = (), kind: str = "contract") -> Node:
    return _wrap({
        "nodeType": "ContractDefinition",
        "name": name,
        "contractKind": kind,
        "abstract": False,
        "baseContracts": [
            {"nodeType": "InheritanceSpecifier", "baseName": {"nodeType": "IdentifierPath", "name": b}}
            for b in bases
        ],
        "nodes": list(members),
    })


def source_unit(pragma: str | None, *contracts: Node) -> Node:
    nodes: list[Node] = []
    if pragma is not None:
        nodes.append({"nodeType": "PragmaDirective", "literals": ["solidity", pragma], "src": _leaf_src()})
    nodes.extend(contracts)
    return _wrap({"nodeType": "SourceUnit", "nodes": nodes})


def unit(
    path: str,
    *contracts: Node,
    pragma: str | None = "0.8.19",
    source: str = "",
    suppressions: tuple[Suppression, ...] = (),
) -> CompilationUnit:
    """A compilation unit holding ``contracts``; the pragma is pinned unless given."""
    return CompilationUnit(
        file_path=path,
        ast=source_unit(pragma, *contracts),
        source=source,
        suppressions=suppressions,
    )


# ── Shortcuts ────────────────────────────────────────────────────────────────


def sender() -> Node:
    return glob("msg", "sender")


def origin() -> Node:
    return glob("tx", "origin")


def this_balance() -> Node:
    return member(convert("address", ident("this", "contract Self")), "balance", "uint256")


def low_level(target: Node, kind: str = "call", *args: Node, **options: Node) -> Node:
    """``target.call{options}(args)``; an empty ``""`` payload when no args are given."""
    callee = member(target, kind, "function (bytes memory) payable returns (bool,bytes memory)")
    if options:
        callee = with_options(callee, **options)
    return call(callee, *(args or (string(""),)), ts="tuple(bool,bytes memory)")


def transfer(target: Node, amount: Node, kind: str = "transfer") -> Node:
    return call(member(target, kind), amount, ts="bool" if kind == "send" else "tuple()")


def span_of(node: Node) -> tuple[int, int]:
    """(offset, length) of a built node."""
    off, length = (int(p) for p in node["src"].split(":")[:2])
    return off, length
