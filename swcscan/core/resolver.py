"""Symbol and inheritance resolution.

Turns the contract definitions of every compilation unit into immutable
``Contract`` records:

  - C3 linearization of base contracts (most-derived first, the order
    solc uses for ``super`` and storage layout)
  - state variables with effective visibility and storage slots
  - functions and modifiers with parameters, modifiers applied and a
    summary of the sinks their bodies contain
  - state-variable shadowing between a contract and its bases

Contracts whose bases cannot be linearized are left out of the symbol
table and reported through ``InheritanceError`` diagnostics; contracts that
depend on them fail the same way.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Sequence

from swcscan.core.adapter import CompilationUnit
from swcscan.core.errors import InheritanceError
from swcscan.core.ir import CallKind, ExpressionScanner, SinkKind, classify_call, root_name
from swcscan.core.pragma import LanguageContext
from swcscan.core.types import Diagnostic, Mutability, SourceSpan, Visibility

logger = logging.getLogger(__name__)


# ── Types ────────────────────────────────────────────────────────────────────


_LOCATION_SUFFIX_RE = re.compile(r"\s+(memory|storage|calldata|pointer|ref|slice)\b.*$")
_INT_RE = re.compile(r"^(u?)int(\d*)$")
_FIXED_BYTES_RE = re.compile(r"^bytes(\d+)$")


@dataclass(frozen=True)
class TypeDescriptor:
    """What the engine needs to know about a Solidity type."""

    name: str
    bits: int | None = None
    signed: bool = False
    byte_size: int = 32
    is_dynamic: bool = False
    is_mapping: bool = False
    is_array: bool = False
    array_length: int | None = None
    is_function: bool = False
    is_reference: bool = False
    is_user_defined: bool = False
    is_address: bool = False
    element: str = ""

    @property
    def is_integer(self) -> bool:
        return self.bits is not None

    @property
    def min_value(self) -> int:
        if self.bits is None:
            return 0
        return -(2 ** (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        if self.bits is None:
            return 0
        return 2 ** (self.bits - 1) - 1 if self.signed else 2 ** self.bits - 1

    def element_type(self) -> "TypeDescriptor":
        return TypeDescriptor.from_type_string(self.element) if self.element else TypeDescriptor("")

    @property
    def storage_slots(self) -> int:
        """Slots a reference-typed variable occupies when laid out in storage."""
        if self.is_array and not self.is_dynamic and self.array_length:
            elem = self.element_type()
            if elem.is_reference:
                return self.array_length * max(elem.storage_slots, 1)
            per_slot = max(32 // max(elem.byte_size, 1), 1)
            return -(-self.array_length // per_slot)
        return 1

    @classmethod
    def from_type_string(cls, text: str) -> "TypeDescriptor":
        """Parse a solc ``typeString`` or a type name built from the AST."""
        s = _LOCATION_SUFFIX_RE.sub("", (text or "").strip())

        if s.startswith("mapping"):
            value = s[s.find("=>") + 2:].rstrip(")").strip() if "=>" in s else ""
            return cls(name=s, is_mapping=True, is_reference=True, is_dynamic=True, element=value)
        if s.startswith("function"):
            external = " external" in s or " public" in s
            return cls(name=s, is_function=True, byte_size=24 if external else 8)
        if s.endswith("]") and "[" in s:
            cut = s.rfind("[")
            inner, length = s[:cut].strip(), s[cut + 1:-1].strip()
            size = int(length) if length.isdigit() else None
            return cls(
                name=s, is_array=True, is_reference=True,
                is_dynamic=size is None, array_length=size, element=inner,
            )

        m = _INT_RE.match(s)
        if m:
            bits = int(m.group(2) or 256)
            return cls(name=s, bits=bits, signed=not m.group(1), byte_size=bits // 8)
        if s in ("address", "address payable"):
            return cls(name=s, byte_size=20, is_address=True)
        if s == "bool":
            return cls(name=s, byte_size=1)
        m = _FIXED_BYTES_RE.match(s)
        if m:
            return cls(name=s, byte_size=int(m.group(1)))
        if s in ("bytes", "string"):
            return cls(name=s, is_dynamic=True, is_reference=True)
        if s.startswith("literal_string") or s.startswith("literal_bytes"):
            return cls(name=s, is_dynamic=True, is_reference=True)
        if s.startswith(("contract ", "interface ")):
            return cls(name=s.split(" ", 1)[1], byte_size=20, is_user_defined=True, is_address=True)
        if s.startswith("enum "):
            return cls(name=s.split(" ", 1)[1], byte_size=1, is_user_defined=True)
        if s.startswith("struct "):
            return cls(name=s.split(" ", 1)[1], is_reference=True, is_user_defined=True)
        if s and s[0].isupper():
            return cls(name=s, is_user_defined=True)
        return cls(name=s)


def type_name_to_str(type_node: dict[str, Any] | None) -> str:
    """Convert an AST TypeName node to a type string."""
    if not type_node:
        return ""
    ts = (type_node.get("typeDescriptions") or {}).get("typeString")
    if ts:
        return ts
    nt = type_node.get("nodeType", "")

    if nt == "ElementaryTypeName":
        name = type_node.get("name", "")
        if name == "address" and type_node.get("stateMutability") == "payable":
            return "address payable"
        return name

    if nt == "UserDefinedTypeName":
        path = type_node.get("pathNode") or {}
        return path.get("name") or type_node.get("name", "")

    if nt == "Mapping":
        key = type_name_to_str(type_node.get("keyType"))
        val = type_name_to_str(type_node.get("valueType"))
        return f"mapping({key} => {val})"

    if nt == "ArrayTypeName":
        base = type_name_to_str(type_node.get("baseType"))
        length = type_node.get("length")
        size = length.get("value", "") if isinstance(length, dict) else (length or "")
        return f"{base}[{size}]"

    if nt == "FunctionTypeName":
        return f"function {type_node.get('visibility', 'internal')}"

    return str(type_node.get("name", ""))


# ── Records ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Parameter:
    name: str
    type: TypeDescriptor
    storage_location: str = ""
    span: SourceSpan = field(default_factory=SourceSpan)


@dataclass(frozen=True)
class ModifierCall:
    """A modifier applied to a function."""
    name: str
    span: SourceSpan = field(default_factory=SourceSpan)
    arguments: tuple[dict[str, Any], ...] = field(default=(), compare=False, repr=False)


@dataclass(frozen=True)
class StateVariable:
    contract: str
    name: str
    type: TypeDescriptor
    visibility: Visibility
    span: SourceSpan
    constant: bool = False
    immutable: bool = False
    has_initial_value: bool = False
    node: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def effective_visibility(self) -> Visibility:
        """State variables default to internal when no visibility is written."""
        if self.visibility == Visibility.UNSPECIFIED:
            return Visibility.INTERNAL
        return self.visibility

    @property
    def occupies_storage(self) -> bool:
        return not (self.constant or self.immutable)


@dataclass(frozen=True)
class Function:
    """A function, constructor, fallback, receive or modifier definition."""

    contract: str
    name: str
    kind: str
    visibility: Visibility
    mutability: Mutability
    span: SourceSpan
    parameters: tuple[Parameter, ...] = ()
    returns: tuple[Parameter, ...] = ()
    modifiers: tuple[ModifierCall, ...] = ()
    implemented: bool = True
    declared_constant: bool = False
    sinks: frozenset[SinkKind] = frozenset()
    call_kinds: frozenset[CallKind] = frozenset()
    internal_calls: tuple[str, ...] = ()
    body: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    node: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.contract}.{self.name}"

    @property
    def is_modifier(self) -> bool:
        return self.kind == "modifier"

    @property
    def is_constructor(self) -> bool:
        return self.kind == "constructor"

    @property
    def is_special(self) -> bool:
        return self.kind in ("constructor", "fallback", "receive")

    @property
    def effective_visibility(self) -> Visibility:
        """Functions without written visibility are public."""
        if self.visibility == Visibility.UNSPECIFIED:
            return Visibility.PUBLIC
        return self.visibility

    @property
    def is_externally_reachable(self) -> bool:
        if self.is_modifier or self.is_constructor:
            return False
        return self.effective_visibility in (Visibility.PUBLIC, Visibility.EXTERNAL)

    @property
    def is_payable(self) -> bool:
        return self.mutability == Mutability.PAYABLE

    def parameter(self, name: str) -> Parameter | None:
        return next((p for p in self.parameters if p.name == name), None)


@dataclass(frozen=True)
class StorageSlot:
    variable: StateVariable
    slot: int
    offset: int = 0


@dataclass(frozen=True)
class Shadowing:
    """A state variable redeclared in a derived contract."""
    name: str
    derived: str
    base: str
    derived_span: SourceSpan
    base_span: SourceSpan


@dataclass(frozen=True)
class Contract:
    name: str
    kind: str
    file_path: str
    span: SourceSpan
    language: LanguageContext
    is_abstract: bool = False
    bases: tuple[str, ...] = ()
    linearization: tuple[str, ...] = ()
    state_variables: tuple[StateVariable, ...] = ()
    functions: tuple[Function, ...] = ()
    modifiers: tuple[Function, ...] = ()
    storage_layout: tuple[StorageSlot, ...] = ()
    shadowing: tuple[Shadowing, ...] = ()
    type_names: frozenset[str] = frozenset()
    node: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_library(self) -> bool:
        return self.kind == "library"

    @property
    def is_interface(self) -> bool:
        return self.kind == "interface"

    @property
    def has_selfdestruct(self) -> bool:
        return any(SinkKind.SELFDESTRUCT in f.sinks for f in self.functions)

    @property
    def has_delegatecall(self) -> bool:
        return any(SinkKind.DELEGATECALL in f.sinks for f in self.functions)

    @property
    def constructor(self) -> Function | None:
        return next((f for f in self.functions if f.is_constructor), None)

    def get_function(self, name: str) -> Function | None:
        return next((f for f in self.functions if f.name == name), None)

    def get_state_variable(self, name: str) -> StateVariable | None:
        return next((v for v in self.state_variables if v.name == name), None)

    def slot_of(self, name: str) -> StorageSlot | None:
        """Storage position of a variable visible in this contract (most-derived wins)."""
        for entry in reversed(self.storage_layout):
            if entry.variable.name == name:
                return entry
        return None


# ── C3 linearization ─────────────────────────────────────────────────────────


class Linearizer:
    """Memoized C3 linearization over a map of direct bases.

    ``bases_of`` lists each contract's bases as written (``contract C is A, B``
    gives ``["A", "B"]``, rightmost most derived). Results are most-derived
    first: ``C3(C) = [C] + merge(C3(B), C3(A), [B, A])``.
    """

    def __init__(self, bases_of: Mapping[str, Sequence[str]]) -> None:
        self._bases = bases_of
        self._cache: dict[str, tuple[str, ...]] = {}
        self._failures: dict[str, InheritanceError] = {}

    def linearize(self, name: str) -> tuple[str, ...]:
        """Raises:
            InheritanceError: on a cycle, an unknown base, a repeated base or
            a base order that admits no linearization.
        """
        return self._linearize(name, ())

    def _linearize(self, name: str, stack: tuple[str, ...]) -> tuple[str, ...]:
        if name in self._cache:
            return self._cache[name]
        if name in self._failures:
            raise self._failures[name]
        if name in stack:
            cycle = " -> ".join(stack[stack.index(name):] + (name,))
            raise InheritanceError(f"Inheritance cycle: {cycle}", contract=name)

        try:
            result = self._compute(name, stack)
        except InheritanceError as e:
            if e.contract == name or name in e.message:
                failure = InheritanceError(e.message, contract=name)
            else:
                failure = InheritanceError(
                    f"Base of {name} cannot be linearized: {e.message}", contract=name,
                )
            # Cycle members fail independently from the entry point
            if not stack:
                self._failures[name] = failure
            raise failure from None
        self._cache[name] = result
        return result

    def _compute(self, name: str, stack: tuple[str, ...]) -> tuple[str, ...]:
        if name not in self._bases:
            raise InheritanceError(f"Unknown base contract {name!r}", contract=name)
        direct = list(self._bases[name])
        if len(set(direct)) != len(direct):
            raise InheritanceError(f"Contract {name} lists a base contract twice", contract=name)
        for base in direct:
            if base not in self._bases:
                raise InheritanceError(f"{name} inherits from unknown contract {base!r}", contract=name)

        sequences = [list(self._linearize(b, stack + (name,))) for b in reversed(direct)]
        sequences.append(list(reversed(direct)))
        result = [name]
        while True:
            sequences = [s for s in sequences if s]
            if not sequences:
                return tuple(result)
            head = next(
                (s[0] for s in sequences if not any(s[0] in other[1:] for other in sequences)),
                None,
            )
            if head is None:
                raise InheritanceError(
                    f"Linearization of inheritance graph impossible for {name} "
                    f"(bases: {', '.join(direct)})",
                    contract=name,
                )
            result.append(head)
            for s in sequences:
                if s[0] == head:
                    del s[0]


# ── Symbol table ─────────────────────────────────────────────────────────────


class FunctionScope:
    """Name resolution inside one function or modifier body."""

    def __init__(self, symbols: "SymbolTable", contract: str, node: dict[str, Any] | None) -> None:
        self._symbols = symbols
        self._contract = contract
        self._locals: dict[str, str] = {}
        self._parameters: list[str] = []
        if node:
            for p in (node.get("parameters") or {}).get("parameters") or []:
                self._declare(p)
                self._parameters.append(p.get("name", ""))
            for p in (node.get("returnParameters") or {}).get("parameters") or []:
                self._declare(p)
            self._collect(node.get("body"))

    def _declare(self, decl: dict[str, Any]) -> None:
        name = decl.get("name", "")
        if name:
            ts = (decl.get("typeDescriptions") or {}).get("typeString") or type_name_to_str(decl.get("typeName"))
            self._locals[name] = ts or "var"

    def _collect(self, node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                self._collect(item)
            return
        if not isinstance(node, dict):
            return
        if node.get("nodeType") == "VariableDeclaration":
            self._declare(node)
        for key, value in node.items():
            if key in ("typeName", "typeDescriptions"):
                continue
            if isinstance(value, (dict, list)):
                self._collect(value)

    @property
    def contract(self) -> str:
        return self._contract

    @property
    def locals(self) -> Mapping[str, str]:
        return MappingProxyType(self._locals)

    @property
    def parameters(self) -> tuple[str, ...]:
        return tuple(p for p in self._parameters if p)

    def is_local(self, name: str) -> bool:
        return name in self._locals

    def is_state(self, name: str) -> bool:
        if name in self._locals:
            return False
        return self._symbols.lookup_state_variable(self._contract, name) is not None

    def is_contract_name(self, name: str) -> bool:
        return self._symbols.is_type_name(name)

    def type_string(self, name: str) -> str:
        if name in self._locals:
            return self._locals[name]
        var = self._symbols.lookup_state_variable(self._contract, name)
        return var.type.name if var else ""

    def type_of(self, name: str) -> TypeDescriptor | None:
        ts = self.type_string(name)
        return TypeDescriptor.from_type_string(ts) if ts else None


class SymbolTable:
    """Read-only view over every successfully resolved contract."""

    def __init__(self, contracts: Mapping[str, Contract], type_names: frozenset[str] = frozenset()) -> None:
        self._contracts = MappingProxyType(dict(contracts))
        self._type_names = type_names | frozenset(contracts)

    def __contains__(self, name: object) -> bool:
        return name in self._contracts

    def __iter__(self) -> Iterator[Contract]:
        return iter(self._contracts.values())

    def __len__(self) -> int:
        return len(self._contracts)

    @property
    def contracts(self) -> Mapping[str, Contract]:
        return self._contracts

    def get(self, name: str) -> Contract | None:
        return self._contracts.get(name)

    def is_type_name(self, name: str) -> bool:
        return name in self._type_names

    def linearization(self, name: str) -> tuple[str, ...]:
        contract = self._contracts.get(name)
        return contract.linearization if contract else ()

    def _chain(self, name: str) -> Iterator[Contract]:
        for base in self.linearization(name):
            contract = self._contracts.get(base)
            if contract is not None:
                yield contract

    def lookup_state_variable(self, contract: str, name: str) -> StateVariable | None:
        for c in self._chain(contract):
            var = c.get_state_variable(name)
            if var is not None:
                return var
        return None

    def visible_state_variables(self, contract: str) -> dict[str, StateVariable]:
        out: dict[str, StateVariable] = {}
        for c in self._chain(contract):
            for var in c.state_variables:
                out.setdefault(var.name, var)
        return out

    def lookup_function(self, contract: str, name: str) -> Function | None:
        """Implementation ``name`` resolves to from ``contract`` (virtual dispatch)."""
        fallback = None
        for c in self._chain(contract):
            for f in c.functions:
                if f.name == name:
                    if f.implemented:
                        return f
                    fallback = fallback or f
        return fallback

    def lookup_modifier(self, contract: str, name: str) -> Function | None:
        for c in self._chain(contract):
            for m in c.modifiers:
                if m.name == name:
                    return m
        return None

    def derived_contracts(self, name: str) -> list[Contract]:
        return [c for c in self._contracts.values() if name in c.linearization]

    def functions_using_modifier(self, modifier: Function) -> list[Function]:
        """Every function whose modifier list resolves to ``modifier``."""
        seen: set[str] = set()
        out: list[Function] = []
        for derived in self.derived_contracts(modifier.contract):
            if self.lookup_modifier(derived.name, modifier.name) != modifier:
                continue
            for c in self._chain(derived.name):
                for f in c.functions:
                    if f.qualified_name in seen:
                        continue
                    if any(m.name == modifier.name for m in f.modifiers):
                        seen.add(f.qualified_name)
                        out.append(f)
        return out

    def reachable_sinks(self, contract: str, function: Function) -> frozenset[SinkKind]:
        """Sinks in ``function`` plus those of internal functions it calls, transitively."""
        sinks: set[SinkKind] = set()
        stack = [function]
        seen: set[str] = set()
        while stack:
            f = stack.pop()
            if f.qualified_name in seen:
                continue
            seen.add(f.qualified_name)
            sinks |= f.sinks
            for callee in f.internal_calls:
                target = self.lookup_function(contract, callee)
                if target is not None:
                    stack.append(target)
        return frozenset(sinks)

    def scope_for(self, function: Function) -> FunctionScope:
        return FunctionScope(self, function.contract, function.node)


# ── Resolver ─────────────────────────────────────────────────────────────────


@dataclass
class Resolution:
    symbols: SymbolTable
    diagnostics: list[Diagnostic] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    units: dict[str, CompilationUnit] = field(default_factory=dict)

    def unit_of(self, contract: Contract) -> CompilationUnit | None:
        return self.units.get(contract.file_path)


@dataclass
class _Declaration:
    name: str
    node: dict[str, Any]
    unit: CompilationUnit
    language: LanguageContext


class Resolver:
    """Builds the symbol table for a set of compilation units."""

    def __init__(
        self,
        language_for: Callable[[CompilationUnit], LanguageContext] | None = None,
    ) -> None:
        self._language_for = language_for or (lambda unit: LanguageContext.from_pragma(unit.constraint()))

    def resolve(self, units: Sequence[CompilationUnit]) -> Resolution:
        declarations: dict[str, _Declaration] = {}
        diagnostics: list[Diagnostic] = []
        type_names: set[str] = set()

        for unit in sorted(units, key=lambda u: u.file_path):
            language = self._language_for(unit)
            for top in unit.ast.get("nodes", []):
                if isinstance(top, dict) and top.get("nodeType") in ("StructDefinition", "EnumDefinition", "UserDefinedValueTypeDefinition"):
                    type_names.add(top.get("name", ""))
            for node in unit.contract_nodes:
                name = node["name"]
                for child in node.get("nodes", []):
                    if child.get("nodeType") in ("StructDefinition", "EnumDefinition", "UserDefinedValueTypeDefinition"):
                        type_names.add(child.get("name", ""))
                if name in declarations:
                    diagnostics.append(InheritanceError(
                        f"Contract {name} is declared more than once; "
                        f"keeping the declaration in {declarations[name].unit.file_path}",
                        file_path=unit.file_path, contract=name,
                    ).to_diagnostic())
                    continue
                declarations[name] = _Declaration(name, node, unit, language)

        bases_of = {name: [_base_name(b) for b in d.node.get("baseContracts", [])] for name, d in declarations.items()}
        linearizer = Linearizer(bases_of)
        linearizations: dict[str, tuple[str, ...]] = {}
        failed: dict[str, str] = {}
        for name, decl in declarations.items():
            try:
                linearizations[name] = linearizer.linearize(name)
            except InheritanceError as e:
                failed[name] = e.message
                diagnostics.append(InheritanceError(
                    e.message, file_path=decl.unit.file_path, contract=name,
                ).to_diagnostic())
                logger.warning("Inheritance error in %s: %s", name, e.message, extra={"contract": name})

        # Resolve bases before the contracts derived from them
        order = sorted(linearizations, key=lambda n: (len(linearizations[n]), n))
        skeletons: dict[str, Contract] = {}
        for name in order:
            skeletons[name] = self._skeleton(declarations[name], linearizations[name], skeletons)

        partial = SymbolTable(skeletons, frozenset(type_names))
        contracts: dict[str, Contract] = {}
        for name in order:
            contracts[name] = self._complete(skeletons[name], declarations[name], partial)

        units_by_path = {u.file_path: u for u in units}
        return Resolution(
            symbols=SymbolTable(contracts, frozenset(type_names)),
            diagnostics=diagnostics,
            failed=failed,
            units=units_by_path,
        )

    # ── Contract construction ────────────────────────────────────────

    def _skeleton(
        self,
        decl: _Declaration,
        linearization: tuple[str, ...],
        resolved: Mapping[str, Contract],
    ) -> Contract:
        """Contract record with state variables, layout and shadowing; no bodies yet."""
        node = decl.node
        state_vars = tuple(
            _visit_state_variable(decl.name, child)
            for child in node.get("nodes", [])
            if child.get("nodeType") == "VariableDeclaration"
        )

        layout: list[StorageSlot] = []
        slot, offset = 0, 0
        for base_name in reversed(linearization):
            variables = state_vars if base_name == decl.name else resolved[base_name].state_variables
            for var in variables:
                if not var.occupies_storage:
                    continue
                slot, offset, entry = _allocate(var, slot, offset)
                layout.append(entry)

        shadowing: list[Shadowing] = []
        for var in state_vars:
            for base_name in linearization[1:]:
                base_var = resolved[base_name].get_state_variable(var.name)
                if base_var is not None:
                    shadowing.append(Shadowing(
                        name=var.name,
                        derived=decl.name,
                        base=base_name,
                        derived_span=var.span,
                        base_span=base_var.span,
                    ))

        local_types = frozenset(
            child.get("name", "") for child in node.get("nodes", [])
            if child.get("nodeType") in ("StructDefinition", "EnumDefinition")
        )
        return Contract(
            name=decl.name,
            kind=node.get("contractKind", "contract"),
            file_path=decl.unit.file_path,
            span=SourceSpan.from_src(node.get("src")),
            language=decl.language,
            is_abstract=bool(node.get("abstract", False)),
            bases=tuple(_base_name(b) for b in node.get("baseContracts", [])),
            linearization=linearization,
            state_variables=state_vars,
            storage_layout=tuple(layout),
            shadowing=tuple(shadowing),
            type_names=local_types,
            node=node,
        )

    def _complete(self, skeleton: Contract, decl: _Declaration, partial: SymbolTable) -> Contract:
        functions: list[Function] = []
        modifiers: list[Function] = []
        for child in decl.node.get("nodes", []):
            nt = child.get("nodeType", "")
            if nt == "FunctionDefinition":
                functions.append(_visit_function(skeleton, child, partial))
            elif nt == "ModifierDefinition":
                modifiers.append(_visit_modifier(skeleton, child, partial))
        return Contract(
            name=skeleton.name,
            kind=skeleton.kind,
            file_path=skeleton.file_path,
            span=skeleton.span,
            language=skeleton.language,
            is_abstract=skeleton.is_abstract,
            bases=skeleton.bases,
            linearization=skeleton.linearization,
            state_variables=skeleton.state_variables,
            functions=tuple(functions),
            modifiers=tuple(modifiers),
            storage_layout=skeleton.storage_layout,
            shadowing=skeleton.shadowing,
            type_names=skeleton.type_names,
            node=skeleton.node,
        )


def resolve_units(
    units: Sequence[CompilationUnit],
    language_for: Callable[[CompilationUnit], LanguageContext] | None = None,
) -> Resolution:
    """Convenience wrapper around ``Resolver.resolve``."""
    return Resolver(language_for).resolve(units)


# ── Visitors ─────────────────────────────────────────────────────────────────


def _base_name(spec: dict[str, Any]) -> str:
    base = spec.get("baseName") or {}
    return base.get("name") or base.get("namePath") or ""


def _visibility(raw: str | None) -> Visibility | None:
    if not raw or raw == "default":
        return None
    try:
        return Visibility(raw)
    except ValueError:
        return None


def _visit_state_variable(contract: str, node: dict[str, Any]) -> StateVariable:
    type_str = (node.get("typeDescriptions") or {}).get("typeString") or type_name_to_str(node.get("typeName"))
    return StateVariable(
        contract=contract,
        name=node.get("name", ""),
        type=TypeDescriptor.from_type_string(type_str),
        visibility=_visibility(node.get("visibility")) or Visibility.UNSPECIFIED,
        span=SourceSpan.from_src(node.get("src")),
        constant=bool(node.get("constant")) or node.get("mutability") == "constant",
        immutable=node.get("mutability") == "immutable",
        has_initial_value=node.get("value") is not None,
        node=node,
    )


def _allocate(var: StateVariable, slot: int, offset: int) -> tuple[int, int, StorageSlot]:
    """Place ``var`` after (slot, offset); returns the next free position."""
    t = var.type
    if t.is_reference or t.is_mapping or t.is_array:
        if offset:
            slot, offset = slot + 1, 0
        entry = StorageSlot(var, slot, 0)
        return slot + t.storage_slots, 0, entry
    size = t.byte_size
    if offset + size > 32:
        slot, offset = slot + 1, 0
    entry = StorageSlot(var, slot, offset)
    offset += size
    if offset >= 32:
        slot, offset = slot + 1, 0
    return slot, offset, entry


def _parameters(node: dict[str, Any] | None) -> tuple[Parameter, ...]:
    out = []
    for p in (node or {}).get("parameters", []) or []:
        ts = (p.get("typeDescriptions") or {}).get("typeString") or type_name_to_str(p.get("typeName"))
        out.append(Parameter(
            name=p.get("name", ""),
            type=TypeDescriptor.from_type_string(ts),
            storage_location=p.get("storageLocation", "") or "",
            span=SourceSpan.from_src(p.get("src")),
        ))
    return tuple(out)


def _function_kind(contract: Contract, node: dict[str, Any]) -> str:
    kind = node.get("kind")
    if kind:
        return kind
    if node.get("isConstructor"):
        return "constructor"
    name = node.get("name", "")
    if not name:
        return "fallback"
    if not contract.language.constructor_keyword and name == contract.name:
        return "constructor"
    return "function"


def _mutability(node: dict[str, Any]) -> Mutability:
    raw = node.get("stateMutability")
    if raw:
        try:
            return Mutability(raw)
        except ValueError:
            pass
    if node.get("payable"):
        return Mutability.PAYABLE
    if node.get("constant"):
        return Mutability.VIEW
    return Mutability.NONPAYABLE


def _visit_function(contract: Contract, node: dict[str, Any], symbols: SymbolTable) -> Function:
    kind = _function_kind(contract, node)
    name = node.get("name", "") or kind
    visibility = _visibility(node.get("visibility"))
    if visibility is None:
        visibility = Visibility.UNSPECIFIED if contract.language.function_visibility_optional else Visibility.PUBLIC

    modifiers = []
    for mod in node.get("modifiers", []) or []:
        mod_name = (mod.get("modifierName") or {}).get("name", "")
        if mod.get("kind") == "baseConstructorSpecifier" or symbols.get(mod_name) is not None:
            continue
        modifiers.append(ModifierCall(
            name=mod_name,
            span=SourceSpan.from_src(mod.get("src")),
            arguments=tuple(a for a in mod.get("arguments") or [] if isinstance(a, dict)),
        ))

    body = node.get("body")
    implemented = node.get("implemented", body is not None)
    sinks, call_kinds, internal = _summarize_body(body, FunctionScope(symbols, contract.name, node))
    return Function(
        contract=contract.name,
        name=name,
        kind=kind,
        visibility=visibility,
        mutability=_mutability(node),
        span=SourceSpan.from_src(node.get("src")),
        parameters=_parameters(node.get("parameters")),
        returns=_parameters(node.get("returnParameters")),
        modifiers=tuple(modifiers),
        implemented=bool(implemented),
        declared_constant=bool(node.get("constant")) and not node.get("stateMutability"),
        sinks=sinks,
        call_kinds=call_kinds,
        internal_calls=internal,
        body=body,
        node=node,
    )


def _visit_modifier(contract: Contract, node: dict[str, Any], symbols: SymbolTable) -> Function:
    body = node.get("body")
    sinks, call_kinds, internal = _summarize_body(body, FunctionScope(symbols, contract.name, node))
    return Function(
        contract=contract.name,
        name=node.get("name", ""),
        kind="modifier",
        visibility=Visibility.INTERNAL,
        mutability=Mutability.NONPAYABLE,
        span=SourceSpan.from_src(node.get("src")),
        parameters=_parameters(node.get("parameters")),
        implemented=body is not None,
        sinks=sinks,
        call_kinds=call_kinds,
        internal_calls=internal,
        body=body,
        node=node,
    )


def _summarize_body(
    body: dict[str, Any] | None,
    scope: FunctionScope,
) -> tuple[frozenset[SinkKind], frozenset[CallKind], tuple[str, ...]]:
    """Walk a body for the sinks and call kinds it contains."""
    sinks: set[SinkKind] = set()
    kinds: set[CallKind] = set()
    internal: list[str] = []
    scanner = ExpressionScanner(scope)

    def walk(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                walk(item)
            return
        if not isinstance(node, dict):
            return
        nt = node.get("nodeType", "")

        if nt == "FunctionCall":
            shape = classify_call(node)
            kind = scanner.refine_kind(shape)
            kinds.add(kind)
            if kind == CallKind.BUILTIN and shape.name in ("selfdestruct", "suicide"):
                sinks.add(SinkKind.SELFDESTRUCT)
            elif kind in (CallKind.DELEGATECALL, CallKind.CALLCODE):
                sinks.add(SinkKind.DELEGATECALL)
                sinks.add(SinkKind.LOW_LEVEL_CALL)
            elif kind in (CallKind.CALL, CallKind.STATICCALL, CallKind.SEND):
                sinks.add(SinkKind.LOW_LEVEL_CALL)
            elif kind == CallKind.INTERNAL and shape.name:
                internal.append(shape.name)
            if kind in (CallKind.TRANSFER, CallKind.SEND) or "value" in shape.options:
                sinks.add(SinkKind.ETHER_TRANSFER)

        elif nt == "Assignment":
            if scope.is_state(root_name(node.get("leftHandSide"))):
                sinks.add(SinkKind.STATE_WRITE)

        elif nt == "UnaryOperation" and node.get("operator") in ("++", "--", "delete"):
            if scope.is_state(root_name(node.get("subExpression"))):
                sinks.add(SinkKind.STATE_WRITE)

        elif nt == "InlineAssembly":
            if "sstore" in repr(node.get("AST") or node.get("operations") or ""):
                sinks.add(SinkKind.STATE_WRITE)

        for key, value in node.items():
            if key in ("typeName", "typeDescriptions"):
                continue
            if isinstance(value, (dict, list)):
                walk(value)

    walk(body)
    return frozenset(sinks), frozenset(kinds), tuple(dict.fromkeys(internal))
