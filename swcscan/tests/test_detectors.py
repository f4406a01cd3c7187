"""Detector behaviour over small hand-built contracts.

Each test scans a full unit through the analyzer and looks only at the
class under test; other detectors are free to report on the same code.
"""

from __future__ import annotations

from swcscan.core.types import Confidence, Severity
from swcscan.tests import solc_ast as sol


def _addr(name: str, ts: str = "address") -> dict:
    return sol.ident(name, ts)


def _u256(name: str) -> dict:
    return sol.ident(name, "uint256")


def _only_owner() -> dict:
    return sol.modifier("onlyOwner", [
        sol.require(sol.binop(sol.sender(), "==", _addr("owner"))),
        sol.placeholder(),
    ])


def _one(result, class_id: str):
    found = result.by_class(class_id)
    assert len(found) == 1, [f.rationale for f in result.findings]
    return found[0]


# ── Access control ──────────────────────────────────────────────────────────


class TestUnprotectedWithdrawal:
    """SWC-105"""

    def test_anyone_picks_the_recipient(self, scan):
        result = scan(sol.unit("Vault.sol", sol.contract(
            "Vault",
            sol.function("withdraw", [
                sol.stmt(sol.transfer(_addr("to", "address payable"), sol.this_balance())),
            ], params=[sol.param("to", "address payable")]),
        )))
        finding = _one(result, "SWC-105")
        assert finding.location.function == "withdraw"
        assert finding.severity == Severity.HIGH

    def test_per_caller_accounting_is_not_reported(self, scan):
        balances = "mapping(address => uint256)"
        result = scan(sol.unit("Bank.sol", sol.contract(
            "Bank",
            sol.state_var("balances", balances),
            sol.function("withdraw", [
                sol.stmt(sol.assign(sol.index(sol.ident("balances", balances), sol.sender(), "uint256"), sol.number(0))),
                sol.stmt(sol.transfer(_addr("to", "address payable"), sol.this_balance())),
            ], params=[sol.param("to", "address payable")]),
        )))
        assert result.by_class("SWC-105") == []

    def test_guarded_withdrawal_is_not_reported(self, scan):
        result = scan(sol.unit("Vault.sol", sol.contract(
            "Vault",
            sol.state_var("owner", "address"),
            _only_owner(),
            sol.function("withdraw", [
                sol.stmt(sol.transfer(_addr("to", "address payable"), sol.this_balance())),
            ], params=[sol.param("to", "address payable")], modifiers=[sol.uses("onlyOwner")]),
        )))
        assert result.by_class("SWC-105") == []


class TestUnprotectedSelfdestruct:
    """SWC-106"""

    def test_public_selfdestruct(self, scan):
        result = scan(sol.unit("Kill.sol", sol.contract(
            "Kill",
            sol.function("kill", [sol.stmt(sol.builtin("selfdestruct", sol.sender()))]),
        )))
        finding = _one(result, "SWC-106")
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == Confidence.HIGH

    def test_reached_through_internal_helper(self, scan):
        result = scan(sol.unit("Kill.sol", sol.contract(
            "Kill",
            sol.function("_destroy", [sol.stmt(sol.builtin("selfdestruct", sol.sender()))], visibility="internal"),
            sol.function("close", [sol.stmt(sol.call(sol.ident("_destroy")))]),
        )))
        finding = _one(result, "SWC-106")
        assert finding.location.function == "close"
        assert finding.confidence == Confidence.MEDIUM

    def test_owner_only(self, scan):
        result = scan(sol.unit("Kill.sol", sol.contract(
            "Kill",
            sol.state_var("owner", "address"),
            _only_owner(),
            sol.function("kill", [sol.stmt(sol.builtin("selfdestruct", sol.sender()))], modifiers=[sol.uses("onlyOwner")]),
        )))
        assert result.by_class("SWC-106") == []


class TestTxOrigin:
    """SWC-115"""

    def test_origin_modifier_gating_a_transfer(self, scan):
        result = scan(sol.unit("Vault.sol", sol.contract(
            "Vault",
            sol.state_var("owner", "address"),
            sol.modifier("onlyOwner", [
                sol.require(sol.binop(sol.origin(), "==", _addr("owner"))),
                sol.placeholder(),
            ]),
            sol.function("withdraw", [
                sol.stmt(sol.transfer(_addr("to", "address payable"), sol.this_balance())),
            ], params=[sol.param("to", "address payable")], modifiers=[sol.uses("onlyOwner")]),
        )))
        finding = _one(result, "SWC-115")
        assert finding.severity == Severity.CRITICAL
        assert finding.location.function == "onlyOwner"
        assert finding.metadata["gated_functions"] == ["Vault.withdraw"]

    def test_origin_against_sender_is_not_authorization(self, scan):
        result = scan(sol.unit("NoContracts.sol", sol.contract(
            "NoContracts",
            sol.function("mint", [sol.require(sol.binop(sol.origin(), "==", sol.sender()))]),
        )))
        assert result.by_class("SWC-115") == []


class TestConstructorName:
    """SWC-118"""

    def test_case_mismatch(self, scan):
        result = scan(sol.unit("Wallet.sol", sol.contract(
            "Wallet",
            sol.state_var("owner", "address"),
            sol.function("wallet", [sol.stmt(sol.assign(_addr("owner"), sol.sender()))]),
        ), pragma="0.4.24"))
        finding = _one(result, "SWC-118")
        assert finding.confidence == Confidence.HIGH
        assert finding.metadata["writes_state"] is True

    def test_near_miss_without_writes(self, scan):
        result = scan(sol.unit("Wallet.sol", sol.contract("Wallet", sol.function("Walet", [])), pragma="0.4.24"))
        assert _one(result, "SWC-118").confidence == Confidence.MEDIUM

    def test_real_constructor_present(self, scan):
        result = scan(sol.unit("Wallet.sol", sol.contract(
            "Wallet",
            sol.constructor([]),
            sol.function("wallet", []),
        )))
        assert result.by_class("SWC-118") == []


# ── Visibility & pragma ─────────────────────────────────────────────────────


class TestDefaultVisibility:
    """SWC-100, SWC-108"""

    def test_function_without_visibility_reaching_selfdestruct(self, scan):
        result = scan(sol.unit("Old.sol", sol.contract(
            "Old",
            sol.function("kill", [sol.stmt(sol.builtin("selfdestruct", sol.sender()))], visibility=None),
        ), pragma="0.4.24"))
        finding = _one(result, "SWC-100")
        assert finding.severity == Severity.HIGH
        assert finding.metadata["sinks"] == ["selfdestruct"]

    def test_harmless_function_keeps_default_severity(self, scan):
        result = scan(sol.unit("Old.sol", sol.contract("Old", sol.function("ping", [], visibility=None)), pragma="0.4.24"))
        assert _one(result, "SWC-100").severity == Severity.MEDIUM

    def test_not_reported_once_visibility_is_mandatory(self, scan):
        result = scan(sol.unit("New.sol", sol.contract("New", sol.function("ping", []))))
        assert result.by_class("SWC-100") == []

    def test_state_variable_without_visibility(self, scan):
        result = scan(sol.unit("Store.sol", sol.contract(
            "Store",
            sol.state_var("owner", "address", visibility=None),
            sol.state_var("LIMIT", "uint256", visibility=None, constant=True, value=sol.number(10)),
            sol.state_var("total", "uint256", "public"),
        )))
        finding = _one(result, "SWC-108")
        assert finding.metadata["variable"] == "owner"


class TestPragma:
    """SWC-102, SWC-103"""

    def _unit(self, pragma: str):
        return sol.unit(
            "Token.sol",
            sol.contract("SafeMath", kind="library"),
            sol.contract("Token"),
            sol.contract("Sale"),
            pragma=pragma,
        )

    def test_old_floating_pragma(self, scan):
        result = scan(self._unit("^0.4.24"))
        outdated = _one(result, "SWC-102")
        floating = _one(result, "SWC-103")
        assert outdated.location.contract == "Token"
        assert floating.location.contract == "Token"
        assert outdated.metadata["minimum_version"] == "0.4.24"

    def test_pinned_old_version_is_only_outdated(self, scan):
        result = scan(self._unit("0.7.6"))
        assert len(result.by_class("SWC-102")) == 1
        assert result.by_class("SWC-103") == []

    def test_pinned_current_version(self, scan):
        result = scan(self._unit("0.8.19"))
        assert result.by_class("SWC-102") == []
        assert result.by_class("SWC-103") == []

    def test_wildcard_patch_is_floating(self, scan):
        result = scan(self._unit("0.8.x"))
        assert _one(result, "SWC-103").location.contract == "Token"
        assert result.by_class("SWC-102") == []


# ── Arithmetic ──────────────────────────────────────────────────────────────


def _adder(*prefix):
    return sol.contract("Math", sol.function("add", [
        *prefix,
        sol.return_(sol.binop(sol.ident("a", "uint8"), "+", sol.ident("b", "uint8"), ts="uint8")),
    ], params=[sol.param("a", "uint8"), sol.param("b", "uint8")], returns=[sol.param("", "uint8")]))


class TestIntegerOverflow:
    """SWC-101"""

    def test_possible_overflow_before_0_8(self, scan):
        finding = _one(scan(sol.unit("Math.sol", _adder(), pragma="0.7.6")), "SWC-101")
        assert finding.confidence == Confidence.LOW
        assert finding.metadata["direction"] == "overflow"
        assert finding.metadata["definite"] is False

    def test_bounded_operands(self, scan):
        contract = _adder(
            sol.require(sol.binop(sol.ident("a", "uint8"), "<", sol.number(100))),
            sol.require(sol.binop(sol.ident("b", "uint8"), "<", sol.number(100))),
        )
        assert scan(sol.unit("Math.sol", contract, pragma="0.7.6")).by_class("SWC-101") == []

    def test_checked_compiler(self, scan):
        assert scan(sol.unit("Math.sol", _adder())).by_class("SWC-101") == []

    def test_definite_overflow(self, scan):
        contract = sol.contract("Math", sol.function("bump", [
            sol.declare("x", "uint8", sol.number(255)),
            sol.return_(sol.binop(sol.ident("x", "uint8"), "+", sol.number(1), ts="uint8")),
        ], returns=[sol.param("", "uint8")]))
        finding = _one(scan(sol.unit("Math.sol", contract, pragma="0.7.6")), "SWC-101")
        assert finding.confidence == Confidence.HIGH
        assert finding.metadata["definite"] is True


class TestTypographicalError:
    """SWC-129"""

    def _assign(self, op: str, ts: str):
        return sol.contract(
            "C",
            sol.state_var("x", ts),
            sol.function("set", [
                sol.stmt(sol.assign(sol.ident("x", ts), sol.unary(op, sol.ident("y", ts), ts=ts))),
            ], params=[sol.param("y", ts)]),
        )

    def test_unary_plus(self, scan):
        finding = _one(scan(sol.unit("C.sol", self._assign("+", "uint256"))), "SWC-129")
        assert finding.metadata["operator"] == "+"

    def test_unary_minus_on_unsigned(self, scan):
        assert len(scan(sol.unit("C.sol", self._assign("-", "uint256"))).by_class("SWC-129")) == 1

    def test_unary_minus_on_signed(self, scan):
        assert scan(sol.unit("C.sol", self._assign("-", "int256"))).by_class("SWC-129") == []


# ── External calls ──────────────────────────────────────────────────────────


def _wallet(*body, params=None):
    return sol.contract(
        "Wallet",
        sol.state_var("balance", "uint256"),
        sol.function("pay", list(body), params=params or [
            sol.param("to", "address payable"), sol.param("amount", "uint256"),
        ]),
    )


def _to():
    return _addr("to", "address payable")


class TestUncheckedCallReturn:
    """SWC-104"""

    def test_discarded_value_call(self, scan):
        result = scan(sol.unit("Wallet.sol", _wallet(sol.stmt(sol.low_level(_to(), value=_u256("amount"))))))
        finding = _one(result, "SWC-104")
        assert finding.confidence == Confidence.HIGH
        assert finding.severity == Severity.MEDIUM
        assert finding.metadata["usage"] == "discarded"

    def test_checked_success_flag(self, scan):
        result = scan(sol.unit("Wallet.sol", _wallet(
            sol.declare_tuple([("ok", "bool"), None], sol.low_level(_to(), value=_u256("amount"))),
            sol.require(sol.ident("ok", "bool")),
        )))
        assert result.by_class("SWC-104") == []

    def test_state_updated_after_failed_payment(self, scan):
        result = scan(sol.unit("Wallet.sol", _wallet(
            sol.declare_tuple([("ok", "bool"), None], sol.low_level(_to(), value=_u256("amount"))),
            sol.stmt(sol.assign(_u256("balance"), sol.number(0))),
        )))
        finding = _one(result, "SWC-104")
        assert finding.severity == Severity.HIGH
        assert finding.metadata["state_write_after"] is True


class TestDelegatecall:
    """SWC-112"""

    def _proxy(self, *members, modifiers=()):
        return sol.contract(
            "Proxy",
            sol.state_var("owner", "address"),
            *members,
            sol.function("forward", [
                sol.stmt(sol.low_level(_addr("target"), "delegatecall", sol.glob("msg", "data"))),
            ], params=[sol.param("target", "address")], modifiers=list(modifiers)),
        )

    def test_caller_chosen_target(self, scan):
        finding = _one(scan(sol.unit("Proxy.sol", self._proxy())), "SWC-112")
        assert finding.severity == Severity.CRITICAL
        assert finding.metadata["sources"] == ["calldata"]
        assert finding.metadata["guarded"] is False

    def test_restricted_callers(self, scan):
        finding = _one(scan(sol.unit("Proxy.sol", self._proxy(_only_owner(), modifiers=[sol.uses("onlyOwner")]))), "SWC-112")
        assert (finding.severity, finding.confidence) == (Severity.MEDIUM, Confidence.LOW)


class TestGasGriefing:
    """SWC-126"""

    def _relayer(self, *prefix):
        return sol.contract("Relayer", sol.function("relay", [
            *prefix,
            sol.stmt(sol.low_level(_addr("target"), "call", sol.ident("data", "bytes memory"))),
        ], params=[sol.param("target", "address"), sol.param("data", "bytes", "memory")]))

    def test_forwarded_data_without_gas_check(self, scan):
        finding = _one(scan(sol.unit("Relayer.sol", self._relayer())), "SWC-126")
        assert finding.confidence == Confidence.MEDIUM
        assert finding.metadata["outcome_checked"] is False

    def test_gasleft_checked(self, scan):
        check = sol.require(sol.binop(sol.builtin("gasleft", ts="uint256"), ">=", sol.number(50000)))
        assert scan(sol.unit("Relayer.sol", self._relayer(check))).by_class("SWC-126") == []


class TestHardcodedGas:
    """SWC-134"""

    def test_transfer_stipend(self, scan):
        result = scan(sol.unit("Wallet.sol", _wallet(sol.stmt(sol.transfer(_to(), _u256("amount"))))))
        assert _one(result, "SWC-134").metadata == {"call": "transfer", "gas": 2300}

    def test_gas_literal(self, scan):
        result = scan(sol.unit("Wallet.sol", _wallet(
            sol.stmt(sol.low_level(_to(), value=_u256("amount"), gas=sol.number(5000))),
        )))
        assert _one(result, "SWC-134").metadata["gas"] == 5000


class TestFailedCallDoS:
    """SWC-113"""

    def test_transfer_in_loop(self, scan):
        recipients = "address payable[] memory"
        i = sol.ident("i", "uint256")
        contract = sol.contract("Payroll", sol.function("payAll", [
            sol.for_(
                sol.declare("i", "uint256", sol.number(0)),
                sol.binop(i, "<", sol.member(sol.ident("to", recipients), "length", "uint256")),
                sol.unary("++", sol.ident("i", "uint256"), prefix=False),
                [sol.stmt(sol.transfer(
                    sol.index(sol.ident("to", recipients), sol.ident("i", "uint256"), "address payable"),
                    sol.number(1),
                ))],
            ),
        ], params=[sol.param("to", "address payable[]", "memory")]))
        finding = _one(scan(sol.unit("Payroll.sol", contract)), "SWC-113")
        assert finding.severity == Severity.HIGH
        assert finding.metadata["in_loop"] is True

    def test_single_transfer(self, scan):
        result = scan(sol.unit("Wallet.sol", _wallet(sol.stmt(sol.transfer(_to(), _u256("amount"))))))
        assert result.by_class("SWC-113") == []


class TestBlockGasLimit:
    """SWC-128"""

    def _airdrop(self, *extra):
        users = sol.ident("users", "address[] storage ref")
        return sol.contract(
            "Airdrop",
            sol.state_var("users", "address[]"),
            sol.state_var("total", "uint256"),
            *extra,
            sol.function("payAll", [
                sol.for_(
                    sol.declare("i", "uint256", sol.number(0)),
                    sol.binop(sol.ident("i", "uint256"), "<", sol.member(users, "length", "uint256")),
                    sol.unary("++", sol.ident("i", "uint256"), prefix=False),
                    [sol.stmt(sol.assign(_u256("total"), sol.number(1), "+="))],
                ),
            ]),
        )

    def test_caller_growable_array(self, scan):
        join = sol.function("join", [
            sol.stmt(sol.call(sol.member(sol.ident("users", "address[] storage ref"), "push"), sol.sender())),
        ])
        finding = _one(scan(sol.unit("Airdrop.sol", self._airdrop(join))), "SWC-128")
        assert (finding.severity, finding.confidence) == (Severity.HIGH, Confidence.HIGH)
        assert finding.metadata == {"array": "users", "growers": ["join"]}

    def test_array_without_public_growers(self, scan):
        finding = _one(scan(sol.unit("Airdrop.sol", self._airdrop())), "SWC-128")
        assert finding.severity == Severity.MEDIUM


# ── Chain attributes ────────────────────────────────────────────────────────


class TestBlockTime:
    """SWC-116, SWC-120"""

    def _game(self, *body):
        return sol.contract(
            "Game",
            sol.state_var("deadline", "uint256"),
            sol.state_var("winner", "address"),
            sol.function("play", list(body)),
        )

    def test_deadline_check(self, scan):
        result = scan(sol.unit("Game.sol", self._game(
            sol.require(sol.binop(sol.glob("block", "timestamp"), ">=", _u256("deadline"))),
        )))
        finding = _one(result, "SWC-116")
        assert finding.confidence == Confidence.MEDIUM
        assert result.by_class("SWC-120") == []

    def test_exact_timestamp(self, scan):
        result = scan(sol.unit("Game.sol", self._game(
            sol.if_(sol.binop(sol.glob("block", "timestamp"), "==", _u256("deadline")), [sol.revert()]),
        )))
        assert _one(result, "SWC-116").confidence == Confidence.HIGH

    def test_timestamp_modulo_picks_winner(self, scan):
        result = scan(sol.unit("Game.sol", self._game(
            sol.declare("r", "uint256", sol.binop(sol.glob("block", "timestamp"), "%", sol.number(10), ts="uint256")),
            sol.if_(sol.binop(_u256("r"), "==", sol.number(0)), [
                sol.stmt(sol.assign(_addr("winner"), sol.sender())),
            ]),
        )))
        finding = _one(result, "SWC-120")
        assert finding.confidence == Confidence.HIGH
        assert "block_randomness" in finding.metadata["sources"]
        assert result.by_class("SWC-116") == []


# ── Storage ─────────────────────────────────────────────────────────────────


class TestShadowing:
    """SWC-119"""

    def test_redeclared_in_derived(self, scan):
        result = scan(sol.unit(
            "Shadow.sol",
            sol.contract("A", sol.state_var("x", "uint256", "public")),
            sol.contract("B", sol.state_var("x", "uint256", "public"), bases=("A",)),
        ))
        finding = _one(result, "SWC-119")
        assert finding.location.contract == "B"
        assert finding.related_contracts == ("A",)

    def test_parameter_hides_state(self, scan):
        result = scan(sol.unit("C.sol", sol.contract(
            "C",
            sol.state_var("total", "uint256"),
            sol.function("set", [], params=[sol.param("total", "uint256")]),
        )))
        finding = _one(result, "SWC-119")
        assert finding.severity == Severity.LOW
        assert finding.related_contracts == ()


class TestUninitializedStoragePointer:
    """SWC-109"""

    def _fn(self, location: str):
        return sol.contract("C", sol.function("f", [sol.declare("p", "uint256[]", location=location)]))

    def test_explicit_storage(self, scan):
        finding = _one(scan(sol.unit("C.sol", self._fn("storage"))), "SWC-109")
        assert finding.confidence == Confidence.HIGH

    def test_implicit_storage_before_0_5(self, scan):
        finding = _one(scan(sol.unit("C.sol", self._fn(""), pragma="0.4.24")), "SWC-109")
        assert finding.metadata["explicit"] is False

    def test_memory(self, scan):
        assert scan(sol.unit("C.sol", self._fn("memory"))).by_class("SWC-109") == []


class TestArbitraryStorageWrite:
    """SWC-124"""

    def _pop(self):
        arr = sol.ident("arr", "uint256[] storage ref")
        return sol.contract(
            "Queue",
            sol.state_var("arr", "uint256[]"),
            sol.function("pop", [sol.stmt(sol.unary("--", sol.member(arr, "length", "uint256"), prefix=False))]),
        )

    def test_length_decrement(self, scan):
        finding = _one(scan(sol.unit("Queue.sol", self._pop(), pragma="0.4.24")), "SWC-124")
        assert finding.confidence == Confidence.HIGH
        assert finding.metadata["array"] == ["arr"]

    def test_length_not_writable_after_0_6(self, scan):
        assert scan(sol.unit("Queue.sol", self._pop())).by_class("SWC-124") == []

    def test_sstore_to_computed_slot(self, scan):
        contract = sol.contract("Raw", sol.function("store", [
            sol.assembly(sol.yul_expr(sol.yul_call("sstore", sol.yul_id("slot"), sol.yul_id("value")))),
        ], params=[sol.param("slot", "uint256"), sol.param("value", "uint256")]))
        finding = _one(scan(sol.unit("Raw.sol", contract)), "SWC-124")
        assert finding.metadata == {"slot": "slot", "guarded": False}

    def test_sstore_to_literal_slot(self, scan):
        contract = sol.contract("Raw", sol.function("store", [
            sol.assembly(sol.yul_expr(sol.yul_call("sstore", sol.yul_lit(0), sol.yul_id("value")))),
        ], params=[sol.param("value", "uint256")]))
        assert scan(sol.unit("Raw.sol", contract)).by_class("SWC-124") == []


class TestArbitraryJump:
    """SWC-127"""

    def test_function_pointer_set_in_assembly(self, scan):
        contract = sol.contract("Jump", sol.function("f", [
            sol.declare("fn", "function () pure"),
            sol.assembly(sol.yul_assign("fn", sol.yul_id("x"))),
        ]))
        finding = _one(scan(sol.unit("Jump.sol", contract)), "SWC-127")
        assert finding.metadata == {"variable": "fn", "via": "assembly"}


# ── Code quality ────────────────────────────────────────────────────────────


class TestAssertViolation:
    """SWC-110"""

    def test_assert_false(self, scan):
        contract = sol.contract("C", sol.function("f", [sol.assert_(sol.boolean(False))]))
        finding = _one(scan(sol.unit("C.sol", contract)), "SWC-110")
        assert finding.confidence == Confidence.HIGH
        assert finding.metadata["always_fails"] is True

    def test_assert_on_caller_input(self, scan):
        contract = sol.contract("C", sol.function("f", [
            sol.assert_(sol.binop(_u256("x"), ">", sol.number(0))),
        ], params=[sol.param("x", "uint256")]))
        finding = _one(scan(sol.unit("C.sol", contract)), "SWC-110")
        assert finding.metadata["sources"] == ["calldata"]

    def test_dead_code(self, scan):
        contract = sol.contract(
            "C",
            sol.state_var("n", "uint256"),
            sol.function("f", [sol.return_(), sol.stmt(sol.assign(_u256("n"), sol.number(1)))]),
        )
        finding = _one(scan(sol.unit("C.sol", contract)), "SWC-110")
        assert (finding.severity, finding.confidence) == (Severity.LOW, Confidence.LOW)
        assert finding.metadata["dead_code"] is True


class TestDeprecatedFunctions:
    """SWC-111"""

    def test_constant_function(self, scan):
        contract = sol.contract("Old", sol.function("get", [], constant=True))
        finding = _one(scan(sol.unit("Old.sol", contract, pragma="0.4.24")), "SWC-111")
        assert finding.metadata["constructs"] == ["constant"]

    def test_throw(self, scan):
        contract = sol.contract("Old", sol.function("f", [sol.throw()]))
        finding = _one(scan(sol.unit("Old.sol", contract, pragma="0.4.24")), "SWC-111")
        assert finding.metadata["constructs"] == ["throw"]
        assert "revert()" in finding.rationale


class TestBidiCharacters:
    """SWC-130"""

    def test_right_to_left_override(self, scan):
        source = "contract C {\n    // \u202e gnp.txt\n}\n"
        finding = _one(scan(sol.unit("C.sol", sol.contract("C"), source=source)), "SWC-130")
        assert finding.severity == Severity.HIGH
        assert finding.location.span.offset == len("contract C {\n    // ".encode("utf-8"))
        assert finding.metadata["codepoint"] == "U+202E"

    def test_other_bidi_control(self, scan):
        source = "contract C {\n    string s = \"\u2066\";\n}\n"
        finding = _one(scan(sol.unit("C.sol", sol.contract("C"), source=source)), "SWC-130")
        assert finding.severity == Severity.MEDIUM

    def test_plain_source(self, scan):
        assert scan(sol.unit("C.sol", sol.contract("C"), source="contract C {}\n")).by_class("SWC-130") == []


# ── Inheritance ─────────────────────────────────────────────────────────────


class TestInheritanceOrder:
    """SWC-125"""

    def test_unrelated_bases_with_same_function(self, scan):
        result = scan(sol.unit(
            "Order.sol",
            sol.contract("A", sol.function("f", [])),
            sol.contract("B", sol.function("f", [])),
            sol.contract("C", bases=("A", "B")),
        ))
        finding = _one(result, "SWC-125")
        assert finding.location.contract == "C"
        assert finding.location.function == "f"
        assert finding.related_contracts == ("A", "B")
        assert finding.metadata["selected"] == "B"

    def test_override_resolves_ambiguity(self, scan):
        result = scan(sol.unit(
            "Order.sol",
            sol.contract("A", sol.function("f", [])),
            sol.contract("B", sol.function("f", [])),
            sol.contract("C", sol.function("f", []), bases=("A", "B")),
        ))
        assert result.by_class("SWC-125") == []


# ── Signatures ──────────────────────────────────────────────────────────────


def _sig_params():
    return [
        sol.param("h", "bytes32"), sol.param("v", "uint8"),
        sol.param("r", "bytes32"), sol.param("s", "bytes32"),
    ]


def _recover(hash_node=None):
    return sol.declare("signer", "address", sol.builtin(
        "ecrecover",
        hash_node or sol.ident("h", "bytes32"),
        sol.ident("v", "uint8"), sol.ident("r", "bytes32"), sol.ident("s", "bytes32"),
        ts="address",
    ))


def _signed(*tail):
    used = "mapping(bytes32 => bool)"
    return sol.contract(
        "Claims",
        sol.state_var("owner", "address"),
        sol.state_var("used", used),
        sol.state_var("total", "uint256"),
        sol.function("claim", [
            _recover(),
            sol.require(sol.binop(_addr("signer"), "==", _addr("owner"))),
            *tail,
        ], params=_sig_params()),
    )


def _mark(key: str):
    used = "mapping(bytes32 => bool)"
    return sol.stmt(sol.assign(sol.index(sol.ident("used", used), sol.ident(key, "bytes32"), "bool"), sol.boolean(True)))


class TestSignatureMalleability:
    """SWC-117"""

    def test_signature_component_as_key(self, scan):
        finding = _one(scan(sol.unit("Claims.sol", _signed(_mark("s")))), "SWC-117")
        assert finding.metadata["keys"] == ["s"]
        assert finding.metadata["mapping"] == ["used"]

    def test_message_hash_as_key(self, scan):
        assert scan(sol.unit("Claims.sol", _signed(_mark("h")))).by_class("SWC-117") == []


class TestSignatureReplay:
    """SWC-121"""

    def test_nothing_recorded(self, scan):
        result = scan(sol.unit("Claims.sol", _signed(sol.stmt(sol.assign(_u256("total"), sol.number(1), "+=")))))
        finding = _one(result, "SWC-121")
        # ``used`` exists in the contract, just not in this function
        assert finding.confidence == Confidence.LOW

    def test_message_recorded(self, scan):
        assert scan(sol.unit("Claims.sol", _signed(_mark("h")))).by_class("SWC-121") == []


class TestPackedHashCollision:
    """SWC-133"""

    def _verifier(self, encoder: str):
        a, b = sol.ident("a", "address[] memory"), sol.ident("b", "address[] memory")
        digest = sol.builtin("keccak256", sol.abi_call(encoder, a, b), ts="bytes32")
        return sol.contract(
            "Allowlist",
            sol.state_var("owner", "address"),
            sol.function("verify", [
                sol.declare("h", "bytes32", digest),
                _recover(sol.ident("h", "bytes32")),
                sol.require(sol.binop(_addr("signer"), "==", _addr("owner"))),
            ], params=[
                sol.param("a", "address[]", "memory"), sol.param("b", "address[]", "memory"),
                sol.param("v", "uint8"), sol.param("r", "bytes32"), sol.param("s", "bytes32"),
            ]),
        )

    def test_two_dynamic_arrays_feed_signature_check(self, scan):
        finding = _one(scan(sol.unit("Allowlist.sol", self._verifier("encodePacked"))), "SWC-133")
        assert finding.confidence == Confidence.HIGH
        assert finding.metadata["dynamic_arguments"] == ["address[] memory", "address[] memory"]

    def test_abi_encode_is_safe(self, scan):
        assert scan(sol.unit("Allowlist.sol", self._verifier("encode"))).by_class("SWC-133") == []
