"""The vulnerability catalog: one entry per class the engine detects."""

from __future__ import annotations

from dataclasses import dataclass

from swcscan.core.types import Confidence, Severity


@dataclass(frozen=True)
class VulnerabilityClass:
    class_id: str
    title: str
    severity: Severity
    confidence: Confidence
    remediation: str


# Replacements for constructs removed from or deprecated in the language
DEPRECATED_SUBSTITUTIONS: dict[str, str] = {
    "suicide": "selfdestruct",
    "block.blockhash": "blockhash",
    "sha3": "keccak256",
    "callcode": "delegatecall",
    "throw": "revert()",
    "msg.gas": "gasleft()",
    "constant": "view",
    "var": "the corresponding type name",
}

_S, _C = Severity, Confidence

CATALOG: dict[str, VulnerabilityClass] = {
    entry.class_id: entry
    for entry in (
        VulnerabilityClass(
            "SWC-100", "Function Default Visibility", _S.MEDIUM, _C.HIGH,
            "Declare function visibility explicitly; make functions internal or private unless they are meant to be called externally.",
        ),
        VulnerabilityClass(
            "SWC-101", "Integer Overflow and Underflow", _S.HIGH, _C.MEDIUM,
            "Use compiler 0.8.0 or later, or guard the operation with a bounds check (SafeMath) before it executes.",
        ),
        VulnerabilityClass(
            "SWC-102", "Outdated Compiler Version", _S.LOW, _C.HIGH,
            "Compile with a recent compiler release.",
        ),
        VulnerabilityClass(
            "SWC-103", "Floating Pragma", _S.INFORMATIONAL, _C.HIGH,
            "Lock the pragma to the compiler version the contract was tested with.",
        ),
        VulnerabilityClass(
            "SWC-104", "Unchecked Call Return Value", _S.MEDIUM, _C.HIGH,
            "Check the success flag of every low-level call and handle failure, e.g. require(success).",
        ),
        VulnerabilityClass(
            "SWC-105", "Unprotected Ether Withdrawal", _S.HIGH, _C.MEDIUM,
            "Restrict withdrawals to authorized callers or to amounts the caller is owed.",
        ),
        VulnerabilityClass(
            "SWC-106", "Unprotected SELFDESTRUCT Instruction", _S.CRITICAL, _C.HIGH,
            "Remove self-destruct functionality or guard it with an authorization check or multisig.",
        ),
        VulnerabilityClass(
            "SWC-108", "State Variable Default Visibility", _S.LOW, _C.HIGH,
            "Declare state variable visibility explicitly.",
        ),
        VulnerabilityClass(
            "SWC-109", "Uninitialized Storage Pointer", _S.HIGH, _C.HIGH,
            "Initialize local storage variables or declare them memory.",
        ),
        VulnerabilityClass(
            "SWC-110", "Assert Violation", _S.MEDIUM, _C.MEDIUM,
            "Use require() for input validation; keep assert() for invariants that can never fail.",
        ),
        VulnerabilityClass(
            "SWC-111", "Use of Deprecated Solidity Functions", _S.LOW, _C.HIGH,
            "Replace deprecated constructs: " + ", ".join(f"{k} -> {v}" for k, v in DEPRECATED_SUBSTITUTIONS.items()) + ".",
        ),
        VulnerabilityClass(
            "SWC-112", "Delegatecall to Untrusted Callee", _S.CRITICAL, _C.HIGH,
            "Only delegatecall trusted, fixed addresses; never a caller-supplied target.",
        ),
        VulnerabilityClass(
            "SWC-113", "DoS with Failed Call", _S.MEDIUM, _C.MEDIUM,
            "Isolate external calls into their own transaction (pull payments) instead of sending in a loop or chaining them.",
        ),
        VulnerabilityClass(
            "SWC-115", "Authorization through tx.origin", _S.CRITICAL, _C.HIGH,
            "Use msg.sender for authorization instead of tx.origin.",
        ),
        VulnerabilityClass(
            "SWC-116", "Block values as a proxy for time", _S.LOW, _C.MEDIUM,
            "Do not rely on block.timestamp or block.number for precise timing or critical decisions.",
        ),
        VulnerabilityClass(
            "SWC-117", "Signature Malleability", _S.MEDIUM, _C.MEDIUM,
            "Do not use signatures as unique identifiers; validate s and v or use a vetted ECDSA library.",
        ),
        VulnerabilityClass(
            "SWC-118", "Incorrect Constructor Name", _S.CRITICAL, _C.HIGH,
            "Use the constructor keyword.",
        ),
        VulnerabilityClass(
            "SWC-119", "Shadowing State Variables", _S.MEDIUM, _C.HIGH,
            "Rename the variable in the derived contract or drop the duplicate declaration.",
        ),
        VulnerabilityClass(
            "SWC-120", "Weak Sources of Randomness from Chain Attributes", _S.HIGH, _C.MEDIUM,
            "Use an oracle-backed randomness source or a commit-reveal scheme.",
        ),
        VulnerabilityClass(
            "SWC-121", "Missing Protection against Signature Replay Attacks", _S.HIGH, _C.LOW,
            "Include a nonce, the contract address and the chain id in the signed message and record processed hashes.",
        ),
        VulnerabilityClass(
            "SWC-124", "Write to Arbitrary Storage Location", _S.HIGH, _C.MEDIUM,
            "Never let callers control storage slots or dynamic array lengths.",
        ),
        VulnerabilityClass(
            "SWC-125", "Incorrect Inheritance Order", _S.LOW, _C.MEDIUM,
            "List base contracts from the most general to the most specific.",
        ),
        VulnerabilityClass(
            "SWC-126", "Insufficient Gas Griefing", _S.MEDIUM, _C.LOW,
            "Require the caller to forward enough gas for the sub-call, or restrict who may relay.",
        ),
        VulnerabilityClass(
            "SWC-127", "Arbitrary Jump with Function Type Variable", _S.HIGH, _C.MEDIUM,
            "Avoid assembly writes to function-type variables and never let callers choose them.",
        ),
        VulnerabilityClass(
            "SWC-128", "DoS With Block Gas Limit", _S.MEDIUM, _C.MEDIUM,
            "Avoid loops over unbounded, caller-growable storage; paginate or use pull patterns.",
        ),
        VulnerabilityClass(
            "SWC-129", "Typographical Error", _S.MEDIUM, _C.MEDIUM,
            "Use += / -= instead of =+ / =-.",
        ),
        VulnerabilityClass(
            "SWC-130", "Right-To-Left-Override control character", _S.HIGH, _C.HIGH,
            "Remove U+202E and other bidirectional control characters from the source.",
        ),
        VulnerabilityClass(
            "SWC-133", "Hash Collision With Multiple Variable Length Arguments", _S.MEDIUM, _C.HIGH,
            "Use abi.encode instead of abi.encodePacked, or hash at most one dynamic argument.",
        ),
        VulnerabilityClass(
            "SWC-134", "Message call with hardcoded gas amount", _S.LOW, _C.HIGH,
            "Avoid transfer()/send() and fixed gas stipends; use call{value: ...} and check the result.",
        ),
    )
}


def get_class(class_id: str) -> VulnerabilityClass:
    """Raises:
        KeyError: if ``class_id`` is not in the catalog.
    """
    return CATALOG[class_id]
