"""Compiler-version pragma parsing and language-version context.

Understands the constraint forms solc accepts in ``pragma solidity``:
exact (``0.8.19``, ``=0.8.19``), caret (``^0.8.0``), tilde (``~0.5.1``),
comparison ranges (``>=0.4.22 <0.6.0``), ``||`` alternatives and partial
versions (``0.8``, ``0.8.x``), which admit every release of that series.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_CLAUSE_RE = re.compile(r"(\^|~|>=|<=|>|<|=)?\s*v?(\d+)(?:\.(\d+|x|\*))?(?:\.(\d+|x|\*))?")


@dataclass(frozen=True, order=True)
class Version:
    major: int = 0
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> "Version":
        match = _CLAUSE_RE.search(text or "")
        if not match:
            raise ValueError(f"Not a compiler version: {text!r}")
        return cls(*(_num(g) for g in match.group(2, 3, 4)))

    def next_patch(self) -> "Version":
        return Version(self.major, self.minor, self.patch + 1)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def _num(part: str | None) -> int:
    if not part or part in ("x", "*"):
        return 0
    return int(part)


@dataclass(frozen=True)
class Clause:
    op: str
    version: Version

    def allows(self, v: Version) -> bool:
        op, base = self.op, self.version
        if op == "=":
            return v == base
        if op == ">=":
            return v >= base
        if op == ">":
            return v > base
        if op == "<=":
            return v <= base
        if op == "<":
            return v < base
        if op == "^":
            if base.major > 0:
                upper = Version(base.major + 1, 0, 0)
            else:
                upper = Version(0, base.minor + 1, 0)
            return base <= v < upper
        if op == "~":
            return base <= v < Version(base.major, base.minor + 1, 0)
        return False

    @property
    def lower_bound(self) -> Version | None:
        if self.op in ("=", ">=", "^", "~"):
            return self.version
        if self.op == ">":
            return self.version.next_patch()
        return None


@dataclass(frozen=True)
class PragmaConstraint:
    """A parsed ``pragma solidity`` constraint."""

    raw: str
    alternatives: tuple[tuple[Clause, ...], ...] = field(default_factory=tuple)

    @property
    def is_floating(self) -> bool:
        """True unless the constraint pins one exact compiler version."""
        if len(self.alternatives) != 1:
            return True
        clauses = self.alternatives[0]
        return not (len(clauses) == 1 and clauses[0].op == "=")

    @property
    def minimum_version(self) -> Version:
        """Lowest compiler version the constraint admits."""
        lows: list[Version] = []
        for clauses in self.alternatives:
            bounds = [c.lower_bound for c in clauses if c.lower_bound is not None]
            lows.append(max(bounds) if bounds else Version(0, 0, 0))
        return min(lows) if lows else Version(0, 0, 0)

    def allows(self, version: Version) -> bool:
        return any(all(c.allows(version) for c in clauses) for clauses in self.alternatives)


def _is_wild(part: str | None) -> bool:
    return not part or part in ("x", "*")


def _clauses(match: re.Match[str]) -> tuple[Clause, ...]:
    """Clauses for one matched version; a bare partial version admits its whole series."""
    op = match.group(1) or "="
    major, minor, patch = match.group(2, 3, 4)
    version = Version(*(_num(g) for g in (major, minor, patch)))
    if op != "=":
        return (Clause(op, version),)
    if _is_wild(minor):
        # ``0`` / ``0.x``: every release of the major version
        return (Clause(">=", version), Clause("<", Version(version.major + 1, 0, 0)))
    if _is_wild(patch):
        return (Clause("~", version),)
    return (Clause("=", version),)


def parse_pragma(text: str) -> PragmaConstraint:
    """Parse a pragma constraint; a leading ``solidity`` keyword is accepted.

    Raises:
        ValueError: if no version clause can be found.
    """
    raw = (text or "").strip().rstrip(";").strip()
    body = re.sub(r"^(pragma\s+)?solidity\s*", "", raw)
    alternatives: list[tuple[Clause, ...]] = []
    for part in body.split("||"):
        clauses = tuple(c for m in _CLAUSE_RE.finditer(part) for c in _clauses(m))
        if clauses:
            alternatives.append(clauses)
    if not alternatives:
        raise ValueError(f"Unparsable pragma: {text!r}")
    return PragmaConstraint(raw=raw, alternatives=tuple(alternatives))


@dataclass(frozen=True)
class LanguageContext:
    """Language-version semantics that change what a detector should report."""

    version: Version = Version(0, 8, 0)

    @classmethod
    def from_string(cls, text: str) -> "LanguageContext":
        return cls(version=Version.parse(text))

    @classmethod
    def from_pragma(cls, pragma: PragmaConstraint | None, default: str = "0.8.0") -> "LanguageContext":
        if pragma is None:
            return cls.from_string(default)
        return cls(version=pragma.minimum_version)

    @property
    def function_visibility_optional(self) -> bool:
        # Explicit function visibility became mandatory in 0.5.0
        return self.version < Version(0, 5, 0)

    @property
    def checked_arithmetic(self) -> bool:
        return self.version >= Version(0, 8, 0)

    @property
    def constructor_keyword(self) -> bool:
        return self.version >= Version(0, 4, 22)

    @property
    def array_length_writable(self) -> bool:
        return self.version < Version(0, 6, 0)
