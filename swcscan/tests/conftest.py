"""Shared fixtures for the SWCSCAN test suite."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import pytest

from swcscan.analyzer.analyzer import Analyzer
from swcscan.analyzer.registry import DetectorRegistry
from swcscan.core.adapter import CompilationUnit
from swcscan.core.cfg import CFG, build_cfg
from swcscan.core.config import ScanConfig
from swcscan.core.dataflow import FunctionFacts, analyze_function
from swcscan.core.resolver import Contract, Function, FunctionScope, resolve_units
from swcscan.core.types import ScanResult
from swcscan.tests import solc_ast as sol


# ── Registry & Config ────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def registry() -> DetectorRegistry:
    """Registry with every detector discovered once per session."""
    reg = DetectorRegistry()
    reg.discover()
    return reg


@pytest.fixture
def scan_config() -> ScanConfig:
    """Deterministic scan configuration independent of the environment."""
    return ScanConfig(max_workers=2, timeout_seconds=None)


@pytest.fixture
def scan(registry: DetectorRegistry, scan_config: ScanConfig) -> Callable[..., ScanResult]:
    """Run a full scan over the given units."""

    def _scan(*units: CompilationUnit, config: ScanConfig | None = None) -> ScanResult:
        return Analyzer(config or scan_config, registry).analyze(list(units))

    return _scan


# ── Single-function analysis ─────────────────────────────────────────────────


@dataclass
class LoweredFunction:
    contract: Contract
    function: Function
    scope: FunctionScope
    cfg: CFG
    facts: FunctionFacts


@pytest.fixture
def lower() -> Callable[..., LoweredFunction]:
    """Resolve one contract and run CFG construction plus dataflow on one function."""

    def _lower(contract_node: dict, function_name: str, pragma: str = "0.8.19") -> LoweredFunction:
        resolution = resolve_units([sol.unit("Test.sol", contract_node, pragma=pragma)])
        contract = resolution.symbols.get(contract_node["name"])
        assert contract is not None, resolution.diagnostics
        func = contract.get_function(function_name) or next(
            m for m in contract.modifiers if m.name == function_name
        )
        scope = resolution.symbols.scope_for(func)
        cfg = build_cfg(func.qualified_name, func.body, scope)
        facts = analyze_function(
            cfg, scope, contract.language, externally_reachable=func.is_externally_reachable,
        )
        return LoweredFunction(contract, func, scope, cfg, facts)

    return _lower
