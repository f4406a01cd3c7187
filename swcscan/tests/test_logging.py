"""Tests for swcscan.core.logging — formatters, scan ID correlation and setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from swcscan.analyzer.analyzer import Analyzer, analyze
from swcscan.core.config import get_settings
from swcscan.core.logging import (
    DevFormatter,
    JSONFormatter,
    ScanLogFilter,
    bind_scan_id,
    current_scan_id,
    setup_logging,
)
from swcscan.tests import solc_ast as sol


def _record(msg: str = "Detector produced %d finding(s)", *args, exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("swcscan.analyzer", logging.INFO, __file__, 42, msg, args or (2,), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    get_settings.cache_clear()


class TestJSONFormatter:
    def test_context_fields(self):
        record = _record(scan_id="abc123", contract="Vault", detector_id="SWC-104", duration_ms=1.5)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Detector produced 2 finding(s)"
        assert entry["level"] == "INFO"
        assert entry["scan_id"] == "abc123"
        assert entry["contract"] == "Vault"
        assert entry["detector_id"] == "SWC-104"
        assert entry["duration_ms"] == 1.5

    def test_absent_fields_omitted(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert "detector_id" not in entry
        assert "contract" not in entry

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record("failed", exc_info=sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "RuntimeError"
        assert entry["exception"]["message"] == "boom"


class TestDevFormatter:
    def test_scan_and_contract_shown(self):
        text = DevFormatter().format(_record(scan_id="abcdef123456", contract="Vault"))
        assert "[abcdef12]" in text
        assert "(contract=Vault)" in text


class TestScanLogFilter:
    def test_fixed_scan_id(self):
        record = _record()
        assert ScanLogFilter("fixed").filter(record)
        assert record.scan_id == "fixed"

    def test_bound_scan_id(self):
        record = _record()
        with bind_scan_id("bound"):
            ScanLogFilter().filter(record)
        assert record.scan_id == "bound"
        assert current_scan_id.get() == ""

    def test_explicit_scan_id_kept(self):
        record = _record(scan_id="explicit")
        with bind_scan_id("bound"):
            ScanLogFilter().filter(record)
        assert record.scan_id == "explicit"

    def test_worker_thread_records_carry_scan_id(self, caplog, registry, scan_config):
        broken = sol.function("broken", [])
        broken["body"] = {"nodeType": "Return", "src": "0:1:0"}
        unit = sol.unit("Wallet.sol", sol.contract("Wallet", broken))
        caplog.set_level(logging.WARNING)
        caplog.handler.addFilter(ScanLogFilter())

        Analyzer(scan_config, registry).analyze([unit], scan_id="scan-1")

        skipped = [r for r in caplog.records if r.getMessage().startswith("Skipping Wallet.broken")]
        assert skipped
        assert all(r.scan_id == "scan-1" for r in skipped)


class TestSetupLogging:
    def test_ci_uses_json(self, restore_root):
        setup_logging("ci", "DEBUG")
        (handler,) = restore_root.handlers
        assert isinstance(handler.formatter, JSONFormatter)
        assert any(isinstance(f, ScanLogFilter) for f in handler.filters)
        assert restore_root.level == logging.DEBUG

    def test_development_uses_dev_formatter(self, restore_root):
        setup_logging("development")
        (handler,) = restore_root.handlers
        assert isinstance(handler.formatter, DevFormatter)

    def test_analyze_configures_from_settings(self, restore_root, monkeypatch, registry, scan_config):
        monkeypatch.setenv("SWCSCAN_APP_ENV", "production")
        monkeypatch.setenv("SWCSCAN_LOG_LEVEL", "WARNING")
        get_settings.cache_clear()
        analyze([sol.unit("Empty.sol", sol.contract("Empty"))], scan_config, registry, configure_logging=True)
        (handler,) = restore_root.handlers
        assert isinstance(handler.formatter, JSONFormatter)
        assert restore_root.level == logging.WARNING
