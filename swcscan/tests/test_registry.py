"""Tests for swcscan.analyzer.registry — discovery and the detector catalog."""

from __future__ import annotations

import pytest

from swcscan.analyzer.base_detector import DetectorSpec, detector
from swcscan.analyzer.catalog import CATALOG, get_class
from swcscan.analyzer.registry import DetectorRegistry
from swcscan.core.types import Confidence, Severity


class TestDiscovery:
    def test_one_detector_per_catalog_class(self, registry):
        assert registry.ids() == set(CATALOG)
        assert registry.count() == 29

    def test_ordered_by_id(self, registry):
        ids = [d.detector_id for d in registry.get_all()]
        assert ids == sorted(ids)

    def test_defaults_follow_catalog(self, registry):
        spec = registry.get_by_id("SWC-106")
        assert spec.severity == Severity.CRITICAL
        assert spec.entry.title == "Unprotected SELFDESTRUCT Instruction"

    def test_get_by_class(self, registry):
        assert [d.detector_id for d in registry.get_by_class("SWC-104")] == ["SWC-104"]

    def test_unknown_id(self, registry):
        assert registry.get_by_id("SWC-999") is None


class TestRegistration:
    def test_explicit_specs_skip_discovery(self):
        @detector("SWC-103")
        def only(ctx):
            return []

        reg = DetectorRegistry(specs=[only.__detector_spec__])
        assert reg.ids() == {"SWC-103"}

    def test_duplicate_id_rejected(self):
        def first(ctx):
            return []

        def second(ctx):
            return []

        spec = DetectorSpec("SWC-104", "SWC-104", "first", Severity.MEDIUM, Confidence.HIGH, first)
        reg = DetectorRegistry(specs=[spec])
        reg.register(spec)
        with pytest.raises(ValueError, match="Duplicate"):
            reg.register(DetectorSpec("SWC-104", "SWC-104", "second", Severity.MEDIUM, Confidence.HIGH, second))

    def test_decorator_overrides(self):
        @detector("SWC-110", detector_id="SWC-110-strict", severity=Severity.HIGH)
        def strict(ctx):
            return []

        spec = strict.__detector_spec__
        assert spec.detector_id == "SWC-110-strict"
        assert spec.class_id == "SWC-110"
        assert spec.severity == Severity.HIGH
        assert spec.confidence == get_class("SWC-110").confidence

    def test_unknown_class(self):
        with pytest.raises(KeyError):
            detector("SWC-999")
