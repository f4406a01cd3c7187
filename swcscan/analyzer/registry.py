"""Detector registry — discovers and loads all available detectors."""

from __future__ import annotations

import importlib
import logging
import pkgutil
from types import ModuleType
from typing import Iterable

from swcscan.analyzer.base_detector import DetectorSpec

logger = logging.getLogger(__name__)


class DetectorRegistry:
    """Mapping from detector id to ``DetectorSpec``.

    Discovers ``@detector``-tagged functions from the ``detectors`` package
    on first use. Each registry is independent; there is no module-level
    instance.
    """

    def __init__(self, specs: Iterable[DetectorSpec] | None = None) -> None:
        self._detectors: dict[str, DetectorSpec] = {}
        self._loaded = specs is not None
        for spec in specs or ():
            self.register(spec)

    def register(self, spec: DetectorSpec) -> None:
        existing = self._detectors.get(spec.detector_id)
        if existing is not None and existing.func is not spec.func:
            raise ValueError(f"Duplicate detector id {spec.detector_id}")
        self._detectors[spec.detector_id] = spec

    def discover(self) -> None:
        """Auto-discover all detector functions from the detectors package."""
        if self._loaded:
            return

        import swcscan.analyzer.detectors as detectors_pkg

        for _finder, module_name, _is_pkg in pkgutil.walk_packages(
            detectors_pkg.__path__,
            prefix=detectors_pkg.__name__ + ".",
        ):
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                logger.warning("Failed to load detector module %s: %s", module_name, e)
                continue
            for spec in _specs_in(module):
                self.register(spec)

        logger.debug("Discovered %d detectors", len(self._detectors))
        self._loaded = True

    def get_all(self) -> list[DetectorSpec]:
        """Return all registered detectors ordered by id."""
        self.discover()
        return [self._detectors[k] for k in sorted(self._detectors)]

    def get_by_id(self, detector_id: str) -> DetectorSpec | None:
        self.discover()
        return self._detectors.get(detector_id)

    def get_by_class(self, class_id: str) -> list[DetectorSpec]:
        self.discover()
        return [d for d in self.get_all() if d.class_id == class_id]

    def ids(self) -> set[str]:
        self.discover()
        return set(self._detectors)

    def count(self) -> int:
        """Return the total number of registered detectors."""
        self.discover()
        return len(self._detectors)


def _specs_in(module: ModuleType) -> list[DetectorSpec]:
    out = []
    for attr_name in dir(module):
        spec = getattr(getattr(module, attr_name), "__detector_spec__", None)
        if isinstance(spec, DetectorSpec):
            out.append(spec)
    return out
