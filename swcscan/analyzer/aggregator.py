"""Finding aggregation: merge duplicates, apply inline suppressions, rank.

The output order depends only on the findings themselves, never on the
order detectors or workers produced them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from swcscan.core.adapter import Suppression
from swcscan.core.types import Finding

logger = logging.getLogger(__name__)


@dataclass
class AggregateResult:
    findings: list[Finding] = field(default_factory=list)
    suppressed_count: int = 0
    duplicate_count: int = 0


def _preference(f: Finding) -> tuple:
    # Among duplicates keep the most severe, then most confident, then a stable text order
    return (-f.severity.rank, -f.confidence.rank, f.detector_id, f.rationale)


def deduplicate(findings: Iterable[Finding]) -> tuple[list[Finding], int]:
    """Keep one finding per (class, file, contract, function, span)."""
    best: dict[tuple, Finding] = {}
    dropped = 0
    for f in findings:
        key = f.dedup_key
        current = best.get(key)
        if current is None:
            best[key] = f
            continue
        dropped += 1
        merged_related = tuple(sorted(set(current.related_contracts) | set(f.related_contracts)))
        keep = f if _preference(f) < _preference(current) else current
        if keep.related_contracts != merged_related:
            keep = keep.model_copy(update={"related_contracts": merged_related})
        best[key] = keep
    return list(best.values()), dropped


def is_suppressed(finding: Finding, suppressions: Sequence[Suppression]) -> bool:
    return any(s.matches(finding.class_id, finding.location.span) for s in suppressions)


def rank(findings: Iterable[Finding]) -> list[Finding]:
    """Severity desc, confidence desc, then file, offset, class, contract, function."""
    return sorted(findings, key=lambda f: f.sort_key)


def aggregate(
    findings: Iterable[Finding],
    suppressions: Mapping[str, Sequence[Suppression]] | None = None,
) -> AggregateResult:
    """Deduplicate, suppress and sort. Never adds a finding.

    ``suppressions`` maps a file path to the inline suppressions of that file.
    """
    suppressions = suppressions or {}
    unique, duplicates = deduplicate(findings)

    kept: list[Finding] = []
    suppressed = 0
    for f in unique:
        if is_suppressed(f, suppressions.get(f.location.file_path, ())):
            suppressed += 1
            continue
        kept.append(f)

    if duplicates or suppressed:
        logger.debug("Aggregated findings: %d duplicates merged, %d suppressed", duplicates, suppressed)
    return AggregateResult(findings=rank(kept), suppressed_count=suppressed, duplicate_count=duplicates)
