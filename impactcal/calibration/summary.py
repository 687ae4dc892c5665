"""
Run Summarizer — run-level gap metrics and the overall model health verdict.

Computed from individual sample gaps, never from cell averages.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from impactcal.calibration.types import OverallStatus, ValidationSample

# ── Configuration ─────────────────────────────────────────────────────────

GOOD_MAX_GAP: float = 10.0             # avg_gap at or below → candidate for "good"
GOOD_MIN_CORRELATION: float = 75.0     # correlation_score required for "good"
NEEDS_TUNING_MAX_GAP: float = 20.0     # avg_gap at or below → "needs_tuning"


@dataclass(frozen=True)
class RunMetrics:
    """Run-level calibration metrics. Gap fields are None for an empty run."""
    sample_size: int
    avg_gap: Optional[float] = None
    max_gap: Optional[float] = None
    min_gap: Optional[float] = None
    correlation_score: Optional[float] = None
    overall_status: Optional[OverallStatus] = None

    @property
    def is_empty(self) -> bool:
        return self.sample_size == 0

    def to_dict(self) -> dict:
        if self.is_empty:
            return {"sample_size": 0}
        return {
            "sample_size": self.sample_size,
            "avg_gap": self.avg_gap,
            "max_gap": self.max_gap,
            "min_gap": self.min_gap,
            "correlation_score": self.correlation_score,
            "overall_status": self.overall_status.value if self.overall_status else None,
        }


def correlation_score(avg_gap: float) -> float:
    return max(0.0, 100.0 - avg_gap)


def classify_status(avg_gap: float, correlation: float) -> OverallStatus:
    if avg_gap <= GOOD_MAX_GAP and correlation >= GOOD_MIN_CORRELATION:
        return OverallStatus.GOOD
    if avg_gap <= NEEDS_TUNING_MAX_GAP:
        return OverallStatus.NEEDS_TUNING
    return OverallStatus.BAD


def summarize_run(samples: Sequence[ValidationSample]) -> RunMetrics:
    """Summarize a run. Zero samples is a valid, empty result."""
    if not samples:
        return RunMetrics(sample_size=0)

    gaps = [s.gap for s in samples]
    avg_gap = math.fsum(gaps) / len(gaps)
    correlation = correlation_score(avg_gap)

    return RunMetrics(
        sample_size=len(samples),
        avg_gap=avg_gap,
        max_gap=max(gaps),
        min_gap=min(gaps),
        correlation_score=correlation,
        overall_status=classify_status(avg_gap, correlation),
    )
