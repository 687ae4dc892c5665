"""
Bias Analyzer — detect systematic over/under-estimation across cells.

Each bias pattern is a declarative rule: which cells it matches, how the
weight vector should be nudged when it fires, and the rationale text to
record. Adding a pattern means appending to BIAS_PATTERNS; neither the
analyzer nor the weight corrector changes.

Only non-outlier cells are weighted (by sample count), so a handful of noisy
samples cannot dominate the signal.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping

import structlog

from impactcal.calibration.cells import CellStats
from impactcal.calibration.types import ActualBucket, PredictedBucket

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

SIGNIFICANCE_THRESHOLD: float = 0.2    # ratio must be strictly greater


@dataclass(frozen=True)
class BiasPattern:
    """A named bias rule and the correction it triggers."""
    name: str
    predicted: frozenset[PredictedBucket]
    actual: frozenset[ActualBucket]
    nudges: Mapping[str, float]
    rationale: str

    def matches(self, cell: CellStats) -> bool:
        return cell.predicted_bucket in self.predicted and cell.actual_bucket in self.actual


OVERESTIMATION_LOW_RISK = BiasPattern(
    name="overestimation_low_risk",
    predicted=frozenset({PredictedBucket.VERY_LOW_RISK, PredictedBucket.LOW_RISK}),
    actual=frozenset({ActualBucket.POOR_BEHAVIOR, ActualBucket.VERY_POOR_BEHAVIOR}),
    nudges={"compliance_linkage": 0.05, "engagement": -0.03, "completion": -0.02},
    rationale="Overestimation in low-risk segments. Increasing compliance weight.",
)

UNDERESTIMATION_HIGH_RISK = BiasPattern(
    name="underestimation_high_risk",
    predicted=frozenset({PredictedBucket.HIGH_RISK, PredictedBucket.MEDIUM_RISK}),
    actual=frozenset({ActualBucket.GOOD_BEHAVIOR, ActualBucket.VERY_GOOD_BEHAVIOR}),
    nudges={"compliance_linkage": -0.03, "feedback_quality": 0.02, "engagement": 0.01},
    rationale="Underestimation in high-risk segments. Decreasing compliance weight.",
)

# Applied in this order by the weight corrector
BIAS_PATTERNS: tuple[BiasPattern, ...] = (
    OVERESTIMATION_LOW_RISK,
    UNDERESTIMATION_HIGH_RISK,
)


@dataclass(frozen=True)
class BiasSignal:
    """Outcome of one pattern over a run."""
    pattern: BiasPattern
    weighted_count: int
    ratio: float
    significant: bool


@dataclass(frozen=True)
class BiasReport:
    """All pattern signals for a run, in BIAS_PATTERNS order."""
    total_weight: int
    signals: tuple[BiasSignal, ...] = field(default_factory=tuple)

    def signal(self, name: str) -> BiasSignal:
        for s in self.signals:
            if s.pattern.name == name:
                return s
        raise KeyError(name)

    @property
    def overestimation_ratio(self) -> float:
        return self.signal(OVERESTIMATION_LOW_RISK.name).ratio

    @property
    def underestimation_ratio(self) -> float:
        return self.signal(UNDERESTIMATION_HIGH_RISK.name).ratio

    @property
    def overestimation_significant(self) -> bool:
        return self.signal(OVERESTIMATION_LOW_RISK.name).significant

    @property
    def underestimation_significant(self) -> bool:
        return self.signal(UNDERESTIMATION_HIGH_RISK.name).significant

    @property
    def any_significant(self) -> bool:
        return any(s.significant for s in self.signals)


def is_significant(ratio: float) -> bool:
    return ratio > SIGNIFICANCE_THRESHOLD


def analyze_bias(
    cells: Iterable[CellStats],
    patterns: tuple[BiasPattern, ...] = BIAS_PATTERNS,
) -> BiasReport:
    """
    Compute the sample-weighted ratio of each bias pattern.

    Args:
        cells: All cells of a run; outliers are skipped here
        patterns: Bias rules to evaluate

    Returns:
        BiasReport. With no trustworthy cells every ratio is 0.
    """
    trusted = [c for c in cells if not c.is_outlier]
    total_weight = sum(c.count for c in trusted)

    signals = []
    for pattern in patterns:
        weighted = sum(c.count for c in trusted if pattern.matches(c))
        ratio = weighted / total_weight if total_weight > 0 else 0.0
        signals.append(BiasSignal(
            pattern=pattern,
            weighted_count=weighted,
            ratio=ratio,
            significant=is_significant(ratio),
        ))

    report = BiasReport(total_weight=total_weight, signals=tuple(signals))
    logger.info(
        "bias_analyzed",
        total_weight=total_weight,
        ratios={s.pattern.name: round(s.ratio, 4) for s in signals},
        significant=[s.pattern.name for s in signals if s.significant],
    )
    return report
