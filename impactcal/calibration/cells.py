"""
Cell Aggregator — group samples into a sparse (predicted, actual) bucket grid.

For each observed bucket pair:
- avg_predicted / avg_actual: mean of each score list
- avg_gap: mean of per-sample |predicted - actual|
  (NOT |avg_predicted - avg_actual|; the two differ whenever gaps cancel)
- gap_direction: sign of avg_predicted - avg_actual beyond a ±5 dead band
- is_outlier: too few samples, or a gap too wide to trust for bias weighting

Pairs with no samples produce no cell.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

import structlog

from impactcal.calibration.buckets import classify_actual, classify_predicted
from impactcal.calibration.types import (
    ACTUAL_ORDER,
    PREDICTED_ORDER,
    ActualBucket,
    GapDirection,
    PredictedBucket,
    ValidationSample,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

GAP_DIRECTION_TOLERANCE: float = 5.0   # |avg_predicted - avg_actual| within this is balanced
MIN_CELL_SAMPLES: int = 3              # Fewer samples than this → outlier
OUTLIER_GAP_THRESHOLD: float = 25.0    # avg_gap above this → outlier


@dataclass(frozen=True)
class CellStats:
    """Aggregate statistics for one bucket pair within a run."""
    predicted_bucket: PredictedBucket
    actual_bucket: ActualBucket
    count: int
    avg_predicted: float
    avg_actual: float
    avg_gap: float
    gap_direction: GapDirection
    is_outlier: bool
    predicted_min: float
    predicted_max: float
    actual_min: float
    actual_max: float

    @property
    def key(self) -> tuple[PredictedBucket, ActualBucket]:
        return (self.predicted_bucket, self.actual_bucket)


def gap_direction(avg_predicted: float, avg_actual: float) -> GapDirection:
    """Direction of the difference of cell averages."""
    diff = avg_predicted - avg_actual
    if diff > GAP_DIRECTION_TOLERANCE:
        return GapDirection.OVERESTIMATE
    if diff < -GAP_DIRECTION_TOLERANCE:
        return GapDirection.UNDERESTIMATE
    return GapDirection.BALANCED


def is_outlier_cell(count: int, avg_gap: float) -> bool:
    return count < MIN_CELL_SAMPLES or avg_gap > OUTLIER_GAP_THRESHOLD


def _mean(values: list[float]) -> float:
    # fsum is exactly rounded, so the result does not depend on input order
    return math.fsum(values) / len(values)


def build_cell(
    predicted_bucket: PredictedBucket,
    actual_bucket: ActualBucket,
    pairs: list[tuple[float, float]],
) -> CellStats:
    """Compute one cell from its (predicted, actual) score pairs."""
    pairs = sorted(pairs)
    predicted = [p for p, _ in pairs]
    actual = [a for _, a in pairs]

    avg_predicted = _mean(predicted)
    avg_actual = _mean(actual)
    avg_gap = _mean([abs(p - a) for p, a in pairs])

    return CellStats(
        predicted_bucket=predicted_bucket,
        actual_bucket=actual_bucket,
        count=len(pairs),
        avg_predicted=avg_predicted,
        avg_actual=avg_actual,
        avg_gap=avg_gap,
        gap_direction=gap_direction(avg_predicted, avg_actual),
        is_outlier=is_outlier_cell(len(pairs), avg_gap),
        predicted_min=min(predicted),
        predicted_max=max(predicted),
        actual_min=min(actual),
        actual_max=max(actual),
    )


def aggregate_cells(samples: Iterable[ValidationSample]) -> list[CellStats]:
    """
    Bucket every sample and aggregate per observed bucket pair.

    Args:
        samples: Validation samples for one run (scores already in [0, 100])

    Returns:
        One CellStats per observed pair, ordered by (predicted, actual) bucket
        order. Identical input in any order yields identical output.
    """
    grouped: dict[tuple[PredictedBucket, ActualBucket], list[tuple[float, float]]] = defaultdict(list)

    for sample in samples:
        key = (
            classify_predicted(sample.predicted_score),
            classify_actual(sample.actual_score),
        )
        grouped[key].append((float(sample.predicted_score), float(sample.actual_score)))

    ordered_keys = sorted(
        grouped,
        key=lambda k: (PREDICTED_ORDER[k[0]], ACTUAL_ORDER[k[1]]),
    )
    cells = [build_cell(pb, ab, grouped[(pb, ab)]) for pb, ab in ordered_keys]

    logger.debug(
        "cells_aggregated",
        n_cells=len(cells),
        n_outliers=sum(1 for c in cells if c.is_outlier),
    )
    return cells
