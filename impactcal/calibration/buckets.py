"""
Bucket Classifier — map a 0-100 score to a discrete risk/behavior bucket.

Boundaries are closed-above: thresholds are checked from the most favorable
bucket downward and the first ``score >= threshold`` wins.
"""

import math
from numbers import Real

from impactcal.calibration.errors import InvalidScoreError
from impactcal.calibration.types import ActualBucket, PredictedBucket

SCORE_MIN: float = 0.0
SCORE_MAX: float = 100.0

# (threshold, bucket), most favorable first; the final bucket catches the rest
PREDICTED_THRESHOLDS: tuple[tuple[float, PredictedBucket], ...] = (
    (85.0, PredictedBucket.VERY_LOW_RISK),
    (70.0, PredictedBucket.LOW_RISK),
    (40.0, PredictedBucket.MEDIUM_RISK),
)
PREDICTED_FLOOR: PredictedBucket = PredictedBucket.HIGH_RISK

ACTUAL_THRESHOLDS: tuple[tuple[float, ActualBucket], ...] = (
    (85.0, ActualBucket.VERY_GOOD_BEHAVIOR),
    (70.0, ActualBucket.GOOD_BEHAVIOR),
    (50.0, ActualBucket.AVERAGE_BEHAVIOR),
    (30.0, ActualBucket.POOR_BEHAVIOR),
)
ACTUAL_FLOOR: ActualBucket = ActualBucket.VERY_POOR_BEHAVIOR


def validate_score(score: object, kind: str = "score") -> float:
    """Return ``score`` as a float, or raise InvalidScoreError. Never clamps."""
    if isinstance(score, bool) or not isinstance(score, Real):
        raise InvalidScoreError(score, kind)
    value = float(score)
    if math.isnan(value) or not SCORE_MIN <= value <= SCORE_MAX:
        raise InvalidScoreError(score, kind)
    return value


def classify_predicted(score: float) -> PredictedBucket:
    """Classify a model-predicted impact score into a risk bucket."""
    value = validate_score(score, "predicted_score")
    for threshold, bucket in PREDICTED_THRESHOLDS:
        if value >= threshold:
            return bucket
    return PREDICTED_FLOOR


def classify_actual(score: float) -> ActualBucket:
    """Classify an observed behavior score into a behavior bucket."""
    value = validate_score(score, "actual_score")
    for threshold, bucket in ACTUAL_THRESHOLDS:
        if value >= threshold:
            return bucket
    return ACTUAL_FLOOR
