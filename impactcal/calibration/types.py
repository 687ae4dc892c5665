"""
Core value types shared by the calibration engine components.

All engine inputs and outputs are frozen dataclasses: the engine never
mutates what it was given and never mutates what it produced.
"""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional


class PredictedBucket(StrEnum):
    """Predicted risk level, ordered from most to least confident."""

    VERY_LOW_RISK = "very_low_risk"
    LOW_RISK = "low_risk"
    MEDIUM_RISK = "medium_risk"
    HIGH_RISK = "high_risk"


class ActualBucket(StrEnum):
    """Observed behavior level, ordered from best to worst."""

    VERY_GOOD_BEHAVIOR = "very_good_behavior"
    GOOD_BEHAVIOR = "good_behavior"
    AVERAGE_BEHAVIOR = "average_behavior"
    POOR_BEHAVIOR = "poor_behavior"
    VERY_POOR_BEHAVIOR = "very_poor_behavior"


class GapDirection(StrEnum):
    OVERESTIMATE = "overestimate"
    UNDERESTIMATE = "underestimate"
    BALANCED = "balanced"


class OverallStatus(StrEnum):
    GOOD = "good"
    NEEDS_TUNING = "needs_tuning"
    BAD = "bad"


class SuggestionStatus(StrEnum):
    DRAFT = "draft"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ValidationStatus(StrEnum):
    """Per-sample verdict of the validation evaluation step."""

    PENDING = "pending"
    VALIDATED = "validated"
    ANOMALY = "anomaly"
    CALIBRATED = "calibrated"


class RunStage(StrEnum):
    """Orchestrator stages, in execution order."""

    CREATED = "created"
    AGGREGATING = "aggregating"
    SUMMARIZED = "summarized"
    BIAS_ANALYZED = "bias_analyzed"
    SUGGESTION_DRAFTED = "suggestion_drafted"
    PERSISTED = "persisted"
    FAILED = "failed"


# Enum definition order doubles as the display/sort order of buckets
PREDICTED_ORDER: dict[PredictedBucket, int] = {b: i for i, b in enumerate(PredictedBucket)}
ACTUAL_ORDER: dict[ActualBucket, int] = {b: i for i, b in enumerate(ActualBucket)}


@dataclass(frozen=True)
class ValidationSample:
    """One (predicted, actual) pair handed to the engine by the sample store."""

    predicted_score: float
    actual_score: float

    @property
    def gap(self) -> float:
        return abs(self.predicted_score - self.actual_score)


WEIGHT_COMPONENTS: tuple[str, ...] = (
    "engagement",
    "completion",
    "feedback_quality",
    "compliance_linkage",
)


@dataclass(frozen=True)
class WeightVector:
    """
    Four-component mixture used by the impact scoring model.

    ``version`` is the governance version of a stored vector; vectors the
    engine derives itself carry no version until they are activated.
    """

    engagement: float
    completion: float
    feedback_quality: float
    compliance_linkage: float
    version: Optional[int] = None

    @property
    def total(self) -> float:
        return self.engagement + self.completion + self.feedback_quality + self.compliance_linkage

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in WEIGHT_COMPONENTS}

    def is_normalized(self, tolerance: float = 1e-9) -> bool:
        """True when every weight is non-negative and the weights sum to 1."""
        values = self.as_dict().values()
        return all(v >= 0 for v in values) and math.isclose(
            self.total, 1.0, abs_tol=tolerance
        )
