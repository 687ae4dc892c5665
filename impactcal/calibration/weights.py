"""
Weight Corrector — turn detected bias into a suggested weight vector.

Pipeline:
1. Start from the active vector
2. Add the nudges of every significant bias pattern, in pattern order
3. Normalize to sum 1
4. Clamp each weight to [MIN_WEIGHT, MAX_WEIGHT]
5. Normalize again

Steps 3-5 always run, in exactly this order: the two-pass result is what
previously issued suggestions were computed with, and a single clamped
normalization gives different numbers. The final pass can push a weight
slightly outside the clamp range; the sum-to-1 invariant takes precedence.
"""

import math
from dataclasses import dataclass

import structlog

from impactcal.calibration.bias import BiasReport
from impactcal.calibration.errors import InvalidWeightsError
from impactcal.calibration.types import WEIGHT_COMPONENTS, WeightVector

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

MIN_WEIGHT: float = 0.10
MAX_WEIGHT: float = 0.50
NO_BIAS_RATIONALE: str = "No significant bias detected. Weights are well-calibrated."


@dataclass(frozen=True)
class WeightCorrection:
    """Suggested vector plus the explanation for it."""
    weights: WeightVector
    rationale: str
    applied_patterns: tuple[str, ...]


def normalize(weights: dict[str, float]) -> dict[str, float]:
    total = math.fsum(weights.values())
    if total <= 0:
        raise InvalidWeightsError(f"weights sum to {total}, cannot normalize")
    return {name: value / total for name, value in weights.items()}


def clamp(weights: dict[str, float], low: float = MIN_WEIGHT, high: float = MAX_WEIGHT) -> dict[str, float]:
    return {name: max(low, min(high, value)) for name, value in weights.items()}


def suggest_weights(current: WeightVector, bias: BiasReport) -> WeightCorrection:
    """
    Derive a corrected weight vector from the current one.

    Args:
        current: Active weight vector of the tenant
        bias: Bias signals of the run

    Returns:
        WeightCorrection whose weights are non-negative and sum to 1.
        The returned vector carries no version; the caller assigns one.
    """
    working = current.as_dict()
    fragments: list[str] = []
    applied: list[str] = []

    for signal in bias.signals:
        if not signal.significant:
            continue
        for name, delta in signal.pattern.nudges.items():
            working[name] += delta
        fragments.append(signal.pattern.rationale)
        applied.append(signal.pattern.name)

    rationale = " ".join(fragments) if fragments else NO_BIAS_RATIONALE

    final = normalize(clamp(normalize(working)))
    suggested = WeightVector(**{name: final[name] for name in WEIGHT_COMPONENTS})

    logger.info(
        "weights_suggested",
        source_version=current.version,
        applied_patterns=applied,
        suggested={k: round(v, 4) for k, v in suggested.as_dict().items()},
    )
    return WeightCorrection(
        weights=suggested,
        rationale=rationale,
        applied_patterns=tuple(applied),
    )
