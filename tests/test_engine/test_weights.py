"""
Weight Corrector Tests.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from impactcal.calibration.bias import BiasReport, BiasSignal, OVERESTIMATION_LOW_RISK, UNDERESTIMATION_HIGH_RISK
from impactcal.calibration.errors import InvalidWeightsError
from impactcal.calibration.types import WeightVector
from impactcal.calibration.weights import (
    MAX_WEIGHT,
    MIN_WEIGHT,
    NO_BIAS_RATIONALE,
    clamp,
    normalize,
    suggest_weights,
)

EQUAL = WeightVector(0.25, 0.25, 0.25, 0.25, version=1)


def _report(over: float = 0.0, under: float = 0.0) -> BiasReport:
    return BiasReport(
        total_weight=100,
        signals=(
            BiasSignal(OVERESTIMATION_LOW_RISK, int(over * 100), over, over > 0.2),
            BiasSignal(UNDERESTIMATION_HIGH_RISK, int(under * 100), under, under > 0.2),
        ),
    )


class TestSuggestWeights:
    def test_no_bias_keeps_weights(self):
        correction = suggest_weights(EQUAL, _report())
        assert correction.weights.as_dict() == pytest.approx(EQUAL.as_dict())
        assert correction.rationale == NO_BIAS_RATIONALE
        assert correction.applied_patterns == ()
        assert correction.weights.version is None

    def test_overestimation_raises_compliance(self):
        correction = suggest_weights(EQUAL, _report(over=0.5))
        w = correction.weights
        assert w.compliance_linkage == pytest.approx(0.30)
        assert w.engagement == pytest.approx(0.22)
        assert w.completion == pytest.approx(0.23)
        assert w.feedback_quality == pytest.approx(0.25)
        assert correction.rationale == OVERESTIMATION_LOW_RISK.rationale

    def test_underestimation_lowers_compliance(self):
        w = suggest_weights(EQUAL, _report(under=0.5)).weights
        assert w.compliance_linkage == pytest.approx(0.22)
        assert w.feedback_quality == pytest.approx(0.27)
        assert w.engagement == pytest.approx(0.26)

    def test_both_patterns_join_rationale(self):
        correction = suggest_weights(EQUAL, _report(over=0.4, under=0.4))
        assert correction.rationale == (
            f"{OVERESTIMATION_LOW_RISK.rationale} {UNDERESTIMATION_HIGH_RISK.rationale}"
        )
        assert correction.applied_patterns == (
            OVERESTIMATION_LOW_RISK.name,
            UNDERESTIMATION_HIGH_RISK.name,
        )

    def test_normalize_clamp_normalize_order(self):
        """A dominant weight is clamped, then the vector renormalized."""
        skewed = WeightVector(0.05, 0.05, 0.10, 0.80, version=3)
        w = suggest_weights(skewed, _report(over=0.9)).weights
        # after nudge + first normalize: 0.02, 0.03, 0.10, 0.85
        # clamp: 0.10, 0.10, 0.10, 0.50 → sum 0.8
        assert w.engagement == pytest.approx(0.125)
        assert w.completion == pytest.approx(0.125)
        assert w.feedback_quality == pytest.approx(0.125)
        assert w.compliance_linkage == pytest.approx(0.625)
        assert w.is_normalized()

    def test_source_not_mutated(self):
        before = EQUAL.as_dict()
        suggest_weights(EQUAL, _report(over=0.9, under=0.9))
        assert EQUAL.as_dict() == before


class TestHelpers:
    def test_normalize_rejects_zero_sum(self):
        with pytest.raises(InvalidWeightsError):
            normalize({"a": 0.0, "b": 0.0})

    def test_clamp_bounds(self):
        assert clamp({"a": 0.0, "b": 0.9, "c": 0.3}) == {"a": MIN_WEIGHT, "b": MAX_WEIGHT, "c": 0.3}


weight = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)


class TestWeightInvariant:
    @given(
        e=weight, c=weight, f=weight, k=weight,
        over=st.floats(min_value=0.0, max_value=1.0),
        under=st.floats(min_value=0.0, max_value=1.0),
    )
    @settings(max_examples=200)
    def test_suggestion_is_normalized(self, e, c, f, k, over, under):
        """Whatever the input vector and bias, the suggestion sums to 1 and is non-negative."""
        total = e + c + f + k
        if total <= 0:
            return
        current = WeightVector(e / total, c / total, f / total, k / total, version=1)
        w = suggest_weights(current, _report(over, under)).weights
        assert all(v >= 0 for v in w.as_dict().values())
        assert w.total == pytest.approx(1.0, abs=1e-9)
