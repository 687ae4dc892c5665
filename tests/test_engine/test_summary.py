"""
Run Summarizer Tests.
"""

import pytest

from impactcal.calibration.summary import classify_status, correlation_score, summarize_run
from impactcal.calibration.types import OverallStatus, ValidationSample


def _samples(*pairs):
    return [ValidationSample(predicted_score=p, actual_score=a) for p, a in pairs]


class TestSummarizeRun:
    def test_empty_run(self):
        metrics = summarize_run([])
        assert metrics.is_empty
        assert metrics.avg_gap is None
        assert metrics.overall_status is None
        assert metrics.to_dict() == {"sample_size": 0}

    def test_three_sample_example(self):
        metrics = summarize_run(_samples((90, 15), (88, 20), (30, 90)))
        assert metrics.sample_size == 3
        assert metrics.avg_gap == pytest.approx(203 / 3)
        assert metrics.max_gap == 75
        assert metrics.min_gap == 60
        assert metrics.correlation_score == pytest.approx(100 - 203 / 3)
        assert metrics.overall_status == OverallStatus.BAD

    def test_gaps_from_samples_not_cells(self):
        """Run avg_gap averages every sample, so a big cell weighs more."""
        metrics = summarize_run(_samples((60, 50), (60, 50), (60, 50), (90, 10)))
        assert metrics.avg_gap == pytest.approx((10 + 10 + 10 + 80) / 4)

    def test_to_dict_keys(self):
        payload = summarize_run(_samples((60, 50))).to_dict()
        assert set(payload) == {
            "sample_size", "avg_gap", "max_gap", "min_gap", "correlation_score", "overall_status",
        }
        assert payload["overall_status"] == "good"


class TestStatusThresholds:
    @pytest.mark.parametrize(
        "avg_gap,expected",
        [
            (0.0, OverallStatus.GOOD),
            (10.0, OverallStatus.GOOD),
            (10.01, OverallStatus.NEEDS_TUNING),
            (20.0, OverallStatus.NEEDS_TUNING),
            (20.01, OverallStatus.BAD),
            (100.0, OverallStatus.BAD),
        ],
    )
    def test_thresholds(self, avg_gap, expected):
        assert classify_status(avg_gap, correlation_score(avg_gap)) == expected

    def test_good_requires_correlation(self):
        assert classify_status(5.0, 74.9) == OverallStatus.NEEDS_TUNING

    def test_correlation_floor(self):
        assert correlation_score(120.0) == 0.0
