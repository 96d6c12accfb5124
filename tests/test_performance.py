"""Tests for score distribution statistics."""

import pytest

from scoreforge.services.scorecard_performance import (
    build_score_distribution_pcts,
    build_score_histogram,
    calculate_psi,
    describe_scores,
    psi_status,
)


class TestPSI:

    def test_identical_distributions(self):
        pcts = [0.1, 0.2, 0.3, 0.4]
        assert calculate_psi(pcts, pcts) == 0.0

    def test_shifted_distribution(self):
        psi = calculate_psi([0.25, 0.25, 0.25, 0.25], [0.1, 0.2, 0.3, 0.4])
        assert psi > 0
        assert psi_status(psi) in ("stable", "drift", "shift")

    def test_empty_bands_do_not_blow_up(self):
        assert calculate_psi([0.5, 0.5, 0.0], [0.0, 0.5, 0.5]) > 0.25

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            calculate_psi([0.5, 0.5], [1.0])

    @pytest.mark.parametrize("psi, status", [(0.05, "stable"), (0.1, "stable"), (0.2, "drift"), (0.3, "shift")])
    def test_status(self, psi, status):
        assert psi_status(psi) == status


class TestDistribution:

    def test_histogram_bands(self):
        hist = build_score_histogram([0, 5, 50, 99.9, 100], 0, 100, 10)
        assert len(hist) == 10
        assert hist[0] == {"band": 0, "min": 0, "max": 10, "count": 2}
        assert hist[5]["count"] == 1
        # max_score lands in the top band
        assert hist[9]["count"] == 2

    def test_out_of_range_scores_clamped(self):
        hist = build_score_histogram([-5, 150], 0, 100, 4)
        assert hist[0]["count"] == 1
        assert hist[3]["count"] == 1

    def test_pcts(self):
        pcts = build_score_distribution_pcts([10, 10, 90, 90], 0, 100, 2)
        assert pcts == [0.5, 0.5]

    def test_pcts_empty(self):
        assert build_score_distribution_pcts([], 0, 100, 5) == [0.0] * 5


class TestDescribe:

    def test_stats(self):
        stats = describe_scores([10, 20, 30, 100])
        assert stats == {"count": 4, "mean": 40, "min": 10, "max": 100, "median": 25}

    def test_empty(self):
        assert describe_scores([])["mean"] is None
