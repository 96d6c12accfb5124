"""Tests for category scoring — band matching and linear normalisation."""

import pytest

from scoreforge.schemas import CategoryConfig, VariableBand, VariableConfig
from scoreforge.services.decision_engine.resolver import NOT_FOUND
from scoreforge.services.decision_engine.scoring import (
    linear_points,
    match_band,
    score_category,
    score_variable,
)


def _make_credit_variable() -> VariableConfig:
    return VariableConfig(
        name="credit_score",
        weight=60,
        bands=[
            {"range": "<550", "score": 0},
            {"range": "550-649", "score": 20},
            {"range": "650-749", "score": 40},
            {"range": "750+", "score": 60},
        ],
    )


def _make_employment_variable() -> VariableConfig:
    return VariableConfig(
        name="employment_type",
        type="categorical",
        weight=20,
        bands=[
            {"values": ["Government", "Salaried"], "score": 20},
            {"range": "Self-Employed", "score": 12},
            {"range": "*", "score": 5},
        ],
    )


class TestBandMatching:

    @pytest.mark.parametrize("value, score", [
        (300, 0), (549.99, 0), (550, 20), (649, 20), (649.5, 20), (650, 40), (750, 60), (900, 60),
    ])
    def test_numeric_bands(self, value, score):
        band = match_band(_make_credit_variable().bands, value)
        assert band.score == score

    def test_categorical_case_insensitive(self):
        bands = _make_employment_variable().bands
        assert match_band(bands, "salaried").score == 20
        assert match_band(bands, " self-employed ").score == 12

    def test_catch_all_is_fallback_regardless_of_position(self):
        bands = [VariableBand(score=1), VariableBand(values=["x"], score=9)]
        assert match_band(bands, "x").score == 9
        assert match_band(bands, "y").score == 1

    def test_first_specific_match_wins(self):
        bands = [VariableBand(min=0, max=10, score=1), VariableBand(min=5, max=20, score=2)]
        assert match_band(bands, 7).score == 1

    def test_no_match(self):
        bands = [VariableBand(min=0, max=10, score=1)]
        assert match_band(bands, 50) is None


class TestLinearPoints:

    def test_scales_into_weight(self):
        var = VariableConfig(name="years_employed", weight=10, min_value=0, max_value=20)
        assert linear_points(var, 10) == 5
        assert linear_points(var, 40) == 10
        assert linear_points(var, -3) == 0

    def test_lower_is_better(self):
        var = VariableConfig(name="debt_to_income", weight=20, min_value=0, max_value=1, higher_is_better=False)
        assert linear_points(var, 0.25) == pytest.approx(15)
        assert linear_points(var, 1.5) == 0


class TestScoreVariable:

    def test_scored(self):
        contributor, issue = score_variable("Credit", _make_credit_variable(), {"creditScore": "700"})
        assert issue is None
        assert contributor.points == 40
        assert contributor.status == "scored"
        assert contributor.band_label == "650-749"
        assert contributor.source_field == "creditScore"

    def test_missing(self):
        contributor, issue = score_variable("Credit", _make_credit_variable(), {})
        assert contributor.points == 0
        assert contributor.value is NOT_FOUND
        assert contributor.status == "missing"
        assert issue.kind == "missing"
        assert issue.message == "missing credit_score"

    def test_invalid(self):
        contributor, issue = score_variable("Credit", _make_credit_variable(), {"credit_score": "n/a"})
        assert contributor.points == 0
        assert contributor.status == "invalid"
        assert issue.kind == "invalid"
        assert issue.raw_value == "n/a"

    def test_missing_never_uses_catch_all(self):
        contributor, issue = score_variable("Employment", _make_employment_variable(), {})
        assert contributor.points == 0
        assert issue.kind == "missing"

    def test_unmatched(self):
        var = VariableConfig(name="age", weight=10, bands=[{"min": 18, "max": 65, "score": 10}])
        contributor, issue = score_variable("Profile", var, {"age": 70})
        assert contributor.points == 0
        assert contributor.status == "unmatched"
        assert issue.kind == "unmatched"

    def test_monotonic_bands(self):
        """Raising the value never lowers the points with increasing bands."""
        var = _make_credit_variable()
        points = [score_variable("Credit", var, {"credit_score": v})[0].points for v in range(300, 900, 7)]
        assert points == sorted(points)


class TestScoreCategory:

    def test_sub_score_sums_variables(self):
        category = CategoryConfig(weight=80, variables=[_make_credit_variable(), _make_employment_variable()])
        result = score_category("Profile", category, {"credit_score": 760, "employment_type": "Salaried"})
        assert result.sub_score == 80
        assert result.max_points == 80
        assert len(result.contributors) == 2
        assert result.issues == []

    def test_degraded_category(self):
        category = CategoryConfig(weight=80, variables=[_make_credit_variable(), _make_employment_variable()])
        result = score_category("Profile", category, {"employment_type": "Farmer"})
        assert result.sub_score == 5
        assert [i.variable for i in result.issues] == ["credit_score"]
