"""Tests for the Scorecard Scoring Engine — evaluation, reason codes, rules,
hard decisions, and what-if analysis."""

import copy

import pytest

from scoreforge.config import settings
from scoreforge.exceptions import ConfigurationError
from scoreforge.schemas import load_configuration
from scoreforge.services.scorecard_engine import evaluate, what_if_analysis


# ────────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────────

_TWO_CATEGORY = {
    "name": "Two Category",
    "categories": {
        "Credit": {
            "weight": 60,
            "variables": [{
                "name": "credit_score", "weight": 60,
                "bands": [
                    {"range": "<550", "score": 0},
                    {"range": "550–649", "score": 20},
                    {"range": "650–749", "score": 40},
                    {"range": "750+", "score": 60},
                ],
            }],
        },
        "Income": {
            "weight": 40,
            "variables": [{
                "name": "monthly_income", "weight": 40,
                "bands": [
                    {"range": "<25000", "score": 0},
                    {"range": "25000–49999", "score": 15},
                    {"range": "50000–99999", "score": 30},
                    {"range": "100000+", "score": 40},
                ],
            }],
        },
    },
    "bucketMapping": {
        "A": {"min": 85, "max": 100, "description": "Excellent"},
        "B": {"min": 70, "max": 84, "description": "Good"},
        "C": {"min": 55, "max": 69, "description": "Fair"},
        "D": {"min": 0, "max": 54, "description": "Poor"},
    },
}


def _make_config(**overrides):
    data = copy.deepcopy(_TWO_CATEGORY)
    data.update(overrides)
    return load_configuration(data)


class TestEvaluate:
    """Core evaluate function."""

    def test_full_record(self):
        """Credit contributes 60, Income 30."""
        result = evaluate(_make_config(), {"credit_score": 760, "monthly_income": 60000})
        assert result.category_breakdown == {"Credit": 60, "Income": 30}
        assert result.final_score == 90
        assert result.bucket == "A"
        assert result.bucket_description == "Excellent"
        assert result.decision == "approve"

    def test_missing_income_degrades(self):
        result = evaluate(_make_config(), {"credit_score": 600})
        assert result.category_breakdown == {"Credit": 20, "Income": 0}
        assert result.final_score == 20
        assert result.bucket == "D"
        assert result.decision == "decline"
        assert "missing monthly_income" in result.reason_codes
        assert [i.variable for i in result.data_quality] == ["monthly_income"]

    def test_reason_codes_order(self):
        result = evaluate(_make_config(), {"credit_score": 600, "monthly_income": "lots"})
        assert result.reason_codes == ["credit_score 600 scored 20/60", "invalid monthly_income"]

    def test_reason_codes_sorted_by_points(self):
        result = evaluate(_make_config(), {"credit_score": 560, "monthly_income": 120000})
        assert result.reason_codes[0] == "monthly_income 120000 scored 40/40"
        assert result.reason_codes[1] == "credit_score 560 scored 20/60"

    def test_zero_point_contributors_not_listed(self):
        result = evaluate(_make_config(), {"credit_score": 500, "monthly_income": 60000})
        assert result.reason_codes == ["monthly_income 60000 scored 30/40"]

    def test_limit_caps_contributors_only(self, monkeypatch):
        monkeypatch.setattr(settings, "reason_code_limit", 1)
        config = _make_config(rules=[
            {"condition": "years_employed >= 5", "points": 5, "description": "Stable employment"},
        ])
        result = evaluate(config, {"credit_score": 760, "salary": 60000, "years_employed": 6})
        assert result.reason_codes == ["credit_score 760 scored 60/60", "Stable employment"]

    def test_value_too_large_for_float_is_invalid(self):
        result = evaluate(_make_config(), {"credit_score": 10**400, "monthly_income": 60000})
        assert result.final_score == 30
        assert result.reason_codes == ["monthly_income 60000 scored 30/40", "invalid credit_score"]
        assert [i.kind for i in result.data_quality] == ["invalid"]

    def test_empty_record_never_raises(self):
        result = evaluate(_make_config(), {})
        assert result.final_score == 0
        assert result.bucket == "D"
        assert result.reason_codes == ["missing credit_score", "missing monthly_income"]

    def test_removing_a_field_never_raises_or_raises_score(self):
        config = _make_config()
        full = {"credit_score": 700, "monthly_income": 40000}
        base = evaluate(config, full).final_score
        for field in full:
            partial = {k: v for k, v in full.items() if k != field}
            assert evaluate(config, partial).final_score <= base

    def test_deterministic(self):
        config = _make_config()
        record = {"credit_score": 700, "monthly_income": 40000, "id": "app-1"}
        assert evaluate(config, record) == evaluate(config, record)
        assert evaluate(config, record).to_dict() == evaluate(config, record).to_dict()

    def test_record_id(self):
        config = _make_config()
        assert evaluate(config, {"application_id": 42}).record_id == "42"
        assert evaluate(config, {"id": "x"}, record_id="override").record_id == "override"
        assert evaluate(config, {}).record_id is None

    def test_field_name_variants(self):
        result = evaluate(_make_config(), {"creditScore": "760", "salary": "60,000"})
        assert result.final_score == 90

    def test_accepts_raw_dict(self):
        result = evaluate(copy.deepcopy(_TWO_CATEGORY), {"credit_score": 760, "monthly_income": 60000})
        assert result.bucket == "A"

    def test_inactive_category_ignored(self):
        data = copy.deepcopy(_TWO_CATEGORY)
        data["categories"]["Legacy"] = {
            "weight": 50, "isActive": False,
            "variables": [{"name": "age", "weight": 50, "bands": [{"range": "*", "score": 50}]}],
        }
        result = evaluate(load_configuration(data), {"credit_score": 760, "monthly_income": 60000})
        assert "Legacy" not in result.category_breakdown
        assert result.final_score == 90

    def test_max_score_rescales(self):
        config = _make_config(max_score=1000, bucketMapping={
            "A": {"min": 850, "max": 1000},
            "B": {"min": 0, "max": 849},
        })
        result = evaluate(config, {"credit_score": 760, "monthly_income": 60000})
        assert result.weighted_score == 900
        assert result.final_score == 900
        assert result.bucket == "A"

    def test_to_dict_replaces_sentinel(self):
        data = evaluate(_make_config(), {"credit_score": 600}).to_dict()
        income = next(c for c in data["contributors"] if c["variable"] == "monthly_income")
        assert income["value"] is None
        assert income["status"] == "missing"

    def test_non_mapping_record(self):
        with pytest.raises(TypeError):
            evaluate(_make_config(), ["credit_score", 700])


class TestConfigurationErrors:

    def test_invalid_config_refused(self):
        data = copy.deepcopy(_TWO_CATEGORY)
        data["categories"]["Income"]["weight"] = 30
        with pytest.raises(ConfigurationError):
            evaluate(load_configuration(data), {"credit_score": 760})

    def test_gapped_bands_refused(self):
        data = copy.deepcopy(_TWO_CATEGORY)
        data["bucketMapping"]["B"]["max"] = 80
        with pytest.raises(ConfigurationError):
            evaluate(load_configuration(data), {"credit_score": 760})

    def test_config_warnings_surface(self):
        data = copy.deepcopy(_TWO_CATEGORY)
        data["rules"] = [{"condition": "credit_score <"}]
        result = evaluate(load_configuration(data), {"credit_score": 760})
        assert any("cannot be parsed" in w for w in result.config_warnings)
        assert result.rule_warnings[0].rule_id == "R01"


class TestRules:

    def test_points_adjustment(self):
        config = _make_config(rules=[
            {"condition": "years_employed >= 5", "points": 10, "description": "Stable employment"},
        ])
        result = evaluate(config, {"credit_score": 700, "monthly_income": 60000, "years_employed": 6})
        assert result.weighted_score == 70
        assert result.adjusted_score == 80
        assert result.final_score == 80
        assert result.bucket == "B"
        assert result.triggered_rules == ["R01"]
        assert "Stable employment" in result.reason_codes

    def test_score_clamped(self):
        config = _make_config(rules=[
            {"condition": "credit_score >= 750", "points": 50},
            {"condition": "credit_score < 550", "points": -50},
        ])
        high = evaluate(config, {"credit_score": 800, "monthly_income": 200000})
        low = evaluate(config, {"credit_score": 400})
        assert high.adjusted_score == 150
        assert high.final_score == 100
        assert low.final_score == 0

    def test_hard_decline_caps_score(self):
        config = _make_config(rules=[
            {"condition": "age < 18", "action": "decline"},
            {"condition": "credit_score >= 750", "points": 10, "priority": 200},
        ])
        result = evaluate(config, {"credit_score": 800, "monthly_income": 200000, "age": 17})
        assert result.decision == "decline"
        assert result.hard_decision == "decline"
        assert result.bucket == "D"
        assert result.final_score == 54

    def test_hard_approve_floors_score(self):
        config = _make_config(rules=[{"condition": "vip == true", "action": "approve"}])
        result = evaluate(config, {"credit_score": 400, "vip": True})
        assert result.decision == "approve"
        assert result.bucket == "A"
        assert result.final_score == 85

    def test_decline_beats_approve(self):
        config = _make_config(rules=[
            {"condition": "vip == true", "action": "approve"},
            {"condition": "age < 18", "action": "decline"},
        ])
        result = evaluate(config, {"credit_score": 800, "vip": True, "age": 16})
        assert result.decision == "decline"

    def test_manual_review(self):
        config = _make_config(rules=[{"condition": "monthly_income > 150000", "action": "manual_review"}])
        result = evaluate(config, {"credit_score": 800, "monthly_income": 200000})
        assert result.bucket == "A"
        assert result.decision == "review"
        assert result.manual_review


class TestWhatIfAnalysis:

    def test_what_if_basic(self):
        result = what_if_analysis(
            _make_config(),
            {"credit_score": 600, "monthly_income": 30000},
            {"credit_score": 700},
        )
        assert result["base_score"] == 35
        assert result["modified_score"] == 55
        assert result["score_change"] == 20
        assert result["modified_bucket"] == "C"
        assert len(result["changes"]) == 1
        change = result["changes"][0]
        assert change["variable"] == "credit_score"
        assert change["point_change"] == 20

    def test_what_if_decision_change(self):
        result = what_if_analysis(_make_config(), {"credit_score": 600}, {"monthly_income": 120000})
        assert result["base_decision"] == "decline"
        assert result["modified_decision"] == "approve"
        assert result["changes"][0]["original_value"] is None
