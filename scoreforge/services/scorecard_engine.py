"""Scorecard Scoring Engine — score evaluation, reason codes, what-if analysis."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Optional

from scoreforge.config import settings
from scoreforge.exceptions import DataQualityIssue, RuleEvaluationWarning
from scoreforge.schemas import Decision, ScorecardConfiguration, load_configuration
from scoreforge.services.decision_engine.buckets import assign_grade, best_grade, classify, worst_grade
from scoreforge.services.decision_engine.resolver import NOT_FOUND
from scoreforge.services.decision_engine.rules import apply_rules
from scoreforge.services.decision_engine.scoring import Contributor, score_category
from scoreforge.services.decision_engine.validator import ensure_valid

logger = logging.getLogger(__name__)

_RECORD_ID_FIELDS = ("id", "application_id", "applicationId", "record_id", "recordId")


@dataclass
class ScoreResult:
    final_score: float
    bucket: str
    bucket_description: str
    decision: str  # approve | review | decline
    reason_codes: list[str] = field(default_factory=list)
    category_breakdown: dict[str, float] = field(default_factory=dict)
    record_id: Optional[str] = None
    weighted_score: float = 0.0   # sum of category points on the max_score scale
    adjusted_score: float = 0.0   # after rule points, before clamping
    contributors: list[Contributor] = field(default_factory=list)
    triggered_rules: list[str] = field(default_factory=list)
    hard_decision: Optional[str] = None
    manual_review: bool = False
    bucket_fallback: bool = False
    data_quality: list[DataQualityIssue] = field(default_factory=list)
    rule_warnings: list[RuleEvaluationWarning] = field(default_factory=list)
    config_warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for contributor in data["contributors"]:
            if contributor["value"] is NOT_FOUND:
                contributor["value"] = None
        return data


# ────────────────────────────────────────────────────────────────────
# 1. Evaluate a Record Against a Scorecard
# ────────────────────────────────────────────────────────────────────

def evaluate(
    config: ScorecardConfiguration | Mapping[str, Any],
    record: Mapping[str, Any],
    *,
    record_id: Optional[str] = None,
    validate: bool = True,
) -> ScoreResult:
    """Score one record. Pure function: no I/O, no clock, no randomness.

    Args:
        config: a loaded ScorecardConfiguration (raw dicts are loaded first)
        record: field name -> value; missing or unusable fields degrade to 0 points
        record_id: identifier for the result, defaults to the record's own id field
        validate: refuse configurations with hard validation errors

    Raises:
        ConfigurationError: the configuration is internally inconsistent
        TypeError: ``record`` is not a mapping
    """
    config = load_configuration(config)
    config_warnings: list[str] = []
    if validate:
        validation = ensure_valid(config)
        config_warnings = validation.warning_messages

    if not isinstance(record, Mapping):
        raise TypeError(f"record must be a mapping, got {type(record).__name__}")

    # Category scoring
    breakdown: dict[str, float] = {}
    contributors: list[Contributor] = []
    data_quality: list[DataQualityIssue] = []
    for name, category in config.active_categories:
        category_score = score_category(name, category, record)
        breakdown[name] = category_score.sub_score
        contributors.extend(category_score.contributors)
        data_quality.extend(category_score.issues)

    weighted = round(sum(breakdown.values()) * config.max_score / 100, 4)

    # Business rules
    outcome = apply_rules(config.rules, record, weighted, config.compiled_rules)
    adjusted = round(outcome.adjusted_score, 4)
    final = max(0.0, min(adjusted, config.max_score))

    # Bucket & decision
    mapping = config.bucket_mapping
    if outcome.hard_decision == Decision.DECLINE.value:
        grade = worst_grade(mapping)
        final = min(final, mapping[grade].max)
        assignment = assign_grade(grade, mapping)
        decision = Decision.DECLINE.value
    elif outcome.hard_decision == Decision.APPROVE.value:
        grade = best_grade(mapping)
        final = max(final, mapping[grade].min)
        assignment = assign_grade(grade, mapping)
        decision = Decision.APPROVE.value
    else:
        assignment = classify(final, mapping)
        decision = assignment.decision
        if outcome.manual_review and decision == Decision.APPROVE.value:
            decision = Decision.REVIEW.value

    if assignment.fallback:
        config_warnings = [
            *config_warnings,
            f"Score {final:g} is below every band; assigned lowest grade '{assignment.grade}'",
        ]

    return ScoreResult(
        final_score=round(final, 2),
        bucket=assignment.grade,
        bucket_description=assignment.description,
        decision=decision,
        reason_codes=_generate_reason_codes(contributors, outcome.reasons, data_quality),
        category_breakdown=breakdown,
        record_id=record_id if record_id is not None else record_identifier(record),
        weighted_score=weighted,
        adjusted_score=adjusted,
        contributors=contributors,
        triggered_rules=[rule.id for rule in outcome.triggered_rules],
        hard_decision=outcome.hard_decision,
        manual_review=outcome.manual_review,
        bucket_fallback=assignment.fallback,
        data_quality=data_quality,
        rule_warnings=outcome.warnings,
        config_warnings=config_warnings,
    )


def record_identifier(record: Mapping[str, Any]) -> Optional[str]:
    for key in _RECORD_ID_FIELDS:
        value = record.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _generate_reason_codes(
    contributors: list[Contributor],
    rule_reasons: list[str],
    data_quality: list[DataQualityIssue],
) -> list[str]:
    """Top contributors first, then triggered rules, then degraded variables."""
    scored = [c for c in contributors if c.status == "scored" and c.points > 0]
    # sorted() is stable, so ties keep category/variable order
    top = sorted(scored, key=lambda c: -c.points)[: settings.reason_code_limit]

    codes = [
        f"{c.variable} {_format_value(c.value)} scored {c.points:g}/{c.max_points:g}"
        for c in top
    ]
    codes.extend(rule_reasons)
    for issue in data_quality:
        if issue.kind in ("missing", "invalid"):
            codes.append(f"{issue.kind} {issue.variable}")
        else:
            codes.append(issue.message)
    return codes


# ────────────────────────────────────────────────────────────────────
# 2. What-If Analysis
# ────────────────────────────────────────────────────────────────────

def what_if_analysis(
    config: ScorecardConfiguration | Mapping[str, Any],
    base_record: Mapping[str, Any],
    modifications: Mapping[str, Any],
) -> dict[str, Any]:
    """Run what-if analysis: score with base data, then with modifications."""
    base_result = evaluate(config, base_record)

    modified_record = {**base_record, **modifications}
    modified_result = evaluate(config, modified_record)

    # Find changed variables
    changes = []
    for base_c, mod_c in zip(base_result.contributors, modified_result.contributors):
        if base_c.points != mod_c.points or base_c.status != mod_c.status:
            changes.append({
                "category": base_c.category,
                "variable": base_c.variable,
                "original_value": None if base_c.value is NOT_FOUND else base_c.value,
                "modified_value": None if mod_c.value is NOT_FOUND else mod_c.value,
                "original_points": base_c.points,
                "modified_points": mod_c.points,
                "point_change": round(mod_c.points - base_c.points, 4),
            })

    return {
        "base_score": base_result.final_score,
        "base_bucket": base_result.bucket,
        "base_decision": base_result.decision,
        "modified_score": modified_result.final_score,
        "modified_bucket": modified_result.bucket,
        "modified_decision": modified_result.decision,
        "score_change": round(modified_result.final_score - base_result.final_score, 2),
        "changes": changes,
    }
