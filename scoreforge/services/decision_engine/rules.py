"""Business rules engine - ordered rule evaluation on top of the weighted score.

Rules are defined on the scorecard as ``{id, condition, points, priority,
action}`` and evaluated against the raw input record. A matching rule adds its
points (which may be negative) and may force a decision:

  - ``decline``: hard decline, cannot be overridden by any other rule
  - ``approve``: hard approve, unless some rule declines
  - ``review``:  flags the result for manual review
  - ``adjust``:  points only
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from scoreforge.exceptions import RuleEvaluationWarning
from scoreforge.schemas import Rule, RuleAction
from scoreforge.services.decision_engine.conditions import (
    ConditionEvaluationError,
    ConditionSyntaxError,
    compile_condition,
)
from scoreforge.services.decision_engine.resolver import field_value

logger = logging.getLogger(__name__)


@dataclass
class RuleOutcome:
    """Complete output from rules evaluation."""
    adjusted_score: float
    triggered_rules: list[Rule] = field(default_factory=list)
    hard_decision: Optional[str] = None  # "approve" | "decline"
    manual_review: bool = False
    warnings: list[RuleEvaluationWarning] = field(default_factory=list)

    @property
    def reasons(self) -> list[str]:
        return [rule.reason for rule in self.triggered_rules]


def _compile(rule: Rule) -> Any:
    try:
        return compile_condition(rule.condition)
    except ConditionSyntaxError as exc:
        return exc


def ordered_rules(
    rules: Sequence[Rule],
    compiled: Optional[Sequence[Any]] = None,
) -> list[tuple[Rule, Any]]:
    """Active rules paired with their parsed condition, lowest priority number first."""
    if compiled is None or len(compiled) != len(rules):
        compiled = [_compile(rule) for rule in rules]
    paired = [(rule, cond) for rule, cond in zip(rules, compiled) if rule.is_active]
    # sorted() is stable, so definition order breaks priority ties
    return sorted(paired, key=lambda pair: pair[0].priority)


def apply_rules(
    rules: Sequence[Rule],
    record: Mapping[str, Any],
    running_score: float,
    compiled: Optional[Sequence[Any]] = None,
) -> RuleOutcome:
    """Evaluate all active rules against a record.

    ``compiled`` holds conditions parsed ahead of time (aligned with ``rules``);
    without it each condition is parsed here.
    """
    outcome = RuleOutcome(adjusted_score=running_score)

    def _lookup(name: str) -> Any:
        return field_value(record, name)

    for rule, condition in ordered_rules(rules, compiled):
        if isinstance(condition, ConditionSyntaxError):
            outcome.warnings.append(RuleEvaluationWarning(rule.id, rule.condition, str(condition)))
            logger.debug("Rule %s skipped, bad condition: %s", rule.id, condition)
            continue

        errors: list[ConditionEvaluationError] = []
        try:
            matched = condition.evaluate(_lookup, errors)
        except ConditionEvaluationError as exc:
            errors.append(exc)
            matched = False
        for exc in errors:
            outcome.warnings.append(RuleEvaluationWarning(rule.id, rule.condition, str(exc)))
            logger.debug("Rule %s could not be evaluated: %s", rule.id, exc)

        if not matched:
            continue

        outcome.triggered_rules.append(rule)
        outcome.adjusted_score += rule.points

        if rule.action == RuleAction.DECLINE:
            outcome.hard_decision = "decline"
        elif rule.action == RuleAction.APPROVE:
            if outcome.hard_decision != "decline":
                outcome.hard_decision = "approve"
        elif rule.action == RuleAction.REVIEW:
            outcome.manual_review = True

    return outcome
