"""Error taxonomy for scorecard evaluation.

Only configuration problems are raised. Record-level and rule-level problems
are returned as data on the result objects so a caller can always explain a
score, even a degraded one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ConfigurationError(ValueError):
    """The scorecard itself is internally inconsistent and cannot be scored."""

    def __init__(self, errors: list[Any], scorecard: str | None = None):
        self.errors = list(errors)
        self.scorecard = scorecard
        messages = [getattr(e, "message", str(e)) for e in self.errors]
        prefix = f"Scorecard '{scorecard}' is invalid" if scorecard else "Scorecard is invalid"
        super().__init__(f"{prefix}: " + "; ".join(messages) if messages else prefix)


@dataclass
class DataQualityIssue:
    """A record field that was missing or unusable for one variable."""
    category: str
    variable: str
    kind: str  # "missing" | "invalid" | "unmatched"
    message: str
    raw_value: Any = None


@dataclass
class RuleEvaluationWarning:
    """A rule whose condition could not be parsed or evaluated."""
    rule_id: str
    condition: str
    message: str


@dataclass
class BatchRecordError:
    """A record in a bulk batch that could not be evaluated at all."""
    index: int
    record_id: str | None
    error_type: str
    message: str
    details: dict = field(default_factory=dict)
