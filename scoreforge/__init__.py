"""Scoreforge — scorecard scoring engine.

Host-facing API: load a configuration once, validate it, then evaluate
records one at a time or aggregate them in bulk.
"""

from scoreforge.exceptions import ConfigurationError
from scoreforge.schemas import ScorecardConfiguration, load_configuration
from scoreforge.services.decision_engine.simulation import (
    DistributionSummary,
    ScorecardComparison,
    aggregate,
    compare_scorecards,
)
from scoreforge.services.decision_engine.validator import (
    ValidationResult,
    normalize_category_weights,
    normalize_weights,
    validate_configuration,
)
from scoreforge.services.scorecard_engine import ScoreResult, evaluate, what_if_analysis

__all__ = [
    "ConfigurationError",
    "DistributionSummary",
    "ScoreResult",
    "ScorecardComparison",
    "ScorecardConfiguration",
    "ValidationResult",
    "aggregate",
    "compare_scorecards",
    "evaluate",
    "load_configuration",
    "normalize_category_weights",
    "normalize_weights",
    "validate_configuration",
    "what_if_analysis",
]
