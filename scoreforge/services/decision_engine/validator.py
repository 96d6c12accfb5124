"""Scorecard Validator — enforces internal consistency of a scorecard configuration.

Validates category weights, bucket band layout, variable scoring tables and
rule syntax. Returns structured errors for the configuration editor; never
raises. ``ensure_valid`` is the gate the evaluator uses before scoring.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping

from scoreforge.config import settings
from scoreforge.exceptions import ConfigurationError
from scoreforge.schemas import ScorecardConfiguration, VariableConfig, VariableType
from scoreforge.services.decision_engine.conditions import ConditionSyntaxError

logger = logging.getLogger(__name__)


@dataclass
class ValidationIssue:
    severity: str  # "error" | "warning"
    location: str | None
    code: str
    message: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    stats: dict = field(default_factory=dict)

    def add_error(self, location: str | None, code: str, message: str):
        self.errors.append(ValidationIssue("error", location, code, message))
        self.is_valid = False

    def add_warning(self, location: str | None, code: str, message: str):
        self.warnings.append(ValidationIssue("warning", location, code, message))

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]

    @property
    def warning_messages(self) -> list[str]:
        return [w.message for w in self.warnings]

    def codes(self) -> set[str]:
        return {i.code for i in self.errors + self.warnings}


def validate_configuration(
    config: ScorecardConfiguration,
    *,
    tolerance: float | None = None,
    strict_variable_weights: bool | None = None,
) -> ValidationResult:
    """Run all validation checks on a scorecard configuration."""
    tol = settings.weight_tolerance if tolerance is None else tolerance
    strict = settings.strict_variable_weights if strict_variable_weights is None else strict_variable_weights

    result = ValidationResult(is_valid=True)

    _validate_category_weights(config, tol, result)
    _validate_variables(config, tol, strict, result)
    _validate_buckets(config, result)
    _validate_rules(config, result)

    active = config.active_categories
    result.stats = {
        "categories": len(config.categories),
        "active_categories": len(active),
        "total_weight": round(sum(c.weight for _, c in active), 6),
        "variables": sum(len(c.variables) for _, c in active),
        "grades": len(config.bucket_mapping),
        "rules": len(config.rules),
        "active_rules": sum(1 for r in config.rules if r.is_active),
    }
    return result


def ensure_valid(config: ScorecardConfiguration) -> ValidationResult:
    """Validate once per configuration instance; raise if there are hard errors."""
    result = config._validation
    if result is None:
        result = validate_configuration(config)
        config._validation = result
        for warning in result.warnings:
            logger.info("Scorecard '%s' warning [%s]: %s", config.name, warning.code, warning.message)
        if not result.is_valid:
            logger.warning("Scorecard '%s' rejected: %s", config.name, "; ".join(result.error_messages))
    if not result.is_valid:
        raise ConfigurationError(result.errors, scorecard=config.name)
    return result


# ── Category weights ───────────────────────────────────────────────

def _validate_category_weights(config: ScorecardConfiguration, tol: float, result: ValidationResult):
    """Active category weights must sum to 100."""
    for name, category in config.categories.items():
        if category.weight < 0:
            result.add_error(name, "NEGATIVE_WEIGHT", f"Category '{name}' has negative weight {category.weight:g}")
        elif category.weight > 100:
            result.add_error(name, "WEIGHT_RANGE", f"Category '{name}' weight {category.weight:g} exceeds 100")

    active = config.active_categories
    if not active:
        result.add_error(None, "NO_ACTIVE_CATEGORIES", "Scorecard has no active categories")
        return

    total = sum(c.weight for _, c in active)
    delta = round(total - 100, 6)
    if abs(delta) > tol:
        result.add_error(
            None, "WEIGHT_SUM",
            f"Active category weights sum to {round(total, 6):g}, expected 100 (delta {delta:+g})",
        )


# ── Variables ──────────────────────────────────────────────────────

def _validate_variables(config: ScorecardConfiguration, tol: float, strict: bool, result: ValidationResult):
    seen: dict[str, str] = {}

    for cat_name, category in config.categories.items():
        if not category.is_active:
            continue
        if not category.variables:
            result.add_warning(
                cat_name, "EMPTY_CATEGORY",
                f"Category '{cat_name}' has weight {category.weight:g} but no variables; it will always score 0",
            )
            continue

        var_total = sum(v.weight for v in category.variables)
        if abs(var_total - category.weight) > tol:
            message = (
                f"Variable weights in '{cat_name}' sum to {round(var_total, 6):g} "
                f"but the category weight is {category.weight:g}"
            )
            if strict:
                result.add_error(cat_name, "VARIABLE_WEIGHT_SUM", message)
            else:
                result.add_warning(cat_name, "VARIABLE_WEIGHT_SUM", message)

        for variable in category.variables:
            location = f"{cat_name}.{variable.name}"
            key = re.sub(r"[^0-9a-z]", "", variable.name.lower())
            if key in seen:
                result.add_warning(
                    location, "DUPLICATE_VARIABLE",
                    f"Variable '{variable.name}' also appears in '{seen[key]}'",
                )
            else:
                seen[key] = cat_name
            _validate_variable(location, variable, tol, result)


def _validate_variable(location: str, variable: VariableConfig, tol: float, result: ValidationResult):
    if variable.weight < 0:
        result.add_error(location, "NEGATIVE_WEIGHT", f"Variable '{location}' has negative weight {variable.weight:g}")

    if not variable.uses_bands:
        if variable.type == VariableType.CATEGORICAL:
            result.add_error(
                location, "CATEGORICAL_WITHOUT_BANDS",
                f"Categorical variable '{location}' needs bands to be scored",
            )
        elif variable.max_value <= variable.min_value:
            result.add_error(
                location, "LINEAR_RANGE",
                f"Variable '{location}' has max_value {variable.max_value:g} <= min_value {variable.min_value:g}",
            )
        return

    for band in variable.bands:
        if band.min is not None and band.max is not None and band.min >= band.max:
            result.add_error(
                location, "VARIABLE_BAND_INVERTED",
                f"Band '{band.display_label}' of '{location}' has min {band.min:g} >= max {band.max:g}",
            )

    top_score = max(band.score for band in variable.bands)
    if top_score > variable.weight + tol:
        result.add_warning(
            location, "BAND_SCORE_EXCEEDS_WEIGHT",
            f"Variable '{location}' can award {top_score:g} points but its weight is {variable.weight:g}",
        )

    has_catch_all = any(b.is_catch_all for b in variable.bands)
    if not has_catch_all and not _numeric_bands_cover_all(variable):
        result.add_warning(
            location, "NO_CATCH_ALL_BAND",
            f"Variable '{location}' has no catch-all band; values matching no band score 0",
        )


def _numeric_bands_cover_all(variable: VariableConfig) -> bool:
    """True when numeric bands tile the whole number line without gaps."""
    numeric = [b for b in variable.bands if not b.is_categorical and not b.is_catch_all]
    if not numeric or len(numeric) != len(variable.bands):
        return False
    ordered = sorted(numeric, key=lambda b: b.min if b.min is not None else float("-inf"))
    if ordered[0].min is not None or ordered[-1].max is not None:
        return False
    for lower, upper in zip(ordered, ordered[1:]):
        if lower.max is None or upper.min is None or lower.max != upper.min:
            return False
    return True


# ── Buckets ────────────────────────────────────────────────────────

def _validate_buckets(config: ScorecardConfiguration, result: ValidationResult):
    """Bands must partition [0, max_score] in increment steps, without gaps or overlaps."""
    mapping = config.bucket_mapping
    if not mapping:
        result.add_error(None, "NO_BANDS", "Scorecard has no bucket bands")
        return

    for grade, band in mapping.items():
        if band.min > band.max:
            result.add_error(grade, "BAND_INVERTED", f"Band '{grade}' has min {band.min:g} > max {band.max:g}")

    increment = config.increment
    ordered = sorted(mapping.items(), key=lambda item: -item[1].min)
    for (high_grade, high), (low_grade, low) in zip(ordered, ordered[1:]):
        if low.max >= high.min:
            result.add_error(
                low_grade, "BAND_OVERLAP",
                f"Band '{low_grade}' ({low.min:g}-{low.max:g}) overlaps band "
                f"'{high_grade}' ({high.min:g}-{high.max:g})",
            )
        elif abs(low.max + increment - high.min) > 1e-9:
            result.add_error(
                low_grade, "BAND_GAP",
                f"Gap between band '{low_grade}' (max {low.max:g}) and band "
                f"'{high_grade}' (min {high.min:g}); expected {low.max + increment:g}",
            )

    lowest = ordered[-1][1]
    highest = ordered[0][1]
    if lowest.min > 0:
        result.add_error(
            ordered[-1][0], "BAND_COVERAGE",
            f"Lowest band '{ordered[-1][0]}' starts at {lowest.min:g}; scores below it have no grade",
        )
    if highest.max < config.max_score:
        result.add_error(
            ordered[0][0], "BAND_COVERAGE",
            f"Highest band '{ordered[0][0]}' ends at {highest.max:g} but scores reach {config.max_score:g}",
        )
    elif highest.max > config.max_score:
        result.add_warning(
            ordered[0][0], "BAND_SCALE",
            f"Highest band '{ordered[0][0]}' ends at {highest.max:g} but scores are capped at {config.max_score:g}",
        )


# ── Rules ──────────────────────────────────────────────────────────

def _validate_rules(config: ScorecardConfiguration, result: ValidationResult):
    seen: set[str] = set()
    for rule, condition in zip(config.rules, config.compiled_rules):
        if rule.id in seen:
            result.add_warning(rule.id, "DUPLICATE_RULE_ID", f"Rule id '{rule.id}' is used more than once")
        seen.add(rule.id)
        if isinstance(condition, ConditionSyntaxError):
            result.add_warning(
                rule.id, "RULE_SYNTAX",
                f"Rule '{rule.id}' condition '{rule.condition}' cannot be parsed ({condition}); it will never match",
            )


# ── Weight normalisation ───────────────────────────────────────────

def normalize_weights(
    weights: Mapping[str, float],
    total: float = 100,
    precision: int = 0,
) -> dict[str, float]:
    """Rescale weights proportionally so they sum to ``total``.

    Each share is rounded to ``precision`` decimals and the rounding remainder
    goes to the largest weight (first one on ties). Negative weights count as
    zero; all-zero input is split evenly.
    """
    if not weights:
        return {}

    names = list(weights)
    positive = {name: max(float(weights[name]), 0.0) for name in names}
    raw_total = sum(positive.values())
    if raw_total <= 0:
        shares = {name: total / len(names) for name in names}
    else:
        shares = {name: positive[name] * total / raw_total for name in names}

    rounded = {name: round(share, precision) for name, share in shares.items()}
    remainder = round(total - sum(rounded.values()), precision)
    if remainder:
        largest = max(names, key=lambda name: shares[name])
        rounded[largest] = round(rounded[largest] + remainder, precision)
    return rounded


def normalize_category_weights(config: ScorecardConfiguration, precision: int = 0) -> ScorecardConfiguration:
    """Return a copy of ``config`` whose active category weights sum to 100."""
    active = {name: cat.weight for name, cat in config.active_categories}
    normalized = normalize_weights(active, precision=precision)

    data = config.model_dump()
    for name, weight in normalized.items():
        data["categories"][name]["weight"] = weight
    return ScorecardConfiguration.model_validate(data)
