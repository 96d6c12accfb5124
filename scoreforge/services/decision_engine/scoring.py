"""Category scoring — turns a category's variables into points.

Each variable is scored by one of two strategies, chosen per variable:
  - band lookup: the first band whose range/values match the value awards its score
  - linear normalisation: the value is scaled into ``[0, variable.weight]``

A category's sub-score is the sum of its variables' points, so a fully
satisfied category contributes exactly its weight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from scoreforge.exceptions import DataQualityIssue
from scoreforge.schemas import CategoryConfig, VariableBand, VariableConfig, VariableType
from scoreforge.services.decision_engine.resolver import NOT_FOUND, resolve_variable

logger = logging.getLogger(__name__)


@dataclass
class Contributor:
    """Points awarded by one variable, kept for reason codes."""
    category: str
    variable: str
    value: Any
    points: float
    max_points: float
    band_label: str | None = None
    status: str = "scored"  # scored | missing | invalid | unmatched
    source_field: str | None = None


@dataclass
class CategoryScore:
    category: str
    sub_score: float
    max_points: float
    contributors: list[Contributor] = field(default_factory=list)
    issues: list[DataQualityIssue] = field(default_factory=list)


def match_band(bands: list[VariableBand], value: Any) -> VariableBand | None:
    """Find the band for a value. First specific match wins; catch-all is the fallback."""
    default_band = None

    for band in bands:
        if band.is_catch_all:
            if default_band is None:
                default_band = band
            continue

        if band.is_categorical:
            if isinstance(value, float) and value.is_integer():
                value_text = str(int(value))
            else:
                value_text = str(value)
            text = value_text.strip().lower()
            if any(text == str(v).strip().lower() for v in band.values):
                return band
            continue

        try:
            num_val = float(value)
        except (TypeError, ValueError, OverflowError):
            continue
        min_v = band.min if band.min is not None else float("-inf")
        max_v = band.max if band.max is not None else float("inf")
        if min_v <= num_val < max_v:
            return band

    return default_band


def linear_points(variable: VariableConfig, value: float) -> float:
    """Scale a value into ``[0, weight]`` between the variable's min and max."""
    span = variable.max_value - variable.min_value
    if span <= 0:
        return 0.0
    fraction = (value - variable.min_value) / span
    fraction = max(0.0, min(1.0, fraction))
    if not variable.higher_is_better:
        fraction = 1.0 - fraction
    return fraction * variable.weight


def score_variable(
    category_name: str,
    variable: VariableConfig,
    record: Mapping[str, Any],
) -> tuple[Contributor, DataQualityIssue | None]:
    resolution = resolve_variable(record, variable)

    if resolution.status == "missing":
        issue = DataQualityIssue(category_name, variable.name, "missing", f"missing {variable.name}")
        return Contributor(
            category_name, variable.name, NOT_FOUND, 0.0, variable.weight,
            band_label="Missing", status="missing",
        ), issue

    if resolution.status == "invalid":
        expected = "a number" if variable.type == VariableType.CONTINUOUS else "text"
        issue = DataQualityIssue(
            category_name, variable.name, "invalid",
            f"invalid {variable.name}: {resolution.raw!r} is not {expected}",
            raw_value=resolution.raw,
        )
        return Contributor(
            category_name, variable.name, NOT_FOUND, 0.0, variable.weight,
            band_label="Invalid", status="invalid", source_field=resolution.key,
        ), issue

    value = resolution.value
    if variable.uses_bands:
        band = match_band(variable.bands, value)
        if band is None:
            issue = DataQualityIssue(
                category_name, variable.name, "unmatched",
                f"{variable.name} value {value!r} matched no band", raw_value=resolution.raw,
            )
            return Contributor(
                category_name, variable.name, value, 0.0, variable.weight,
                band_label=None, status="unmatched", source_field=resolution.key,
            ), issue
        points = band.score
        label = band.display_label
    elif variable.type == VariableType.CONTINUOUS:
        points = linear_points(variable, value)
        label = f"{variable.min_value:g}-{variable.max_value:g} scale"
    else:
        # Categorical without bands is rejected by the validator
        points = 0.0
        label = None

    return Contributor(
        category_name, variable.name, value, round(points, 4), variable.weight,
        band_label=label, status="scored", source_field=resolution.key,
    ), None


def score_category(
    name: str,
    category: CategoryConfig,
    record: Mapping[str, Any],
) -> CategoryScore:
    """Score every variable of one category against a record."""
    result = CategoryScore(
        category=name,
        sub_score=0.0,
        max_points=sum(v.weight for v in category.variables),
    )

    total = 0.0
    for variable in category.variables:
        contributor, issue = score_variable(name, variable, record)
        total += contributor.points
        result.contributors.append(contributor)
        if issue is not None:
            logger.debug("Data quality issue in '%s': %s", name, issue.message)
            result.issues.append(issue)

    result.sub_score = round(total, 4)
    return result
