"""Bucket classification — maps a final score to a grade (A-D) and a decision label."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from scoreforge.exceptions import ConfigurationError
from scoreforge.schemas import BandConfig, Decision

logger = logging.getLogger(__name__)


@dataclass
class BucketAssignment:
    grade: str
    description: str
    decision: str  # approve | review | decline
    fallback: bool = False  # score fell below every band


def ordered_grades(bucket_mapping: Mapping[str, BandConfig]) -> list[str]:
    """Grades from best (highest min) to worst; ties keep definition order."""
    return sorted(bucket_mapping, key=lambda g: -bucket_mapping[g].min)


def best_grade(bucket_mapping: Mapping[str, BandConfig]) -> str:
    return ordered_grades(bucket_mapping)[0]


def worst_grade(bucket_mapping: Mapping[str, BandConfig]) -> str:
    return ordered_grades(bucket_mapping)[-1]


def band_decision(grade: str, bucket_mapping: Mapping[str, BandConfig]) -> str:
    """Explicit band decision, else decline for the worst grade and approve otherwise."""
    band = bucket_mapping[grade]
    if band.decision is not None:
        return band.decision.value
    if grade == worst_grade(bucket_mapping):
        return Decision.DECLINE.value
    return Decision.APPROVE.value


def default_approved_grades(bucket_mapping: Mapping[str, BandConfig]) -> list[str]:
    return [g for g in ordered_grades(bucket_mapping) if band_decision(g, bucket_mapping) == Decision.APPROVE.value]


def assign_grade(grade: str, bucket_mapping: Mapping[str, BandConfig], fallback: bool = False) -> BucketAssignment:
    band = bucket_mapping[grade]
    return BucketAssignment(
        grade=grade,
        description=band.description,
        decision=band_decision(grade, bucket_mapping),
        fallback=fallback,
    )


def classify(score: float, bucket_mapping: Mapping[str, BandConfig]) -> BucketAssignment:
    """Return the grade whose band contains ``score``.

    Bands are walked from the highest ``min`` down and the first band with
    ``score >= min`` wins, so every band covers ``[min, next_higher.min)``.
    """
    if not bucket_mapping:
        raise ConfigurationError(["Scorecard has no bucket bands"])

    grades = ordered_grades(bucket_mapping)
    for grade in grades:
        if score >= bucket_mapping[grade].min:
            return assign_grade(grade, bucket_mapping)

    lowest = grades[-1]
    logger.warning(
        "Score %s is below every band (lowest '%s' starts at %s); using lowest grade",
        score, lowest, bucket_mapping[lowest].min,
    )
    return assign_grade(lowest, bucket_mapping, fallback=True)
