"""Score distribution statistics — histogram bands, summary stats, PSI.

Used by bulk aggregation and by scorecard comparison. All functions are pure
and work on plain lists of scores.
"""

from __future__ import annotations

import math
import statistics
from typing import Optional

PSI_WARNING = 0.1
PSI_CRITICAL = 0.25


# ────────────────────────────────────────────────────────────────────
# 1. Score Bands
# ────────────────────────────────────────────────────────────────────

def _band_index(score: float, min_score: float, band_size: float, n_bands: int) -> int:
    idx = int((score - min_score) / band_size) if band_size > 0 else 0
    return max(0, min(idx, n_bands - 1))


def build_score_histogram(
    scores: list[float],
    min_score: float,
    max_score: float,
    n_bands: int = 10,
) -> list[dict]:
    """Count scores per equal-width band; the top band includes ``max_score``."""
    band_size = (max_score - min_score) / n_bands
    counts = [0] * n_bands
    for s in scores:
        counts[_band_index(s, min_score, band_size, n_bands)] += 1

    return [
        {
            "band": i,
            "min": round(min_score + i * band_size, 4),
            "max": round(min_score + (i + 1) * band_size, 4),
            "count": counts[i],
        }
        for i in range(n_bands)
    ]


def build_score_distribution_pcts(
    scores: list[float],
    min_score: float,
    max_score: float,
    n_bands: int = 10,
) -> list[float]:
    """Build fractional distribution across score bands."""
    if not scores:
        return [0.0] * n_bands

    total = len(scores)
    histogram = build_score_histogram(scores, min_score, max_score, n_bands)
    return [band["count"] / total for band in histogram]


# ────────────────────────────────────────────────────────────────────
# 2. Population Stability Index (PSI)
# ────────────────────────────────────────────────────────────────────

def calculate_psi(
    expected_pcts: list[float],
    actual_pcts: list[float],
) -> float:
    """Calculate PSI between two distributions (as fraction arrays).

    PSI = Σ (actual_i - expected_i) * ln(actual_i / expected_i)
    """
    if len(expected_pcts) != len(actual_pcts):
        raise ValueError(
            f"Distributions differ in length: {len(expected_pcts)} vs {len(actual_pcts)}"
        )

    psi = 0.0
    for exp, act in zip(expected_pcts, actual_pcts):
        exp = max(exp, 0.001)  # avoid log(0)
        act = max(act, 0.001)
        psi += (act - exp) * math.log(act / exp)

    return round(abs(psi), 4)


def psi_status(psi: float) -> str:
    """stable below 0.1, drift up to 0.25, shift above."""
    if psi > PSI_CRITICAL:
        return "shift"
    if psi > PSI_WARNING:
        return "drift"
    return "stable"


# ────────────────────────────────────────────────────────────────────
# 3. Summary Statistics
# ────────────────────────────────────────────────────────────────────

def describe_scores(scores: list[float]) -> dict[str, Optional[float]]:
    if not scores:
        return {"count": 0, "mean": None, "min": None, "max": None, "median": None}
    return {
        "count": len(scores),
        "mean": round(statistics.fmean(scores), 2),
        "min": round(min(scores), 2),
        "max": round(max(scores), 2),
        "median": round(statistics.median(scores), 2),
    }
