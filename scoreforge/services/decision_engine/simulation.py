"""Simulation Engine — bulk scoring and impact analysis for scorecards.

Supports:
  - Bulk aggregation: score a batch of records and summarise the distribution
  - Impact comparison: two scorecards side by side on the same records

Records are scored independently. With several workers the batch is split
into contiguous chunks, each chunk builds its own partial aggregate, and the
partials are merged in chunk order so the summary matches a sequential run.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from scoreforge.config import settings
from scoreforge.exceptions import BatchRecordError, ConfigurationError
from scoreforge.schemas import Decision, ScorecardConfiguration, load_configuration
from scoreforge.services.decision_engine.buckets import default_approved_grades, ordered_grades
from scoreforge.services.decision_engine.validator import ensure_valid
from scoreforge.services.error_logger import log_error
from scoreforge.services.scorecard_engine import ScoreResult, evaluate, record_identifier
from scoreforge.services.scorecard_performance import (
    build_score_distribution_pcts,
    build_score_histogram,
    calculate_psi,
    describe_scores,
    psi_status,
)

logger = logging.getLogger(__name__)

StopSignal = Union[Callable[[], bool], threading.Event, None]


@dataclass
class DistributionSummary:
    total: int = 0
    scored: int = 0
    record_errors: int = 0
    bucket_counts: dict[str, int] = field(default_factory=dict)
    approval_rate: float = 0.0  # percent of scored records in approved buckets
    average_score: float = 0.0
    approved_buckets: list[str] = field(default_factory=list)
    bucket_percentages: dict[str, float] = field(default_factory=dict)
    decision_counts: dict[str, int] = field(default_factory=dict)
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    median_score: Optional[float] = None
    score_histogram: list[dict] = field(default_factory=list)
    preview: list[dict] = field(default_factory=list)
    errors: list[BatchRecordError] = field(default_factory=list)
    target_approval_rate: Optional[float] = None
    approval_rate_variance: Optional[float] = None  # actual minus target, in points
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScorecardComparison:
    total_compared: int = 0
    summary_a: Optional[DistributionSummary] = None
    summary_b: Optional[DistributionSummary] = None
    approvals_a: int = 0
    approvals_b: int = 0
    newly_approved: int = 0
    newly_declined: int = 0
    changed_buckets: list[dict] = field(default_factory=list)
    psi: float = 0.0
    psi_status: str = "stable"


@dataclass
class _Partial:
    """Aggregate of one contiguous chunk of records."""
    consumed: int = 0
    scores: list[float] = field(default_factory=list)
    bucket_counts: dict[str, int] = field(default_factory=dict)
    decision_counts: dict[str, int] = field(default_factory=dict)
    approved: int = 0
    errors: list[BatchRecordError] = field(default_factory=list)
    preview: list[dict] = field(default_factory=list)
    outcomes: list[tuple[int, Optional[ScoreResult]]] = field(default_factory=list)
    cancelled: bool = False

    def merge(self, other: "_Partial") -> None:
        self.consumed += other.consumed
        self.scores.extend(other.scores)
        for grade, count in other.bucket_counts.items():
            self.bucket_counts[grade] = self.bucket_counts.get(grade, 0) + count
        for decision, count in other.decision_counts.items():
            self.decision_counts[decision] = self.decision_counts.get(decision, 0) + count
        self.approved += other.approved
        self.errors.extend(other.errors)
        self.preview.extend(other.preview)
        self.outcomes.extend(other.outcomes)
        self.cancelled = self.cancelled or other.cancelled


def _stop_checker(should_stop: StopSignal) -> Callable[[], bool]:
    if should_stop is None:
        return lambda: False
    if isinstance(should_stop, threading.Event):
        return should_stop.is_set
    return should_stop


# ── Bulk aggregation ───────────────────────────────────────────────

def aggregate(
    config: ScorecardConfiguration | Mapping[str, Any],
    records: Iterable[Any],
    *,
    approved_buckets: Optional[Iterable[str]] = None,
    workers: Optional[int] = None,
    should_stop: StopSignal = None,
    preview_size: Optional[int] = None,
) -> DistributionSummary:
    """Score a batch of records and summarise the score distribution.

    Malformed records are counted in ``record_errors`` and never abort the
    batch; only a broken configuration raises (ConfigurationError).
    ``should_stop`` is polled between records; when it fires, the records
    scored so far are summarised and ``cancelled`` is set.
    """
    summary, _ = _run(
        config, records,
        approved_buckets=approved_buckets, workers=workers,
        should_stop=should_stop, preview_size=preview_size, keep_results=False,
    )
    return summary


def _run(
    config: ScorecardConfiguration | Mapping[str, Any],
    records: Iterable[Any],
    *,
    approved_buckets: Optional[Iterable[str]],
    workers: Optional[int],
    should_stop: StopSignal,
    preview_size: Optional[int],
    keep_results: bool,
) -> tuple[DistributionSummary, list[tuple[int, Optional[ScoreResult]]]]:
    config = load_configuration(config)
    ensure_valid(config)

    records = list(records)
    mapping = config.bucket_mapping
    approved = _approved_set(approved_buckets, mapping)
    n_workers = workers if workers is not None else settings.bulk_workers
    n_preview = settings.bulk_preview_size if preview_size is None else preview_size
    stop = _stop_checker(should_stop)

    chunks = _chunk_bounds(len(records), n_workers)
    logger.info(
        "Aggregating %s records for scorecard '%s' (%s chunk(s), %s worker(s))",
        len(records), config.name, len(chunks), max(1, n_workers),
    )

    def _work(bounds: tuple[int, int]) -> _Partial:
        start, end = bounds
        return _score_chunk(config, records, start, end, approved, stop, n_preview, keep_results)

    if n_workers > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            partials = list(pool.map(_work, chunks))
    else:
        partials = [_work(bounds) for bounds in chunks]

    merged = _Partial()
    for partial in partials:
        merged.merge(partial)

    summary = _summarize(config, merged, approved, n_preview)
    if summary.cancelled:
        logger.info("Aggregation cancelled after %s of %s records", summary.total, len(records))
    return summary, merged.outcomes


def _approved_set(approved_buckets: Optional[Iterable[str]], mapping) -> list[str]:
    if approved_buckets is None:
        return default_approved_grades(mapping)
    grades = list(approved_buckets)
    unknown = [g for g in grades if g not in mapping]
    if unknown:
        logger.warning("Approved buckets %s are not grades of this scorecard", unknown)
    return [g for g in ordered_grades(mapping) if g in grades]


def _chunk_bounds(n_records: int, workers: int) -> list[tuple[int, int]]:
    if n_records == 0:
        return []
    if workers <= 1:
        return [(0, n_records)]
    size = max(1, min(settings.bulk_chunk_size, math.ceil(n_records / workers)))
    return [(start, min(start + size, n_records)) for start in range(0, n_records, size)]


def _score_chunk(
    config: ScorecardConfiguration,
    records: Sequence[Any],
    start: int,
    end: int,
    approved: list[str],
    stop: Callable[[], bool],
    preview_size: int,
    keep_results: bool,
) -> _Partial:
    partial = _Partial()

    for index in range(start, end):
        if stop():
            partial.cancelled = True
            break

        record = records[index]
        partial.consumed += 1
        result = _score_record(config, record, index, partial)
        if keep_results:
            partial.outcomes.append((index, result))
        if result is None:
            continue

        partial.scores.append(result.final_score)
        partial.bucket_counts[result.bucket] = partial.bucket_counts.get(result.bucket, 0) + 1
        partial.decision_counts[result.decision] = partial.decision_counts.get(result.decision, 0) + 1
        if result.bucket in approved:
            partial.approved += 1
        if len(partial.preview) < preview_size:
            partial.preview.append({
                "index": index,
                "record_id": result.record_id,
                "final_score": result.final_score,
                "bucket": result.bucket,
                "decision": result.decision,
                "reason_codes": result.reason_codes,
            })

    return partial


def _score_record(
    config: ScorecardConfiguration,
    record: Any,
    index: int,
    partial: _Partial,
) -> Optional[ScoreResult]:
    """Evaluate one record; failures become BatchRecordErrors on ``partial``."""
    if not isinstance(record, Mapping):
        exc = TypeError(f"record must be a mapping, got {type(record).__name__}")
        entry = log_error(exc, context={"index": index}, level=logging.WARNING)
        partial.errors.append(BatchRecordError(index, None, entry.error_type, entry.message))
        return None

    record_id = None
    try:
        record_id = record_identifier(record) or f"record_{index + 1}"
        return evaluate(config, record, record_id=record_id, validate=False)
    except ConfigurationError:
        raise
    except Exception as exc:
        entry = log_error(exc, context={"index": index, "record_id": record_id})
        partial.errors.append(BatchRecordError(
            index, record_id, entry.error_type, entry.message,
            details={"module": entry.module, "function": entry.function_name, "line": entry.line_number},
        ))
        return None


def _summarize(
    config: ScorecardConfiguration,
    merged: _Partial,
    approved: list[str],
    preview_size: int,
) -> DistributionSummary:
    grades = ordered_grades(config.bucket_mapping)
    scored = len(merged.scores)
    stats = describe_scores(merged.scores)

    bucket_counts = {g: merged.bucket_counts.get(g, 0) for g in grades}
    decision_counts = {d.value: merged.decision_counts.get(d.value, 0) for d in Decision}
    approval_rate = round(merged.approved / scored * 100, 2) if scored else 0.0

    target = config.target_approval_rate
    if target is not None and target <= 1:
        target = target * 100  # given as a fraction
    variance = round(approval_rate - target, 2) if target is not None and scored else None

    return DistributionSummary(
        total=merged.consumed,
        scored=scored,
        record_errors=len(merged.errors),
        bucket_counts=bucket_counts,
        approval_rate=approval_rate,
        average_score=stats["mean"] if scored else 0.0,
        approved_buckets=approved,
        bucket_percentages={
            g: round(c / scored * 100, 2) if scored else 0.0 for g, c in bucket_counts.items()
        },
        decision_counts=decision_counts,
        min_score=stats["min"],
        max_score=stats["max"],
        median_score=stats["median"],
        score_histogram=build_score_histogram(
            merged.scores, 0, config.max_score, settings.histogram_bands,
        ),
        preview=merged.preview[:preview_size],
        errors=merged.errors,
        target_approval_rate=target,
        approval_rate_variance=variance,
        cancelled=merged.cancelled,
    )


# ── Scorecard comparison ───────────────────────────────────────────

def compare_scorecards(
    config_a: ScorecardConfiguration | Mapping[str, Any],
    config_b: ScorecardConfiguration | Mapping[str, Any],
    records: Iterable[Any],
    *,
    approved_buckets_a: Optional[Iterable[str]] = None,
    approved_buckets_b: Optional[Iterable[str]] = None,
    workers: Optional[int] = None,
) -> ScorecardComparison:
    """Compare two scorecards side by side on the same records."""
    config_a = load_configuration(config_a)
    config_b = load_configuration(config_b)
    records = list(records)

    summary_a, outcomes_a = _run(
        config_a, records, approved_buckets=approved_buckets_a, workers=workers,
        should_stop=None, preview_size=None, keep_results=True,
    )
    summary_b, outcomes_b = _run(
        config_b, records, approved_buckets=approved_buckets_b, workers=workers,
        should_stop=None, preview_size=None, keep_results=True,
    )

    comparison = ScorecardComparison(
        total_compared=len(records),
        summary_a=summary_a,
        summary_b=summary_b,
    )
    approved_a = set(summary_a.approved_buckets)
    approved_b = set(summary_b.approved_buckets)

    for (index, result_a), (_, result_b) in zip(outcomes_a, outcomes_b):
        if result_a is None or result_b is None:
            continue
        was_approved = result_a.bucket in approved_a
        is_approved = result_b.bucket in approved_b
        comparison.approvals_a += was_approved
        comparison.approvals_b += is_approved

        if is_approved and not was_approved:
            comparison.newly_approved += 1
        elif was_approved and not is_approved:
            comparison.newly_declined += 1

        if result_a.bucket != result_b.bucket:
            comparison.changed_buckets.append({
                "index": index,
                "record_id": result_a.record_id,
                "bucket_a": result_a.bucket,
                "bucket_b": result_b.bucket,
                "score_a": result_a.final_score,
                "score_b": result_b.final_score,
            })

    # Scores are compared as a share of each scorecard's scale
    n_bands = settings.histogram_bands
    scores_a = [r.final_score for _, r in outcomes_a if r is not None]
    scores_b = [r.final_score for _, r in outcomes_b if r is not None]
    if scores_a and scores_b:
        comparison.psi = calculate_psi(
            build_score_distribution_pcts(scores_a, 0, config_a.max_score, n_bands),
            build_score_distribution_pcts(scores_b, 0, config_b.max_score, n_bands),
        )
    comparison.psi_status = psi_status(comparison.psi)
    return comparison
