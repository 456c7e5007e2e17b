"""
SimTrace Evaluation — Comparison Engine

compare(primary, other, primary_run, other_run) → DeltaResult

Every delta is other - primary: a positive distance delta means the compared
run travelled further. Lower score is better.
"""

from __future__ import annotations

from engine.evaluation.types import DeltaResult, Run, ScoreResult


class PolicyMismatchError(ValueError):
    """Raised when two scores were computed under different policies."""


def _round1(value: float) -> float:
    return round(value, 1)


def compare(
    primary: ScoreResult,
    other: ScoreResult,
    primary_run: Run,
    other_run: Run,
) -> DeltaResult:
    if (primary.policy_key, primary.variant) != (other.policy_key, other.variant):
        raise PolicyMismatchError(
            f"Cannot compare scores from different policies: "
            f"{primary.policy_key}/{primary.variant} vs {other.policy_key}/{other.variant}"
        )

    types = list(dict.fromkeys([*primary.counts, *other.counts]))
    counts = {t: other.count(t) - primary.count(t) for t in types}

    distance: float | None = None
    if primary_run.distance_m is not None and other_run.distance_m is not None:
        distance = _round1(other_run.distance_m - primary_run.distance_m)

    return DeltaResult(
        score=other.score - primary.score,
        counts=counts,
        duration_s=_round1(other_run.duration_s - primary_run.duration_s),
        distance_m=distance,
        better=other.score < primary.score,
        equal=other.score == primary.score,
    )
