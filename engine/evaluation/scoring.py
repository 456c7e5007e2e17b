"""
SimTrace Evaluation — Scoring Engine

score(run, policy_key) → ScoreResult  (pure, deterministic, never raises)

Counts come from the run's stats when supplied, otherwise from an exact-match
scan of its events. The score is the weighted sum of counts over the types
the policy weights; other event types do not contribute.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping

from engine.evaluation.policies import lookup
from engine.evaluation.types import (
    EVENT_TYPES,
    FAIL,
    PASS,
    VARIANT_LIMITS,
    WARN,
    Run,
    ScenarioPolicy,
    ScoreResult,
)


def event_counts(run: Run, types: tuple[str, ...] | list[str] = EVENT_TYPES) -> dict[str, int]:
    """
    Per-type counts for the given types.

    A count supplied in run.stats is authoritative for its type; types the
    stats omit are counted from the events.
    """
    supplied = run.stats.counts if run.stats is not None else {}
    scanned: Counter[str] | None = None
    counts: dict[str, int] = {}
    for event_type in types:
        if event_type in supplied:
            counts[event_type] = supplied[event_type]
            continue
        if scanned is None:
            scanned = Counter(e.type for e in run.events)
        counts[event_type] = scanned.get(event_type, 0)
    return counts


def weighted_score(counts: Mapping[str, int], policy: ScenarioPolicy) -> float:
    return float(sum(max(counts.get(t, 0), 0) * weight for t, weight in policy.weights.items()))


def classify(score: float, counts: Mapping[str, int], policy: ScenarioPolicy) -> str:
    """
    Verdict under the policy's variant.

    Threshold: score <= pass_max is PASS, <= warn_max is WARN, else FAIL.
    Limits: any count over its limit is FAIL, any count equal to its limit
    is WARN. A zero limit therefore makes a clean run WARN.
    """
    if policy.variant == VARIANT_LIMITS:
        if any(counts.get(t, 0) > limit for t, limit in policy.limits.items()):
            return FAIL
        if any(counts.get(t, 0) == limit for t, limit in policy.limits.items()):
            return WARN
        return PASS

    if score <= policy.pass_max:
        return PASS
    if score <= policy.warn_max:
        return WARN
    return FAIL


def score_counts(
    counts: Mapping[str, int],
    policy: ScenarioPolicy,
    duration_s: float = 0.0,
    distance_m: float | None = None,
) -> ScoreResult:
    """Score already-derived counts (used when only a summary is at hand)."""
    tracked = list(dict.fromkeys([*EVENT_TYPES, *policy.weights, *policy.limits]))
    full = {t: int(counts.get(t, 0)) for t in tracked}
    value = weighted_score(full, policy)
    return ScoreResult(
        policy_key=policy.key,
        variant=policy.variant,
        score=value,
        verdict=classify(value, full, policy),
        counts=full,
        blurb=policy.blurb,
        scenario_name=policy.name,
        duration_s=duration_s,
        distance_m=distance_m,
    )


def score(run: Run, policy_key: str | None, variant: str | None = None) -> ScoreResult:
    """Score a run under the named policy. Unknown keys use the default policy."""
    policy = lookup(policy_key, variant)
    tracked = list(dict.fromkeys([*EVENT_TYPES, *policy.weights, *policy.limits]))
    return score_counts(
        event_counts(run, tracked),
        policy,
        duration_s=run.duration_s,
        distance_m=run.distance_m,
    )
