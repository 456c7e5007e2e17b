"""
SimTrace Evaluation — Shared Types

Data classes used across the normalizer, scoring, comparison, evidence and
diagnosis modules. Runs and policies are frozen: nothing in the engine
mutates them after loading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

NEAR_COLLISION = "near_collision"
COLLISION = "collision"
STUCK = "stuck"
REPLAN = "replan"

# Event types the engine recognizes. Other types are kept as evidence but
# never scored.
EVENT_TYPES: tuple[str, ...] = (NEAR_COLLISION, COLLISION, STUCK, REPLAN)

PASS = "PASS"
WARN = "WARN"
FAIL = "FAIL"

VERDICTS: tuple[str, ...] = (PASS, WARN, FAIL)

VARIANT_THRESHOLD = "threshold"
VARIANT_LIMITS = "limits"

DEFAULT_DT = 0.1


# ---------------------------------------------------------------------------
# Run data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Frame:
    """One sampled robot pose."""

    t: float
    x: float
    y: float


@dataclass(frozen=True)
class Event:
    """A timestamped discrete incident."""

    t: float
    type: str
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "type": self.type, "detail": self.detail}


@dataclass(frozen=True)
class Stats:
    """
    Precomputed aggregates supplied by the run producer.

    Any field left as None was not supplied. Supplied values win over
    anything derived from frames or events.
    """

    duration_s: float | None = None
    distance_m: float | None = None
    counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Run:
    """A recorded simulation episode."""

    label: str = "run"
    frames: tuple[Frame, ...] = ()
    events: tuple[Event, ...] = ()
    stats: Stats | None = None
    dt: float = DEFAULT_DT

    @property
    def duration_s(self) -> float:
        if self.stats is not None and self.stats.duration_s is not None:
            return self.stats.duration_s
        if self.frames:
            return self.frames[-1].t
        return 0.0

    @property
    def distance_m(self) -> float | None:
        if self.stats is None:
            return None
        return self.stats.distance_m

    @property
    def is_empty(self) -> bool:
        return not self.frames and not self.events

    def to_dict(self) -> dict[str, Any]:
        stats: dict[str, Any] | None = None
        if self.stats is not None:
            stats = {
                "duration_s": self.stats.duration_s,
                "distance_m": self.stats.distance_m,
                "counts": dict(self.stats.counts),
            }
        return {
            "label": self.label,
            "dt": self.dt,
            "frames": [{"t": f.t, "x": f.x, "y": f.y} for f in self.frames],
            "events": [e.to_dict() for e in self.events],
            "stats": stats,
        }


# ---------------------------------------------------------------------------
# Policies and derived results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScenarioPolicy:
    """
    Named weighting/verdict configuration.

    Two verdict variants exist:
    - threshold: score <= pass_max → PASS, <= warn_max → WARN, else FAIL
    - limits: any count > limit → FAIL, any count == limit → WARN, else PASS
    """

    key: str
    name: str
    weights: dict[str, float]
    blurb: str
    variant: str = VARIANT_THRESHOLD
    pass_max: float = 0.0
    warn_max: float = 0.0
    limits: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "variant": self.variant,
            "weights": dict(self.weights),
            "blurb": self.blurb,
        }
        if self.variant == VARIANT_LIMITS:
            out["limits"] = dict(self.limits)
        else:
            out["thresholds"] = {"pass": self.pass_max, "warn": self.warn_max}
        return out


@dataclass(frozen=True)
class ScoreResult:
    """Score and verdict of one run under one policy."""

    policy_key: str
    variant: str
    score: float
    verdict: str
    counts: dict[str, int]
    blurb: str
    scenario_name: str
    duration_s: float
    distance_m: float | None

    def count(self, event_type: str) -> int:
        return self.counts.get(event_type, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy_key": self.policy_key,
            "variant": self.variant,
            "scenario_name": self.scenario_name,
            "score": self.score,
            "verdict": self.verdict,
            "counts": dict(self.counts),
            "duration_s": self.duration_s,
            "distance_m": self.distance_m,
            "blurb": self.blurb,
        }


@dataclass(frozen=True)
class DeltaResult:
    """Signed differences (other - primary) between two scored runs."""

    score: float
    counts: dict[str, int]
    duration_s: float
    distance_m: float | None
    better: bool
    equal: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "counts": dict(self.counts),
            "duration_s": self.duration_s,
            "distance_m": self.distance_m,
            "better": self.better,
            "equal": self.equal,
        }


@dataclass(frozen=True)
class RunSummary:
    """Bounded digest of a run, used as diagnosis input."""

    label: str
    duration_s: float
    distance_m: float | None
    counts: dict[str, int]
    evidence: tuple[Event, ...]
    frame_count: int
    event_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "duration_s": self.duration_s,
            "distance_m": self.distance_m,
            "counts": dict(self.counts),
            "evidence": [e.to_dict() for e in self.evidence],
            "meta": {"frames": self.frame_count, "events": self.event_count},
        }


# ---------------------------------------------------------------------------
# Diagnosis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvidenceItem:
    t: float
    type: str
    why_it_matters: str

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "type": self.type, "why_it_matters": self.why_it_matters}


@dataclass(frozen=True)
class DiagnosisResult:
    """Structured explanation of a run's outcome."""

    verdict: str
    confidence: float
    operator_summary: str
    root_causes: tuple[str, ...]
    evidence: tuple[EvidenceItem, ...]
    recommendations: tuple[str, ...]
    next_tests: tuple[str, ...]
    compare_insights: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict,
            "confidence": self.confidence,
            "operator_summary": self.operator_summary,
            "root_causes": list(self.root_causes),
            "evidence": [item.to_dict() for item in self.evidence],
            "recommendations": list(self.recommendations),
            "next_tests": list(self.next_tests),
            "compare_insights": self.compare_insights,
        }
