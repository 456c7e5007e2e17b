"""
SimTrace Evaluation — Diagnosis

Two strategies share one output contract (DiagnosisResult):

  diagnose_rules     — local, synchronous, deterministic; always available
  model-backed       — lives in backend.services.diagnoser; its reply is
                       checked here by parse_model_reply()

The model path has exactly three outcomes: a DiagnosisResult, BadModelJSON
(the reply was not the declared JSON shape), or DiagnoseFailed (transport or
service error). A bad reply is never turned into a guessed diagnosis.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from engine.evaluation.policies import lookup
from engine.evaluation.scoring import score_counts
from engine.evaluation.types import (
    COLLISION,
    EVENT_TYPES,
    NEAR_COLLISION,
    REPLAN,
    STUCK,
    VARIANT_LIMITS,
    VERDICTS,
    DiagnosisResult,
    EvidenceItem,
    RunSummary,
    ScoreResult,
)

RAW_EXCERPT_LIMIT = 2000

# ---------------------------------------------------------------------------
# Output contract
# ---------------------------------------------------------------------------

ARRAY_BOUNDS: dict[str, tuple[int, int]] = {
    "root_causes": (1, 6),
    "evidence": (2, 10),
    "recommendations": (3, 10),
    "next_tests": (2, 8),
}

DIAGNOSIS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "verdict": {"type": "string", "enum": list(VERDICTS)},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "operator_summary": {"type": "string"},
        "root_causes": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 1,
            "maxItems": 6,
        },
        "evidence": {
            "type": "array",
            "minItems": 2,
            "maxItems": 10,
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "t": {"type": "number"},
                    "type": {"type": "string"},
                    "why_it_matters": {"type": "string"},
                },
                "required": ["t", "type", "why_it_matters"],
            },
        },
        "recommendations": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 3,
            "maxItems": 10,
        },
        "next_tests": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 2,
            "maxItems": 8,
        },
        # Always required; "" when there is no compare run
        "compare_insights": {"type": "string"},
    },
    "required": [
        "verdict",
        "confidence",
        "operator_summary",
        "root_causes",
        "evidence",
        "recommendations",
        "next_tests",
        "compare_insights",
    ],
}

_REQUIRED = tuple(DIAGNOSIS_SCHEMA["required"])


class DiagnosisError(Exception):
    """Base for caller-visible diagnosis failures."""

    error = "diagnosis_error"
    status_code = 500

    def __init__(self, details: str):
        super().__init__(details)
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details}


class BadModelJSON(DiagnosisError):
    """The model reply could not be read as the declared diagnosis shape."""

    error = "bad_model_json"
    status_code = 502

    def __init__(self, details: str, raw: str):
        super().__init__(details)
        self.raw = raw[:RAW_EXCERPT_LIMIT]

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details, "raw": self.raw}


class DiagnoseFailed(DiagnosisError):
    """Transport or upstream service failure."""

    error = "diagnose_failed"

    def __init__(self, details: str, status_code: int = 500):
        super().__init__(details)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int beyond float range
        return False


def _validate_string_array(name: str, value: Any) -> list[str]:
    errors: list[str] = []
    low, high = ARRAY_BOUNDS[name]
    if not isinstance(value, list):
        return [f"'{name}' must be an array"]
    if not low <= len(value) <= high:
        errors.append(f"'{name}' must have {low}..{high} items, got {len(value)}")
    if not all(isinstance(item, str) for item in value):
        errors.append(f"'{name}' items must be strings")
    return errors


def _validate_evidence(value: Any) -> list[str]:
    low, high = ARRAY_BOUNDS["evidence"]
    if not isinstance(value, list):
        return ["'evidence' must be an array"]
    errors: list[str] = []
    if not low <= len(value) <= high:
        errors.append(f"'evidence' must have {low}..{high} items, got {len(value)}")
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            errors.append(f"evidence[{i}] must be an object")
            continue
        extra = set(item) - {"t", "type", "why_it_matters"}
        if extra:
            errors.append(f"evidence[{i}] has unexpected keys: {sorted(extra)}")
        if not _is_number(item.get("t")):
            errors.append(f"evidence[{i}].t must be a number")
        for key in ("type", "why_it_matters"):
            if not isinstance(item.get(key), str):
                errors.append(f"evidence[{i}].{key} must be a string")
    return errors


def validate_diagnosis(data: Any) -> list[str]:
    """
    Check a decoded reply against DIAGNOSIS_SCHEMA.
    Returns a list of error strings. Empty list = valid.
    """
    if not isinstance(data, dict):
        return ["Diagnosis must be a JSON object"]

    errors: list[str] = []
    missing = [key for key in _REQUIRED if key not in data]
    if missing:
        errors.append(f"Missing required fields: {missing}")
    extra = set(data) - set(_REQUIRED)
    if extra:
        errors.append(f"Unexpected fields: {sorted(extra)}")

    if "verdict" in data and data["verdict"] not in VERDICTS:
        errors.append(f"'verdict' must be one of {list(VERDICTS)}")
    if "confidence" in data:
        confidence = data["confidence"]
        if not _is_number(confidence) or not 0 <= confidence <= 1:
            errors.append("'confidence' must be a number in [0, 1]")
    for key in ("operator_summary", "compare_insights"):
        if key in data and not isinstance(data[key], str):
            errors.append(f"'{key}' must be a string")
    for key in ("root_causes", "recommendations", "next_tests"):
        if key in data:
            errors.extend(_validate_string_array(key, data[key]))
    if "evidence" in data:
        errors.extend(_validate_evidence(data["evidence"]))

    return errors


def diagnosis_from_dict(data: Mapping[str, Any]) -> DiagnosisResult:
    """Build a DiagnosisResult from an already-validated mapping."""
    return DiagnosisResult(
        verdict=data["verdict"],
        confidence=float(data["confidence"]),
        operator_summary=data["operator_summary"],
        root_causes=tuple(data["root_causes"]),
        evidence=tuple(
            EvidenceItem(t=float(item["t"]), type=item["type"], why_it_matters=item["why_it_matters"])
            for item in data["evidence"]
        ),
        recommendations=tuple(data["recommendations"]),
        next_tests=tuple(data["next_tests"]),
        compare_insights=data.get("compare_insights", ""),
    )


def parse_model_reply(text: str) -> DiagnosisResult:
    """
    Parse the model's raw reply.

    Raises BadModelJSON (with the first 2000 characters of the reply) when
    the text is not JSON or does not match the diagnosis shape. A missing or
    non-string compare_insights is set to "" before the shape check.
    """
    text = text or ""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise BadModelJSON("Model did not return valid JSON.", raw=text) from exc

    if isinstance(data, dict) and not isinstance(data.get("compare_insights"), str):
        data["compare_insights"] = ""

    errors = validate_diagnosis(data)
    if errors:
        raise BadModelJSON("Model JSON did not match the diagnosis schema: " + "; ".join(errors), raw=text)

    return diagnosis_from_dict(data)


# ---------------------------------------------------------------------------
# Rule-based strategy
# ---------------------------------------------------------------------------

ROOT_CAUSE_DEADLOCK = "Deadlock / missing recovery behavior"
ROOT_CAUSE_LATE_AVOIDANCE = "Late avoidance / unsafe clearance near obstacles"
ROOT_CAUSE_CONTACT = "Contact with obstacles: safety layer did not stop the robot in time"
ROOT_CAUSE_NONE = "No obvious incidents detected"

RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    "warehouse": (
        "Increase clearance and slow down in tight aisles",
        "Add deterministic recovery: back up + rotate if motion stalls",
        "Inflate costmap around shelving and aisle intersections",
    ),
    "delivery": (
        "Add pause + re-plan behavior for sidewalk clutter",
        "Add hysteresis to prevent oscillation near edges",
        "Widen the dynamic-obstacle prediction horizon for pedestrians",
    ),
    "sar": (
        "Add aggressive recovery: multi-step escape + re-orient",
        "Prefer progress heuristics over perfect safety in clutter",
        "Tune terrain traversability thresholds to avoid dead ends",
    ),
}

NEXT_TESTS: tuple[str, ...] = (
    "Randomize obstacle placements and repeat",
    "Compare before/after tuning using overlay + score delta",
)

WHY_IT_MATTERS: dict[str, str] = {
    NEAR_COLLISION: "Clearance dropped below the safety margin; avoidance reacted late.",
    COLLISION: "Physical contact is a hard safety failure under every policy.",
    STUCK: "The robot stopped making progress; recovery behavior did not resolve it.",
    REPLAN: "The planner had to recompute its path, a sign of poor anticipation.",
}

SEVERITY: dict[str, int] = {COLLISION: 0, STUCK: 1, NEAR_COLLISION: 2, REPLAN: 3}

_MAX_RULE_EVIDENCE = ARRAY_BOUNDS["evidence"][1]


def _root_causes(result: ScoreResult) -> tuple[str, ...]:
    causes: list[str] = []
    if result.count(STUCK) > 0:
        causes.append(ROOT_CAUSE_DEADLOCK)
    if result.count(NEAR_COLLISION) > 0:
        causes.append(ROOT_CAUSE_LATE_AVOIDANCE)
    if result.count(COLLISION) > 0:
        causes.append(ROOT_CAUSE_CONTACT)
    if not causes:
        causes.append(ROOT_CAUSE_NONE)
    return tuple(causes)


def _counts_line(counts: Mapping[str, int]) -> str:
    return ", ".join(f"{t}={counts.get(t, 0)}" for t in EVENT_TYPES)


def _evidence(summary: RunSummary, result: ScoreResult) -> tuple[EvidenceItem, ...]:
    # Most severe incidents first, then the rest; shown in time order.
    ranked = sorted(summary.evidence, key=lambda e: (SEVERITY.get(e.type, len(SEVERITY)), e.t))
    picked = sorted(ranked[:_MAX_RULE_EVIDENCE], key=lambda e: e.t)
    items = [
        EvidenceItem(
            t=e.t,
            type=e.type,
            why_it_matters=WHY_IT_MATTERS.get(e.type, f"Unscored event: {e.detail or e.type}"),
        )
        for e in picked
    ]

    padding = (
        EvidenceItem(
            t=0.0,
            type="policy",
            why_it_matters=f"{result.scenario_name}: {result.blurb}",
        ),
        EvidenceItem(
            t=summary.duration_s,
            type="run_end",
            why_it_matters=f"Run ended with {_counts_line(result.counts)}.",
        ),
    )
    for item in padding:
        if len(items) >= ARRAY_BOUNDS["evidence"][0]:
            break
        items.append(item)
    return tuple(items)


def _compare_insights(
    scenario_key: str | None,
    result: ScoreResult,
    compare_summary: RunSummary,
    variant: str | None,
) -> str:
    policy = lookup(scenario_key, variant)
    other = score_counts(compare_summary.counts, policy, compare_summary.duration_s, compare_summary.distance_m)
    delta = other.score - result.score
    if delta < 0:
        judgement = "better"
    elif delta > 0:
        judgement = "worse"
    else:
        judgement = "equal"
    changes = ", ".join(f"{t} {other.count(t) - result.count(t):+d}" for t in EVENT_TYPES)
    return (
        f"Compared run '{compare_summary.label}' scores {other.score:g} ({other.verdict}) "
        f"vs {result.score:g} ({result.verdict}): {judgement} by {abs(delta):g}. Count changes: {changes}."
    )


def _thresholds_text(result: ScoreResult) -> str:
    policy = lookup(result.policy_key, result.variant)
    if policy.variant == VARIANT_LIMITS:
        return ", ".join(f"{t}≤{limit}" for t, limit in policy.limits.items())
    return f"pass≤{policy.pass_max:g}, warn≤{policy.warn_max:g}"


def diagnose_rules(
    scenario_key: str | None,
    run_summary: RunSummary,
    compare_summary: RunSummary | None = None,
    variant: str | None = None,
) -> DiagnosisResult:
    """Deterministic diagnosis from the policy verdict and incident counts."""
    policy = lookup(scenario_key, variant)
    result = score_counts(run_summary.counts, policy, run_summary.duration_s, run_summary.distance_m)
    causes = _root_causes(result)

    summary = (
        f"{result.scenario_name}: {result.verdict} with score {result.score:g} "
        f"({_thresholds_text(result)}). Counts: {_counts_line(result.counts)} "
        f"over {run_summary.duration_s:.1f}s."
    )

    compare_insights = ""
    if compare_summary is not None:
        compare_insights = _compare_insights(scenario_key, result, compare_summary, variant)

    return DiagnosisResult(
        verdict=result.verdict,
        confidence=0.5 if causes == (ROOT_CAUSE_NONE,) else 0.6,
        operator_summary=summary,
        root_causes=causes,
        evidence=_evidence(run_summary, result),
        recommendations=RECOMMENDATIONS[policy.key],
        next_tests=NEXT_TESTS,
        compare_insights=compare_insights,
    )


def render_report(
    scenario_key: str | None,
    run_summary: RunSummary,
    variant: str | None = None,
) -> str:
    """Plain-text operator report of the rule-based diagnosis."""
    policy = lookup(scenario_key, variant)
    result = score_counts(run_summary.counts, policy, run_summary.duration_s, run_summary.distance_m)
    diagnosis = diagnose_rules(scenario_key, run_summary, variant=variant)
    weights = ", ".join(f"{t}={w:g}" for t, w in policy.weights.items())
    distance = "n/a" if run_summary.distance_m is None else f"{run_summary.distance_m:.1f}m"

    lines = [
        "SIMTRACE DIAGNOSIS",
        f"Scenario: {result.scenario_name}",
        f"Policy result: {result.verdict}",
        f"Counts: {_counts_line(result.counts)}, duration={run_summary.duration_s:.1f}s, distance={distance}",
        f"Thresholds: {_thresholds_text(result)} • Weights: {weights} • Score={result.score:g}",
        "",
        "Likely root cause:",
        *(f"- {cause}" for cause in diagnosis.root_causes),
        "",
        "Recommended fixes:",
        *(f"- {rec}" for rec in diagnosis.recommendations),
        "",
        "Next tests:",
        *(f"- {test}" for test in diagnosis.next_tests),
    ]
    return "\n".join(lines)
