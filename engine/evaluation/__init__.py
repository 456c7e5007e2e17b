"""
SimTrace Evaluation — the pure engine.

Components:
  normalizer  — raw run record → Run  (never raises)
  policies    — read-only scenario policy registry
  scoring     — (Run, policy key) → ScoreResult
  compare     — two ScoreResults → DeltaResult
  evidence    — Run → RunSummary (bounded, time-ordered evidence)
  diagnosis   — rule-based diagnosis + model reply contract
"""

from engine.evaluation.compare import PolicyMismatchError, compare
from engine.evaluation.diagnosis import (
    DIAGNOSIS_SCHEMA,
    BadModelJSON,
    DiagnoseFailed,
    DiagnosisError,
    diagnose_rules,
    parse_model_reply,
    render_report,
)
from engine.evaluation.evidence import summarize, summary_from_dict
from engine.evaluation.normalizer import load_run_file, normalize_run
from engine.evaluation.policies import available_policies, lookup
from engine.evaluation.scoring import score

__all__ = [
    "normalize_run",
    "load_run_file",
    "lookup",
    "available_policies",
    "score",
    "compare",
    "PolicyMismatchError",
    "summarize",
    "summary_from_dict",
    "diagnose_rules",
    "parse_model_reply",
    "render_report",
    "DIAGNOSIS_SCHEMA",
    "DiagnosisError",
    "BadModelJSON",
    "DiagnoseFailed",
]
