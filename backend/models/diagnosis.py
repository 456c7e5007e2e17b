"""Diagnosis request/response models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class DiagnoseRequest(BaseModel):
    """What the client sends to POST /api/diagnose and /api/diagnose/local."""

    scenarioKey: str | None = None
    runSummary: dict[str, Any] | None = None
    compareSummary: dict[str, Any] | None = None


class EvidenceOut(BaseModel):
    model_config = {"extra": "forbid"}

    t: float
    type: str
    why_it_matters: str


class DiagnosisOut(BaseModel):
    """What the diagnose endpoints return on success."""

    model_config = {"extra": "forbid"}

    verdict: Literal["PASS", "WARN", "FAIL"]
    confidence: float = Field(ge=0, le=1)
    operator_summary: str
    root_causes: list[str] = Field(min_length=1, max_length=6)
    evidence: list[EvidenceOut] = Field(min_length=2, max_length=10)
    recommendations: list[str] = Field(min_length=3, max_length=10)
    next_tests: list[str] = Field(min_length=2, max_length=8)
    compare_insights: str = ""


class ErrorOut(BaseModel):
    """Error body: bad_model_json carries a raw excerpt, diagnose_failed does not."""

    error: str
    details: str | None = None
    raw: str | None = None
