"""Run routes — index, scoring, summaries, comparison, text report."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import PlainTextResponse

from backend.config import settings
from backend.services.run_store import run_store
from engine.evaluation.compare import compare
from engine.evaluation.diagnosis import render_report
from engine.evaluation.evidence import summarize
from engine.evaluation.policies import DEFAULT_POLICY_KEY, available_policies
from engine.evaluation.scoring import score
from engine.evaluation.types import Run

router = APIRouter(prefix="/api", tags=["runs"])


def _load(run_id: str) -> Run:
    run = run_store.get(run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Run not found: {run_id}")
    return run


def _variant(variant: str | None) -> str:
    return variant or settings.POLICY_VARIANT


@router.get("/policies")
async def list_policies(variant: str | None = None) -> list[dict[str, Any]]:
    """Scenario policies for the scenario picker."""
    return [policy.to_dict() for policy in available_policies(_variant(variant))]


@router.get("/runs")
async def list_runs() -> dict[str, Any]:
    """The run index, as stored."""
    return {"runs": run_store.list_runs()}


@router.get("/runs/{run_id}")
async def get_run(run_id: str) -> dict[str, Any]:
    """One normalized run (malformed frames and events already dropped)."""
    return _load(run_id).to_dict()


@router.get("/runs/{run_id}/score")
async def get_score(run_id: str, scenario: str = DEFAULT_POLICY_KEY, variant: str | None = None) -> dict[str, Any]:
    return score(_load(run_id), scenario, _variant(variant)).to_dict()


@router.get("/runs/{run_id}/summary")
async def get_summary(run_id: str) -> dict[str, Any]:
    """Bounded summary, the shape POST /api/diagnose expects as runSummary."""
    return summarize(_load(run_id)).to_dict()


@router.get("/runs/{run_id}/compare/{other_id}")
async def get_compare(
    run_id: str,
    other_id: str,
    scenario: str = DEFAULT_POLICY_KEY,
    variant: str | None = None,
) -> dict[str, Any]:
    """Deltas are other - primary; better means the other run scored lower."""
    primary_run = _load(run_id)
    other_run = _load(other_id)
    primary = score(primary_run, scenario, _variant(variant))
    other = score(other_run, scenario, _variant(variant))
    return {
        "primary": primary.to_dict(),
        "other": other.to_dict(),
        "delta": compare(primary, other, primary_run, other_run).to_dict(),
    }


@router.get("/runs/{run_id}/report", response_class=PlainTextResponse)
async def get_report(run_id: str, scenario: str = DEFAULT_POLICY_KEY, variant: str | None = None) -> str:
    """Plain-text rule-based diagnosis report."""
    return render_report(scenario, summarize(_load(run_id)), _variant(variant))
