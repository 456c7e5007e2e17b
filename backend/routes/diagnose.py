"""Diagnosis routes — model-backed and rule-based."""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from backend.config import settings
from backend.models.diagnosis import DiagnoseRequest, DiagnosisOut
from backend.services.diagnoser import model_diagnoser
from engine.evaluation.diagnosis import DiagnosisError, diagnose_rules
from engine.evaluation.evidence import summary_from_dict

router = APIRouter(prefix="/api", tags=["diagnose"])


def _missing_input() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Missing scenarioKey or runSummary"},
    )


@router.post("/diagnose", response_model=DiagnosisOut)
async def diagnose(req: DiagnoseRequest):
    """
    Diagnose a run summary with the configured model.

    Errors come back as {"error", "details"} with the upstream status
    (diagnose_failed) or 502 plus a raw reply excerpt (bad_model_json).
    There is no automatic fallback; clients may call /api/diagnose/local.
    """
    if not req.scenarioKey or req.runSummary is None:
        return _missing_input()

    try:
        result = await model_diagnoser.diagnose(req.scenarioKey, req.runSummary, req.compareSummary)
    except DiagnosisError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    return result.to_dict()


@router.post("/diagnose/local", response_model=DiagnosisOut)
async def diagnose_local(req: DiagnoseRequest):
    """Rule-based diagnosis. Never calls out to a model and never fails on content."""
    if not req.scenarioKey or req.runSummary is None:
        return _missing_input()

    compare = summary_from_dict(req.compareSummary, label="compare") if req.compareSummary is not None else None
    result = diagnose_rules(
        req.scenarioKey,
        summary_from_dict(req.runSummary),
        compare,
        variant=settings.POLICY_VARIANT,
    )
    return result.to_dict()
