"""
Model-backed diagnosis.

One request/response round trip per call, no retries. Outcomes:
  - DiagnosisResult                 reply parsed and matched the schema
  - BadModelJSON      (502)         reply was not the declared JSON shape
  - DiagnoseFailed    (upstream)    transport or service error

Callers that want a result regardless fall back to diagnose_rules().
"""

from __future__ import annotations

import logging
import time
from typing import Any

from backend.config import settings
from backend.services.llm_provider import get_transport
from backend.services.model_client import ModelTransport
from backend.services.prompt_builder import build_prompt, build_system
from engine.evaluation.diagnosis import (
    DIAGNOSIS_SCHEMA,
    BadModelJSON,
    DiagnoseFailed,
    parse_model_reply,
)
from engine.evaluation.types import DiagnosisResult, RunSummary

logger = logging.getLogger(__name__)

SummaryInput = RunSummary | dict[str, Any]


def error_status(exc: BaseException) -> int:
    """HTTP status carried by an SDK/transport exception, default 500."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 400 <= value <= 599:
            return value
    return 500


def error_message(exc: BaseException) -> str:
    """Best-effort human message: body.error.message, then .message, then str()."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
            return error["message"]
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


def _as_dict(summary: SummaryInput | None) -> dict[str, Any] | None:
    if summary is None:
        return None
    if isinstance(summary, RunSummary):
        return summary.to_dict()
    return summary


class ModelDiagnoser:
    """Delegates diagnosis to an external structured-output model."""

    def __init__(self, transport: ModelTransport | None = None, model: str | None = None):
        self.transport = transport
        self.model = model or settings.DIAGNOSE_MODEL

    def _transport(self) -> ModelTransport:
        if self.transport is None:
            self.transport = get_transport()
        return self.transport

    async def diagnose(
        self,
        scenario_key: str,
        run_summary: SummaryInput,
        compare_summary: SummaryInput | None = None,
    ) -> DiagnosisResult:
        """
        Diagnose one run, optionally against a comparison run.

        Raises:
            BadModelJSON: reply unparseable or off-schema (raw excerpt attached)
            DiagnoseFailed: transport/service error (upstream status attached)
        """
        transport = self._transport()
        system = build_system()
        prompt = build_prompt(scenario_key, _as_dict(run_summary), _as_dict(compare_summary))

        started = time.perf_counter()
        try:
            text = await transport.complete(
                system=system,
                prompt=prompt,
                schema=DIAGNOSIS_SCHEMA,
                model=self.model,
                max_tokens=settings.DIAGNOSE_MAX_TOKENS,
            )
        except Exception as exc:
            status = error_status(exc)
            logger.error("Diagnosis transport %s failed (status %s): %s", transport.name, status, exc)
            raise DiagnoseFailed(error_message(exc), status_code=status) from exc

        elapsed_ms = int((time.perf_counter() - started) * 1000)

        try:
            result = parse_model_reply(text)
        except BadModelJSON as exc:
            logger.warning(
                "Diagnosis model %s returned unusable JSON after %dms: %s", self.model, elapsed_ms, exc.details
            )
            raise

        logger.info(
            "Diagnosed scenario=%s via %s/%s in %dms: %s",
            scenario_key,
            transport.name,
            self.model,
            elapsed_ms,
            result.verdict,
        )
        return result


# Singleton instance
model_diagnoser = ModelDiagnoser()
