"""Tests for the model-backed diagnoser, its transports, and the prompt."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from backend.config import settings
from backend.services import llm_provider
from backend.services.diagnoser import ModelDiagnoser, error_message, error_status
from backend.services.model_client import (
    DIAGNOSIS_TOOL_NAME,
    AnthropicTransport,
    MockTransport,
    MockTransportError,
    OpenAITransport,
)
from backend.services.prompt_builder import build_prompt, build_system
from engine.evaluation.diagnosis import DIAGNOSIS_SCHEMA, BadModelJSON, DiagnoseFailed
from engine.evaluation.evidence import summarize
from engine.evaluation.normalizer import normalize_run

RUN_SUMMARY = {
    "label": "baseline",
    "duration_s": 2.0,
    "distance_m": 12.5,
    "counts": {"near_collision": 2, "collision": 0, "stuck": 1, "replan": 0},
    "evidence": [{"t": 0.7, "type": "near_collision", "detail": "shelf edge"}],
    "meta": {"frames": 4, "events": 3},
}


class UpstreamError(Exception):
    """Shaped like an SDK APIStatusError."""

    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


# ── prompt ───────────────────────────────────────────────────────────────────


def test_system_instructions():
    system = build_system()
    assert "SimTrace Copilot" in system
    assert "specific + actionable" in system
    assert "Ground your claims in the events evidence and counts" in system
    assert 'set compare_insights to ""' in system


def test_prompt_carries_null_compare_summary():
    prompt = build_prompt("warehouse", RUN_SUMMARY, None)
    payload = json.loads(prompt.split("INPUT (JSON):\n", 1)[1].split("\n\nTASK:", 1)[0])
    assert payload == {"scenarioKey": "warehouse", "runSummary": RUN_SUMMARY, "compareSummary": None}
    assert prompt.endswith("Return a structured diagnosis.")


# ── outcomes ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_success_sends_schema_and_model():
    transport = MockTransport(reply="diagnosis_fail")
    diagnoser = ModelDiagnoser(transport=transport, model="test-model")

    result = await diagnoser.diagnose("warehouse", RUN_SUMMARY)

    assert result.verdict == "FAIL"
    assert len(result.evidence) == 3
    assert result.compare_insights == ""
    request = transport.requests[0]
    assert request["schema"] is DIAGNOSIS_SCHEMA
    assert request["model"] == "test-model"
    assert request["max_tokens"] == settings.DIAGNOSE_MAX_TOKENS
    assert "SimTrace Copilot" in request["system"]


@pytest.mark.asyncio
async def test_accepts_run_summary_objects():
    transport = MockTransport(reply="diagnosis_fail")
    summary = summarize(normalize_run({"id": "x", "events": [{"t": 1, "type": "stuck"}]}))

    await ModelDiagnoser(transport=transport).diagnose("sar", summary, summary)

    prompt = transport.requests[0]["prompt"]
    assert '"compareSummary": {' in prompt
    assert '"label": "x"' in prompt


@pytest.mark.asyncio
async def test_missing_compare_insights_normalized():
    transport = MockTransport(reply="diagnosis_no_compare_insights")
    result = await ModelDiagnoser(transport=transport).diagnose("warehouse", RUN_SUMMARY)
    assert result.compare_insights == ""
    assert result.verdict == "WARN"


@pytest.mark.asyncio
async def test_non_json_reply_is_bad_model_json(fixtures_dir):
    transport = MockTransport(reply="not_json")
    with pytest.raises(BadModelJSON) as exc_info:
        await ModelDiagnoser(transport=transport).diagnose("warehouse", RUN_SUMMARY)
    raw = (fixtures_dir / "replies" / "not_json.json").read_text()
    assert exc_info.value.raw == raw[:2000]


@pytest.mark.asyncio
async def test_off_schema_reply_is_bad_model_json():
    transport = MockTransport(reply="off_schema")
    with pytest.raises(BadModelJSON):
        await ModelDiagnoser(transport=transport).diagnose("warehouse", RUN_SUMMARY)


@pytest.mark.asyncio
async def test_transport_error_is_diagnose_failed():
    error = UpstreamError("overloaded", status_code=529, body={"error": {"message": "Overloaded"}})
    transport = MockTransport(error=error)

    with pytest.raises(DiagnoseFailed) as exc_info:
        await ModelDiagnoser(transport=transport).diagnose("warehouse", RUN_SUMMARY)

    assert exc_info.value.status_code == 529
    assert exc_info.value.details == "Overloaded"
    assert exc_info.value.__cause__ is error
    assert len(transport.requests) == 1  # no retry


@pytest.mark.asyncio
async def test_plain_exception_defaults_to_500():
    transport = MockTransport(error=RuntimeError("socket closed"))
    with pytest.raises(DiagnoseFailed) as exc_info:
        await ModelDiagnoser(transport=transport).diagnose("warehouse", RUN_SUMMARY)
    assert exc_info.value.status_code == 500
    assert exc_info.value.details == "socket closed"


@pytest.mark.asyncio
async def test_missing_mock_reply_is_diagnose_failed():
    transport = MockTransport(reply="does_not_exist")
    with pytest.raises(DiagnoseFailed):
        await ModelDiagnoser(transport=transport).diagnose("warehouse", RUN_SUMMARY)


# ── error extraction ─────────────────────────────────────────────────────────


def test_error_status():
    assert error_status(UpstreamError("x", status_code=429)) == 429
    assert error_status(SimpleNamespace(status=503)) == 503
    assert error_status(UpstreamError("x", status_code=200)) == 500
    assert error_status(ValueError("x")) == 500


def test_error_message_precedence():
    assert error_message(UpstreamError("outer", body={"error": {"message": "inner"}})) == "inner"
    assert error_message(UpstreamError("outer", body={"error": "flat"})) == "outer"
    assert error_message(ValueError("plain")) == "plain"
    assert error_message(ValueError()) == "ValueError"


# ── transports ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_anthropic_forces_diagnosis_tool():
    transport = AnthropicTransport("fake-key")
    block = SimpleNamespace(type="tool_use", name=DIAGNOSIS_TOOL_NAME, input={"verdict": "PASS"})
    with patch.object(transport.client.messages, "create", new=AsyncMock()) as mock:
        mock.return_value = SimpleNamespace(content=[block])
        text = await transport.complete(system="sys", prompt="p", schema=DIAGNOSIS_SCHEMA, model="m")

    assert json.loads(text) == {"verdict": "PASS"}
    kwargs = mock.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert kwargs["tool_choice"] == {"type": "tool", "name": DIAGNOSIS_TOOL_NAME}
    assert kwargs["tools"][0]["input_schema"] is DIAGNOSIS_SCHEMA


@pytest.mark.asyncio
async def test_anthropic_text_reply_passed_through():
    transport = AnthropicTransport("fake-key")
    blocks = [SimpleNamespace(type="text", text="not "), SimpleNamespace(type="text", text="json")]
    with patch.object(transport.client.messages, "create", new=AsyncMock()) as mock:
        mock.return_value = SimpleNamespace(content=blocks)
        text = await transport.complete(system="s", prompt="p", schema={}, model="m")
    assert text == "not json"


@pytest.mark.asyncio
async def test_openai_uses_json_schema_format():
    transport = OpenAITransport("fake-key")
    message = SimpleNamespace(content='{"verdict": "WARN"}')
    with patch.object(transport.client.chat.completions, "create", new=AsyncMock()) as mock:
        mock.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])
        text = await transport.complete(system="sys", prompt="p", schema=DIAGNOSIS_SCHEMA, model="gpt")

    assert text == '{"verdict": "WARN"}'
    kwargs = mock.call_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
    assert kwargs["response_format"]["json_schema"]["schema"] is DIAGNOSIS_SCHEMA


@pytest.mark.asyncio
async def test_mock_transport_error_status():
    transport = MockTransport(error=MockTransportError("boom", status_code=503))
    with pytest.raises(MockTransportError):
        await transport.complete(system="s", prompt="p", schema={}, model="m")


def test_mock_lists_replies():
    assert "diagnosis_fail" in MockTransport().list_replies()


# ── provider factory ─────────────────────────────────────────────────────────


def test_factory_mock_flag():
    with patch.object(settings, "USE_MOCK_LLM", True):
        assert isinstance(llm_provider.get_transport(), MockTransport)


def test_factory_anthropic():
    with (
        patch.object(settings, "USE_MOCK_LLM", False),
        patch.object(settings, "MODEL_PROVIDER", "anthropic"),
        patch.object(settings, "ANTHROPIC_API_KEY", "k"),
    ):
        assert isinstance(llm_provider.get_transport(), AnthropicTransport)


def test_factory_openai():
    with (
        patch.object(settings, "USE_MOCK_LLM", False),
        patch.object(settings, "MODEL_PROVIDER", "openai"),
        patch.object(settings, "OPENAI_API_KEY", "k"),
    ):
        assert isinstance(llm_provider.get_transport(), OpenAITransport)


def test_factory_falls_back_to_mock_without_key():
    with (
        patch.object(settings, "USE_MOCK_LLM", False),
        patch.object(settings, "MODEL_PROVIDER", "anthropic"),
        patch.object(settings, "ANTHROPIC_API_KEY", ""),
    ):
        assert isinstance(llm_provider.get_transport(), MockTransport)
