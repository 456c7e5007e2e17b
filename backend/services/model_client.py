"""
Structured-output model transports.

Each transport sends one request (system instructions, user prompt, output
JSON schema) and returns the model's raw reply text. Parsing and validation
of that text is not the transport's job.

  AnthropicTransport — forces a single tool call whose input_schema is the
                       output schema; the tool input is returned as JSON text
  OpenAITransport    — chat completions with a json_schema response format
  MockTransport      — returns fixture replies, no network
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import anthropic
import openai

logger = logging.getLogger(__name__)

REPLY_DIR = Path(__file__).parent.parent / "tests" / "fixtures" / "replies"

DIAGNOSIS_TOOL_NAME = "submit_diagnosis"


class ModelTransport:
    """Interface: one request/response round trip to a model service."""

    name = "base"

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        model: str,
        max_tokens: int = 4096,
    ) -> str:
        raise NotImplementedError


class AnthropicTransport(ModelTransport):
    """Anthropic Messages API with a forced diagnosis tool call."""

    name = "anthropic"

    def __init__(self, api_key: str, timeout: float = 60.0):
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        model: str,
        max_tokens: int = 4096,
    ) -> str:
        response = await self.client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
            tools=[
                {
                    "name": DIAGNOSIS_TOOL_NAME,
                    "description": "Return the structured diagnosis of the simulation run.",
                    "input_schema": schema,
                }
            ],
            tool_choice={"type": "tool", "name": DIAGNOSIS_TOOL_NAME},
        )

        text_parts: list[str] = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "tool_use" and block.name == DIAGNOSIS_TOOL_NAME:
                return json.dumps(block.input)
            if block_type == "text":
                text_parts.append(block.text)

        # No tool call: hand back whatever text came so the caller can report it
        return "".join(text_parts)


class OpenAITransport(ModelTransport):
    """OpenAI chat completions with a json_schema response format."""

    name = "openai"

    def __init__(self, api_key: str, timeout: float = 60.0):
        self.client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        model: str,
        max_tokens: int = 4096,
    ) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "diagnosis", "schema": schema},
            },
        )
        return response.choices[0].message.content or ""


class MockTransportError(Exception):
    """Simulated upstream failure raised by MockTransport."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class MockTransport(ModelTransport):
    """
    Returns a fixture reply verbatim.

    Used in tests and when no API key is configured. Every request is kept
    in `requests` so callers can inspect what would have been sent.
    """

    name = "mock"

    def __init__(self, reply: str = "diagnosis_fail", reply_dir: Path = REPLY_DIR, error: Exception | None = None):
        self.reply = reply
        self.reply_dir = reply_dir
        self.error = error
        self.requests: list[dict[str, Any]] = []

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        model: str,
        max_tokens: int = 4096,
    ) -> str:
        self.requests.append(
            {"system": system, "prompt": prompt, "schema": schema, "model": model, "max_tokens": max_tokens}
        )
        if self.error is not None:
            raise self.error

        path = self.reply_dir / f"{self.reply}.json"
        if not path.exists():
            raise MockTransportError(f"Mock reply not found: {path}", status_code=500)
        return path.read_text(encoding="utf-8")

    def list_replies(self) -> list[str]:
        """Return names of all available fixture replies."""
        return sorted(p.stem for p in self.reply_dir.glob("*.json"))
