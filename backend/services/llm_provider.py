"""
Model transport factory.

Returns MockTransport when USE_MOCK_LLM=true (tests / offline demos)
or the configured provider's transport when its API key is available.
"""

from __future__ import annotations

import logging

from backend.config import settings
from backend.services.model_client import AnthropicTransport, MockTransport, ModelTransport, OpenAITransport

logger = logging.getLogger(__name__)


def get_transport() -> ModelTransport:
    """
    Return the configured model transport.

    - USE_MOCK_LLM=true                        → MockTransport (fixture replies)
    - MODEL_PROVIDER=openai + OPENAI_API_KEY   → OpenAITransport
    - ANTHROPIC_API_KEY available              → AnthropicTransport
    - default                                  → MockTransport (fallback)
    """
    if settings.USE_MOCK_LLM:
        return MockTransport(reply=settings.MOCK_REPLY)

    provider = settings.MODEL_PROVIDER.lower()
    if provider == "openai" and settings.OPENAI_API_KEY:
        return OpenAITransport(api_key=settings.OPENAI_API_KEY, timeout=settings.DIAGNOSE_TIMEOUT_S)

    if provider == "anthropic" and settings.ANTHROPIC_API_KEY:
        return AnthropicTransport(api_key=settings.ANTHROPIC_API_KEY, timeout=settings.DIAGNOSE_TIMEOUT_S)

    logger.warning("No API key for model provider %r; using mock transport", provider)
    return MockTransport(reply=settings.MOCK_REPLY)
