"""
Pytest configuration and fixtures for SimTrace backend tests.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

from backend.main import app
from backend.services.diagnoser import model_diagnoser
from backend.services.model_client import MockTransport
from backend.services.run_store import RunStore

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def fixture_store() -> RunStore:
    """Run store over the recorded fixture runs."""
    return RunStore(FIXTURES / "runs")


@pytest.fixture
def mock_transport():
    """Route the shared diagnoser through a mock transport for one test."""
    transport = MockTransport(reply="diagnosis_fail")
    with patch.object(model_diagnoser, "transport", transport):
        yield transport


@pytest_asyncio.fixture
async def async_client(fixture_store):
    """Async HTTP client against the ASGI app, reading fixture runs."""
    with patch("backend.routes.runs.run_store", fixture_store):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client
