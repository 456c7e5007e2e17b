"""
SimTrace configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings from environment variables."""

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    CORS_ORIGINS: str = os.environ.get("CORS_ORIGINS", "*")

    # Transport limits
    MAX_REQUEST_BYTES: int = int(os.environ.get("MAX_REQUEST_BYTES", str(2 * 1024 * 1024)))  # 2MB

    # Runs (read-only recordings, index.json + one file per run)
    RUNS_DIR: str = os.environ.get("RUNS_DIR", "runs")

    # Scoring: "threshold" (weighted score bands) or "limits" (per-type limits)
    POLICY_VARIANT: str = os.environ.get("POLICY_VARIANT", "threshold")

    # AI Providers
    MODEL_PROVIDER: str = os.environ.get("MODEL_PROVIDER", "anthropic")
    ANTHROPIC_API_KEY: str = os.environ.get("ANTHROPIC_API_KEY", "")
    OPENAI_API_KEY: str = os.environ.get("OPENAI_API_KEY", "")

    # Diagnosis model
    DIAGNOSE_MODEL: str = os.environ.get("DIAGNOSE_MODEL", "claude-sonnet-4-20250514")
    DIAGNOSE_MAX_TOKENS: int = int(os.environ.get("DIAGNOSE_MAX_TOKENS", "4096"))
    DIAGNOSE_TIMEOUT_S: float = float(os.environ.get("DIAGNOSE_TIMEOUT_S", "60"))

    # Mock model (tests / offline demos)
    USE_MOCK_LLM: bool = _flag("USE_MOCK_LLM")
    MOCK_REPLY: str = os.environ.get("MOCK_REPLY", "diagnosis_fail")


# Singleton instance
settings = Settings()
