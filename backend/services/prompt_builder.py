"""
Prompt builder for model-backed diagnosis.

System instructions come from backend/prompts/; the user prompt carries the
scenario key and run summaries as indented JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

# Cache loaded prompts in memory (they don't change at runtime)
_cache: dict[str, str] = {}


def _load(name: str) -> str:
    """Load and cache a prompt file."""
    if name not in _cache:
        path = PROMPTS_DIR / f"{name}.md"
        _cache[name] = path.read_text(encoding="utf-8").strip()
    return _cache[name]


def build_system() -> str:
    return _load("diagnose_system")


def build_prompt(
    scenario_key: str,
    run_summary: dict[str, Any],
    compare_summary: dict[str, Any] | None,
) -> str:
    """
    Build the user prompt.

    compareSummary is always present in the input object, as null when there
    is no comparison run.
    """
    prompt_obj = {
        "scenarioKey": scenario_key,
        "runSummary": run_summary,
        "compareSummary": compare_summary,
    }
    return f"INPUT (JSON):\n{json.dumps(prompt_obj, indent=2)}\n\nTASK:\nReturn a structured diagnosis."
