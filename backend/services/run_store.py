"""
Read-only access to recorded runs on disk.

Layout (same as the replay UI serves them):
  <RUNS_DIR>/index.json   {"runs": [{"id": "baseline", "file": "baseline.json", "label": "..."}]}
  <RUNS_DIR>/<file>       one JSON run record per file

Runs are never written. Files are re-read on every request.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from backend.config import settings
from engine.evaluation.normalizer import load_run_file
from engine.evaluation.types import Run

logger = logging.getLogger(__name__)


class RunStore:
    """Loads the run index and individual runs from a directory."""

    def __init__(self, runs_dir: Path | str | None = None):
        self.runs_dir = Path(runs_dir if runs_dir is not None else settings.RUNS_DIR)

    def list_runs(self) -> list[dict[str, Any]]:
        """
        Return index entries with at least "id" and "file".
        A missing or broken index gives an empty list.
        """
        path = self.runs_dir / "index.json"
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load run index %s: %s", path, exc)
            return []

        runs = data.get("runs") if isinstance(data, dict) else None
        if not isinstance(runs, list):
            return []
        return [
            entry
            for entry in runs
            if isinstance(entry, dict) and isinstance(entry.get("id"), str) and isinstance(entry.get("file"), str)
        ]

    def get(self, run_id: str) -> Run | None:
        """Load and normalize one run by index id, or None if it is not indexed."""
        entry = next((e for e in self.list_runs() if e["id"] == run_id), None)
        if entry is None:
            return None

        path = (self.runs_dir / entry["file"]).resolve()
        if self.runs_dir.resolve() not in path.parents:
            logger.warning("Run %s points outside the runs directory: %s", run_id, entry["file"])
            return None

        return load_run_file(path, label=entry.get("label") or run_id)


# Singleton instance
run_store = RunStore()
