"""
SimTrace Evaluation — Run Normalizer

Turns loosely-shaped run records into a canonical Run. Normalization never
raises: malformed frames and events are dropped, and input that is not a run
at all becomes the empty Run.

Frame position shapes, tried in order:
  direct      {"t": 0.1, "x": 1.0, "y": 2.0}
  nested_pos  {"t": 0.1, "pos": {"x": 1.0, "y": 2.0}}
  pair        {"t": 0.1, "p": [1.0, 2.0, ...]}
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from engine.evaluation.types import DEFAULT_DT, EVENT_TYPES, Event, Frame, Run, Stats

logger = logging.getLogger(__name__)

Point = tuple[float, float]


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def finite(value: Any) -> float | None:
    """Coerce to a finite float, or None. Booleans are not numbers here."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _point(x: Any, y: Any) -> Point | None:
    fx, fy = finite(x), finite(y)
    if fx is None or fy is None:
        return None
    return fx, fy


# ---------------------------------------------------------------------------
# Frame shapes
# ---------------------------------------------------------------------------


def _direct(raw: Mapping[str, Any]) -> Point | None:
    if "x" not in raw or "y" not in raw:
        return None
    return _point(raw["x"], raw["y"])


def _nested_pos(raw: Mapping[str, Any]) -> Point | None:
    pos = raw.get("pos")
    if not isinstance(pos, Mapping):
        return None
    return _point(pos.get("x"), pos.get("y"))


def _pair(raw: Mapping[str, Any]) -> Point | None:
    p = raw.get("p")
    if not isinstance(p, (list, tuple)) or len(p) < 2:
        return None
    return _point(p[0], p[1])


FRAME_SHAPES: tuple[tuple[str, Callable[[Mapping[str, Any]], Point | None]], ...] = (
    ("direct", _direct),
    ("nested_pos", _nested_pos),
    ("pair", _pair),
)


def extract_position(raw: Any) -> tuple[str, Point] | None:
    """
    Return (shape_name, (x, y)) for the first shape that matches,
    or None when the position is unextractable.
    """
    if not isinstance(raw, Mapping):
        return None
    for name, extract in FRAME_SHAPES:
        point = extract(raw)
        if point is not None:
            return name, point
    return None


def normalize_frame(raw: Any) -> Frame | None:
    if not isinstance(raw, Mapping):
        return None
    t = finite(raw.get("t"))
    if t is None:
        return None
    found = extract_position(raw)
    if found is None:
        return None
    _, (x, y) = found
    return Frame(t=t, x=x, y=y)


# ---------------------------------------------------------------------------
# Events and stats
# ---------------------------------------------------------------------------


def normalize_event(raw: Any) -> Event | None:
    if not isinstance(raw, Mapping):
        return None
    t = finite(raw.get("t"))
    if t is None:
        return None
    event_type = raw.get("type")
    if not isinstance(event_type, str) or not event_type.strip():
        return None
    detail = raw.get("detail")
    return Event(t=t, type=event_type.strip(), detail=detail if isinstance(detail, str) else "")


def _count(value: Any) -> int | None:
    number = finite(value)
    if number is None or number < 0:
        return None
    return int(number)


def normalize_stats(raw: Any) -> Stats | None:
    """
    Read producer-supplied aggregates.

    Per-type counts come from "<type>_count" keys or a nested "counts"
    mapping; the flat keys win when both are present.
    """
    if not isinstance(raw, Mapping):
        return None

    counts: dict[str, int] = {}
    nested = raw.get("counts")
    if isinstance(nested, Mapping):
        for key, value in nested.items():
            count = _count(value)
            if isinstance(key, str) and count is not None:
                counts[key] = count
    for event_type in EVENT_TYPES:
        count = _count(raw.get(f"{event_type}_count"))
        if count is not None:
            counts[event_type] = count

    return Stats(
        duration_s=finite(raw.get("duration_s")),
        distance_m=finite(raw.get("distance_m")),
        counts=counts,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_run(raw: Any, label: str | None = None) -> Run:
    """
    Build a canonical Run from an arbitrary record.

    Frames keep their input order. Events are sorted by time (stable, so
    simultaneous events keep their input order).
    """
    if not isinstance(raw, Mapping):
        return Run(label=label or "run")

    raw_frames = raw.get("frames")
    raw_events = raw.get("events")
    raw_frames = raw_frames if isinstance(raw_frames, list) else []
    raw_events = raw_events if isinstance(raw_events, list) else []

    frames = [f for f in (normalize_frame(item) for item in raw_frames) if f is not None]
    events = [e for e in (normalize_event(item) for item in raw_events) if e is not None]
    events.sort(key=lambda e: e.t)

    dropped_frames = len(raw_frames) - len(frames)
    dropped_events = len(raw_events) - len(events)
    if dropped_frames or dropped_events:
        logger.debug(
            "normalize_run: dropped %d frame(s) and %d event(s) from %r",
            dropped_frames,
            dropped_events,
            label or raw.get("id"),
        )

    if label is None:
        for key in ("id", "label", "name"):
            value = raw.get(key)
            if isinstance(value, str) and value:
                label = value
                break

    dt = finite(raw.get("dt"))

    return Run(
        label=label or "run",
        frames=tuple(frames),
        events=tuple(events),
        stats=normalize_stats(raw.get("stats")),
        dt=dt if dt is not None and dt > 0 else DEFAULT_DT,
    )


def load_run_file(path: Path, label: str | None = None) -> Run:
    """Read and normalize a JSON run file. Unreadable files give the empty run."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("load_run_file: could not read %s: %s", path, exc)
        return Run(label=label or Path(path).stem)
    return normalize_run(raw, label=label)
