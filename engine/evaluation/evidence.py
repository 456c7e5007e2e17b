"""
SimTrace Evaluation — Evidence Summarizer

summarize(run) → RunSummary

Long event streams are reduced to head + tail samples so both the onset and
the resolution of a run survive. Order is preserved and nothing is
deduplicated.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from engine.evaluation.normalizer import finite, normalize_event
from engine.evaluation.scoring import event_counts
from engine.evaluation.types import EVENT_TYPES, Event, Run, RunSummary

MAX_EVIDENCE = 24
HEAD_SIZE = 12
TAIL_SIZE = 12


def sample_events(events: Sequence[Event]) -> tuple[Event, ...]:
    """Time-sorted events, cut to the first and last twelve when over 24."""
    ordered = sorted(events, key=lambda e: e.t)
    if len(ordered) <= MAX_EVIDENCE:
        return tuple(ordered)
    return tuple(ordered[:HEAD_SIZE] + ordered[-TAIL_SIZE:])


def summarize(run: Run) -> RunSummary:
    return RunSummary(
        label=run.label,
        duration_s=run.duration_s,
        distance_m=run.distance_m,
        counts=event_counts(run),
        evidence=sample_events(run.events),
        frame_count=len(run.frames),
        event_count=len(run.events),
    )


def summary_from_dict(raw: Any, label: str = "run") -> RunSummary:
    """
    Rebuild a RunSummary from its JSON form (as sent by a client).

    Tolerant like the run normalizer: bad evidence entries are dropped, bad
    numbers become zero (or None for distance). Evidence is re-sampled so a
    client cannot push more than 24 items downstream.
    """
    if not isinstance(raw, Mapping):
        return RunSummary(label=label, duration_s=0.0, distance_m=None, counts={}, evidence=(),
                          frame_count=0, event_count=0)

    raw_events = raw.get("evidence")
    events = [normalize_event(item) for item in raw_events] if isinstance(raw_events, list) else []
    evidence = [e for e in events if e is not None]

    counts: dict[str, int] = {}
    raw_counts = raw.get("counts")
    if isinstance(raw_counts, Mapping):
        for key, value in raw_counts.items():
            count = finite(value)
            if isinstance(key, str) and count is not None and count >= 0:
                counts[key] = int(count)
    for event_type in EVENT_TYPES:
        counts.setdefault(event_type, sum(1 for e in evidence if e.type == event_type))

    meta = raw.get("meta") if isinstance(raw.get("meta"), Mapping) else {}
    frame_count = finite(meta.get("frames"))
    event_count = finite(meta.get("events"))
    raw_label = raw.get("label")

    return RunSummary(
        label=raw_label if isinstance(raw_label, str) and raw_label else label,
        duration_s=finite(raw.get("duration_s")) or 0.0,
        distance_m=finite(raw.get("distance_m")),
        counts=counts,
        evidence=sample_events(evidence),
        frame_count=int(frame_count) if frame_count is not None else 0,
        event_count=int(event_count) if event_count is not None else len(evidence),
    )
