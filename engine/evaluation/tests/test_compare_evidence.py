"""
SimTrace Evaluation — Comparison & Evidence Tests

Comparison: deltas are other - primary, lower score is better, distance
delta is None when either run lacks a distance stat.

Evidence: ≤ 24 events pass through in time order; more are cut to the 12
earliest + 12 latest, without reordering or deduplication.
"""

import pytest

from engine.evaluation.compare import PolicyMismatchError, compare
from engine.evaluation.evidence import MAX_EVIDENCE, sample_events, summarize, summary_from_dict
from engine.evaluation.normalizer import normalize_run
from engine.evaluation.scoring import score
from engine.evaluation.types import VARIANT_LIMITS, Event

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def run_a():
    return normalize_run(
        {
            "id": "a",
            "frames": [{"t": 0, "x": 0, "y": 0}, {"t": 20, "x": 5, "y": 5}],
            "events": [
                {"t": 3, "type": "near_collision"},
                {"t": 7, "type": "near_collision"},
                {"t": 12, "type": "stuck"},
            ],
            "stats": {"distance_m": 30.0},
        }
    )


@pytest.fixture
def run_b():
    return normalize_run(
        {
            "id": "b",
            "frames": [{"t": 0, "x": 0, "y": 0}, {"t": 18.5, "x": 5, "y": 5}],
            "events": [{"t": 9, "type": "collision"}],
            "stats": {"distance_m": 27.25},
        }
    )


def many_events(n):
    # Reverse order on input so sorting is exercised
    return [Event(t=float(i), type="replan", detail=str(i)) for i in reversed(range(n))]


# ============================================================================
# Comparison
# ============================================================================


class TestCompare:
    def test_example_a_then_b(self, run_a, run_b):
        score_a = score(run_a, "warehouse")
        score_b = score(run_b, "warehouse")
        delta = compare(score_a, score_b, run_a, run_b)

        assert delta.score == -4
        assert delta.counts["near_collision"] == -2
        assert delta.counts["stuck"] == -1
        assert delta.counts["collision"] == 1
        assert delta.better is True
        assert delta.equal is False

    def test_signs_are_other_minus_primary(self, run_a, run_b):
        delta = compare(score(run_a, "warehouse"), score(run_b, "warehouse"), run_a, run_b)
        assert delta.duration_s == -1.5
        assert delta.distance_m == -2.8  # rounded to 0.1

    def test_reverse_direction_is_worse(self, run_a, run_b):
        delta = compare(score(run_b, "warehouse"), score(run_a, "warehouse"), run_b, run_a)
        assert delta.score == 4
        assert delta.better is False
        assert delta.equal is False

    def test_self_compare_is_all_zero(self, run_a):
        result = score(run_a, "delivery")
        delta = compare(result, result, run_a, run_a)
        assert delta.score == 0
        assert all(v == 0 for v in delta.counts.values())
        assert delta.duration_s == 0
        assert delta.distance_m == 0
        assert delta.equal is True
        assert delta.better is False

    def test_distance_none_when_either_missing(self, run_a):
        no_stats = normalize_run({"frames": [{"t": 0, "x": 0, "y": 0}]})
        for primary, other in ((run_a, no_stats), (no_stats, run_a), (no_stats, no_stats)):
            delta = compare(score(primary, "sar"), score(other, "sar"), primary, other)
            assert delta.distance_m is None

    def test_cross_policy_rejected(self, run_a, run_b):
        with pytest.raises(PolicyMismatchError):
            compare(score(run_a, "warehouse"), score(run_b, "sar"), run_a, run_b)

    def test_cross_variant_rejected(self, run_a, run_b):
        with pytest.raises(ValueError):
            compare(score(run_a, "warehouse"), score(run_b, "warehouse", VARIANT_LIMITS), run_a, run_b)


# ============================================================================
# Evidence
# ============================================================================


class TestSampleEvents:
    @pytest.mark.parametrize("n", [0, 1, 23, 24])
    def test_small_sets_are_full_sorted_list(self, n):
        events = many_events(n)
        assert list(sample_events(events)) == sorted(events, key=lambda e: e.t)

    @pytest.mark.parametrize("n", [25, 60])
    def test_large_sets_head_and_tail(self, n):
        sampled = sample_events(many_events(n))
        assert len(sampled) == MAX_EVIDENCE
        assert [e.t for e in sampled[:12]] == [float(i) for i in range(12)]
        assert [e.t for e in sampled[12:]] == [float(i) for i in range(n - 12, n)]

    def test_duplicates_kept(self):
        events = [Event(t=1.0, type="stuck")] * 3
        assert len(sample_events(events)) == 3


class TestSummarize:
    def test_summary_fields(self, run_a):
        summary = summarize(run_a)
        assert summary.label == "a"
        assert summary.duration_s == 20
        assert summary.distance_m == 30.0
        assert summary.counts["near_collision"] == 2
        assert summary.frame_count == 2
        assert summary.event_count == 3
        assert [e.t for e in summary.evidence] == [3.0, 7.0, 12.0]

    def test_long_run_is_bounded(self):
        raw = {"events": [{"t": i, "type": "replan"} for i in range(40)]}
        summary = summarize(normalize_run(raw))
        assert len(summary.evidence) == 24
        assert summary.event_count == 40
        assert summary.counts["replan"] == 40

    def test_to_dict_shape(self, run_b):
        data = summarize(run_b).to_dict()
        assert set(data) == {"label", "duration_s", "distance_m", "counts", "evidence", "meta"}
        assert data["evidence"] == [{"t": 9.0, "type": "collision", "detail": ""}]
        assert data["meta"] == {"frames": 2, "events": 1}


class TestSummaryFromDict:
    def test_round_trip(self, run_a):
        summary = summarize(run_a)
        assert summary_from_dict(summary.to_dict()) == summary

    def test_tolerates_garbage(self):
        summary = summary_from_dict({"counts": {"stuck": "x", "replan": 2}, "evidence": [1, {"t": 2, "type": "stuck"}]})
        assert summary.counts["replan"] == 2
        assert summary.counts["stuck"] == 1  # counted from evidence
        assert summary.duration_s == 0.0
        assert summary.distance_m is None
        assert len(summary.evidence) == 1

    def test_not_a_mapping(self):
        summary = summary_from_dict("nope", label="x")
        assert summary.label == "x"
        assert summary.evidence == ()

    def test_oversized_evidence_resampled(self):
        raw = {"evidence": [{"t": i, "type": "replan"} for i in range(100)]}
        assert len(summary_from_dict(raw).evidence) == 24
