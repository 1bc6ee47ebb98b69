from datetime import timedelta

import pytest

from backend.valveflow.records import RunMetrics, TimeRange, ValveWindowStats
from backend.valveflow.scoring import score_window, score_windows, summarize_run_metrics


def _stats(valve_id, net, peak, stability=0.1):
    return ValveWindowStats(
        valve_id=valve_id, run_count=3,
        net_flow_increase_mean=net, net_flow_increase_std=0.0,
        valve_max_mean=peak, valve_max_std=0.0,
        flow_stability_mean=stability, flow_stability_std=0.0,
    )


def _metrics(valve_id, on_time, net, peak, stability):
    return RunMetrics(
        valve_id=valve_id, on_time=on_time,
        baseline_median=0.0, baseline_mean=0.0, baseline_std=0.0,
        valve_median=net, valve_mean=net, valve_max=peak, valve_std=0.0,
        net_flow_increase=net, flow_stability=stability, duration_minutes=10.0,
    )


def test_outlying_valve_gets_largest_positive_score():
    stats = {1: _stats(1, 1.0, 2.0), 2: _stats(2, 1.0, 2.0), 3: _stats(3, 10.0, 2.0)}
    scores = {s.valve_id: s for s in score_window(stats, "7d")}

    assert scores[3].flow_z_score > 0
    assert abs(scores[3].flow_z_score) > abs(scores[1].flow_z_score)
    assert abs(scores[3].flow_z_score) > abs(scores[2].flow_z_score)
    # population mean 4.0, population std sqrt(18)
    assert scores[3].flow_z_score == pytest.approx(6.0 / 18 ** 0.5)
    assert scores[1].flow_z_score == pytest.approx(-3.0 / 18 ** 0.5)
    assert scores[3].composite_score == pytest.approx(abs(scores[3].flow_z_score))
    assert all(s.window == "7d" for s in scores.values())


def test_flat_population_scores_zero():
    stats = {v: _stats(v, 1.0, 2.0) for v in (1, 2, 3)}
    for score in score_window(stats, "30d"):
        assert score.flow_z_score == 0.0
        assert score.max_flow_z_score == 0.0
        assert score.stability_z_score == 0.0
        assert score.composite_score == 0.0


def test_composite_is_worst_metric():
    stats = {1: _stats(1, 1.0, 2.0), 2: _stats(2, 1.0, 2.0), 3: _stats(3, 1.0, 9.0)}
    score = {s.valve_id: s for s in score_window(stats, "7d")}[3]
    assert score.flow_z_score == 0.0
    assert score.composite_score == pytest.approx(abs(score.max_flow_z_score))
    assert score.composite_score > 1.0


def test_indeterminate_stability_is_tolerated():
    stats = {
        1: _stats(1, 1.0, 2.0, stability=0.1),
        2: _stats(2, 2.0, 3.0, stability=0.3),
        3: _stats(3, 3.0, 4.0, stability=None),
    }
    scores = {s.valve_id: s for s in score_window(stats, "90d")}
    assert scores[3].stability_z_score is None
    assert scores[3].composite_score == pytest.approx(
        max(abs(scores[3].flow_z_score), abs(scores[3].max_flow_z_score))
    )
    assert scores[1].stability_z_score == pytest.approx(-1.0)
    assert scores[2].stability_z_score == pytest.approx(1.0)


def test_single_valve_and_empty_window():
    assert score_window({}, "7d") == []
    [only] = score_window({4: _stats(4, 2.0, 3.0)}, "7d")
    assert only.composite_score == 0.0


def test_summarize_groups_by_valve_within_range(t0):
    records = [
        _metrics(1, t0 - timedelta(days=1), 1.0, 2.0, 0.1),
        _metrics(1, t0 - timedelta(days=2), 3.0, 4.0, None),
        _metrics(2, t0 - timedelta(days=3), 5.0, 6.0, 0.2),
        _metrics(2, t0 - timedelta(days=20), 50.0, 60.0, 0.9),
    ]
    stats = summarize_run_metrics(records, TimeRange(t0 - timedelta(days=7), t0))

    assert sorted(stats) == [1, 2]
    assert stats[1].run_count == 2
    assert stats[1].net_flow_increase_mean == 2.0
    assert stats[1].net_flow_increase_std == 1.0
    assert stats[1].flow_stability_mean == pytest.approx(0.1)
    assert stats[2].run_count == 1
    assert stats[2].valve_max_mean == 6.0


def test_summarize_all_indeterminate_stability(t0):
    stats = summarize_run_metrics([_metrics(7, t0, 1.0, 1.0, None)])
    assert stats[7].flow_stability_mean is None
    assert stats[7].flow_stability_std is None


class StubMetricsStore:
    def __init__(self, stats):
        self.stats = stats
        self.ranges = []

    def query(self, time_range):
        self.ranges.append(time_range)
        return self.stats


def test_score_windows_queries_each_trailing_window(t0):
    store = StubMetricsStore({1: _stats(1, 1.0, 2.0), 2: _stats(2, 3.0, 2.0)})
    scores = score_windows(store, windows_days=[7, 30], now=t0)

    assert [r.start for r in store.ranges] == [t0 - timedelta(days=7), t0 - timedelta(days=30)]
    assert all(r.end == t0 for r in store.ranges)
    assert [s.window for s in scores] == ["7d", "7d", "30d", "30d"]
