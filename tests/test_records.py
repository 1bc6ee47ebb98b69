from datetime import datetime, timezone

from backend.valveflow.records import (
    Point,
    RunMetrics,
    parse_flows,
    parse_timestamp,
    parse_valve_states,
    run_metrics_from_point,
    run_metrics_point,
    valve_tag,
)


def test_parse_timestamp_accepts_epoch_iso_and_naive():
    expected = datetime(2026, 7, 1, 4, 0, tzinfo=timezone.utc)
    assert parse_timestamp(expected.timestamp()) == expected
    assert parse_timestamp("2026-07-01T04:00:00Z") == expected
    assert parse_timestamp(datetime(2026, 7, 1, 4, 0)) == expected


def test_parse_rows_drops_malformed_rows(caplog):
    rows = [
        {"timestamp": "2026-07-01T04:00:00Z", "value": 5},
        {"timestamp": "not a time", "value": 5},
        {"value": -1},
    ]
    samples = parse_valve_states(rows)
    assert len(samples) == 1
    assert samples[0].valve_id == 5
    assert samples[0].is_on
    assert "Dropped 2 malformed valve rows" in caplog.text


def test_negative_flow_is_rejected():
    samples = parse_flows([
        {"timestamp": 0, "value": -0.5},
        {"timestamp": 1, "value": 1.5},
    ])
    assert [s.value for s in samples] == [1.5]


def test_valve_tag_is_zero_padded():
    assert valve_tag(5) == "05"
    assert valve_tag(12) == "12"


def test_run_metrics_point_omits_indeterminate_stability(t0):
    metrics = RunMetrics(
        valve_id=3, on_time=t0,
        baseline_median=0.0, baseline_mean=0.0, baseline_std=0.0,
        valve_median=0.0, valve_mean=0.0, valve_max=0.0, valve_std=0.0,
        net_flow_increase=0.0, flow_stability=None, duration_minutes=8.0,
    )
    point = run_metrics_point(metrics, "run_metrics")
    assert "flow_stability" not in point.fields
    assert point.tags == {"valve": "03"}
    assert point.timestamp == t0

    assert run_metrics_from_point(point) == metrics


def test_run_metrics_from_point_requires_core_fields(t0):
    point = Point("run_metrics", {"valve_median": 1.0}, {"valve": "01"}, t0)
    try:
        run_metrics_from_point(point)
    except ValueError as e:
        assert "missing" in str(e)
    else:
        raise AssertionError("expected ValueError")
