import logging
from datetime import timedelta

from backend.valveflow.errors import OFF_WITHOUT_OPEN, ON_WHILE_OPEN
from backend.valveflow.events import (
    IDLE,
    RUN_OPEN,
    RunReconstructor,
    check_program_window,
    reconstruct_runs,
)
from backend.valveflow.records import ValveRun

from conftest import at, valve_samples


def test_empty_stream_gives_no_runs():
    result = reconstruct_runs([])
    assert result.runs == []
    assert result.sequence_errors == []


def test_alternating_stream_emits_one_run_per_matched_off():
    events = []
    for i, valve in enumerate([1, 2, 3, 4]):
        start = i * 30
        events += [(start, valve), (start + 10, 0)]
    result = reconstruct_runs(valve_samples(*events))

    assert [r.valve_id for r in result.runs] == [1, 2, 3, 4]
    assert all(r.off_time > r.on_time for r in result.runs)
    assert all(r.duration_minutes == 10.0 for r in result.runs)
    assert result.sequence_errors == []


def test_off_sample_id_is_not_authoritative():
    result = reconstruct_runs(valve_samples((0, 7), (10, -3)))
    assert result.runs == [ValveRun(7, at(0), at(10))]


def test_on_after_on_reports_once_and_keeps_latest_valve(caplog):
    with caplog.at_level(logging.ERROR):
        result = reconstruct_runs(valve_samples((0, 3), (2, 7), (12, 0)))

    assert len(result.sequence_errors) == 1
    err = result.sequence_errors[0]
    assert err.kind == ON_WHILE_OPEN
    assert err.valve_id == 7
    assert err.open_valve == 3
    assert [r.valve_id for r in result.runs] == [7]
    assert result.runs[0].on_time == at(2)
    assert "out-of-sequence" in caplog.text


def test_off_without_open_run_reports_once_and_emits_nothing():
    result = reconstruct_runs(valve_samples((0, -1)))
    assert result.runs == []
    assert len(result.sequence_errors) == 1
    assert result.sequence_errors[0].kind == OFF_WITHOUT_OPEN


def test_trailing_open_run_is_dropped():
    result = reconstruct_runs(valve_samples((0, 2), (10, 0), (20, 4)))
    assert [r.valve_id for r in result.runs] == [2]
    assert result.sequence_errors == []


def test_short_runs_are_discarded():
    result = reconstruct_runs(valve_samples((0, 2), (3, 0), (10, 4), (20, 0)))
    assert [r.valve_id for r in result.runs] == [4]
    assert result.short_runs == 1


def test_min_run_minutes_override():
    result = reconstruct_runs(valve_samples((0, 2), (3, 0)), min_run_minutes=1)
    assert len(result.runs) == 1


def test_state_machine_transitions():
    machine = RunReconstructor()
    assert machine.state == IDLE
    machine.feed(valve_samples((0, 1))[0])
    assert machine.state == RUN_OPEN
    run = machine.feed(valve_samples((8, 0))[0])
    assert machine.state == IDLE
    assert run.valve_id == 1


def test_program_window_warning_is_soft():
    # T0 is 04:00 UTC; a 40 minute run starting at 19:00 breaks both rules
    events = valve_samples((15 * 60, 6), (15 * 60 + 40, 0))
    result = reconstruct_runs(events)
    assert len(result.runs) == 1
    assert len(result.program_warnings) == 1
    assert "outside 03:00-18:00" in result.program_warnings[0]
    assert "40.0 min" in result.program_warnings[0]


def test_program_window_accepts_normal_run(run_10min):
    assert check_program_window(run_10min) is None


def test_program_window_uses_local_zone(run_10min):
    # 04:00 UTC in July is 21:00 the previous evening in Los Angeles
    warning = check_program_window(run_10min, tz="America/Los_Angeles")
    assert "started at 21:00 PDT outside 03:00-18:00" in warning

    morning = ValveRun(5, run_10min.on_time + timedelta(hours=10),
                       run_10min.off_time + timedelta(hours=10))
    assert check_program_window(morning, tz="America/Los_Angeles") is None
    assert check_program_window(run_10min, tz="UTC") is None
