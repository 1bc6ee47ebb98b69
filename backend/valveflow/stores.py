"""
stores.py — Store Interfaces and In-Memory Store
=================================================

The pipeline never talks to a database directly.  It is handed objects
satisfying these interfaces:

    EventSource.query(TimeRange)  -> list[ValveStateSample]  (time ordered)
    FlowSource.query(TimeRange)   -> list[FlowSample]        (time ordered)
    MetricsStore.query(TimeRange) -> {valve_id: ValveWindowStats}
    Sink.write(list[Point])       -> None                    (keyed upsert)

All query ranges are half-open [start, end).  Failures are reported as
SourceUnavailableError.

InMemoryStore implements all four over plain lists.  It backs the test
suite and the HTTP service when no Firebase credentials are configured.
Sink writes are keyed the same way FirebaseStore keys them (point_key),
so a point written twice is stored once.
"""

import bisect
import logging
from datetime import datetime, timezone
from typing import Iterable, Protocol

from . import config
from .records import (
    FlowSample,
    Point,
    TimeRange,
    ValveStateSample,
    ValveWindowStats,
    parse_flows,
    parse_valve_states,
    point_key,
    run_metrics_from_point,
)
from .scoring import summarize_run_metrics

logger = logging.getLogger("valveflow.stores")


class EventSource(Protocol):
    def query(self, time_range: TimeRange) -> list[ValveStateSample]: ...


class FlowSource(Protocol):
    def query(self, time_range: TimeRange) -> list[FlowSample]: ...


class MetricsStore(Protocol):
    def query(self, time_range: TimeRange) -> dict[int, ValveWindowStats]: ...


class Sink(Protocol):
    def write(self, points: list[Point]) -> None: ...


def _slice(samples: list, time_range: TimeRange) -> list:
    times = [s.timestamp for s in samples]
    lo = bisect.bisect_left(times, time_range.start)
    hi = bisect.bisect_left(times, time_range.end)
    return samples[lo:hi]


class _SampleView:
    """Time-range view over one sorted sample list."""

    def __init__(self, samples: list):
        self._samples = samples

    def query(self, time_range: TimeRange) -> list:
        return _slice(self._samples, time_range)


class _MetricsView:
    def __init__(self, store: "InMemoryStore"):
        self._store = store

    def query(self, time_range: TimeRange) -> dict[int, ValveWindowStats]:
        points = self._store.points(config.RUN_METRICS_SERIES)
        return summarize_run_metrics(
            (run_metrics_from_point(p) for p in points), time_range
        )


class InMemoryStore:
    """
    List-backed store exposing events, flow, metrics and sink views.

    Usage:
        store = InMemoryStore()
        store.add_valve_rows([{"timestamp": ..., "value": 5}, ...])
        store.add_flow_rows([{"timestamp": ..., "value": 2.0}, ...])
        reconcile_runs(store.events, store.flow, store, ...)
    """

    def __init__(self):
        self._valves: list[ValveStateSample] = []
        self._flow: list[FlowSample] = []
        self._series: dict[str, dict[str, Point]] = {}
        self.write_calls = 0
        self.events = _SampleView(self._valves)
        self.flow = _SampleView(self._flow)
        self.metrics = _MetricsView(self)

    def add_valve_rows(self, rows: Iterable[dict]) -> None:
        self._valves.extend(parse_valve_states(rows))
        self._valves.sort(key=lambda s: s.timestamp)

    def add_flow_rows(self, rows: Iterable[dict]) -> None:
        self._flow.extend(parse_flows(rows))
        self._flow.sort(key=lambda s: s.timestamp)

    def write(self, points: list[Point]) -> None:
        self.write_calls += 1
        written_at = datetime.now(timezone.utc)
        for point in points:
            self._series.setdefault(point.series, {})[point_key(point, written_at)] = point
        logger.debug(f"Stored {len(points)} points")

    def points(self, series: str) -> list[Point]:
        return list(self._series.get(series, {}).values())
