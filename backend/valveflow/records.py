"""
records.py — Typed Records at the Store Boundary
=================================================

Raw rows coming back from a store are parsed exactly once, here, into
frozen dataclasses.  Everything downstream works on these types and never
re-inspects a generic dict.

Raw row format (both valve events and flow telemetry):
    { "timestamp": epoch seconds | ISO-8601 string | datetime, "value": number }
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

logger = logging.getLogger("valveflow.records")


@dataclass(frozen=True)
class TimeRange:
    """Half-open time range [start, end)."""

    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


@dataclass(frozen=True)
class ValveStateSample:
    """Controller event: positive value = valve id turned on, <= 0 = off."""

    timestamp: datetime
    valve_id: int

    @property
    def is_on(self) -> bool:
        return self.valve_id > 0


@dataclass(frozen=True)
class FlowSample:
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class ValveRun:
    valve_id: int
    on_time: datetime
    off_time: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.off_time - self.on_time).total_seconds()

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0


@dataclass(frozen=True)
class RunMetrics:
    """
    Summary of one accepted valve run.

    flow_stability is None when valve_mean is zero (coefficient of
    variation is indeterminate).
    """

    valve_id: int
    on_time: datetime
    baseline_median: float
    baseline_mean: float
    baseline_std: float
    valve_median: float
    valve_mean: float
    valve_max: float
    valve_std: float
    net_flow_increase: float
    flow_stability: Optional[float]
    duration_minutes: float


@dataclass(frozen=True)
class ValveWindowStats:
    """Per-valve summary of RunMetrics history over one trailing window."""

    valve_id: int
    run_count: int
    net_flow_increase_mean: float
    net_flow_increase_std: float
    valve_max_mean: float
    valve_max_std: float
    flow_stability_mean: Optional[float] = None
    flow_stability_std: Optional[float] = None


@dataclass(frozen=True)
class AnomalyScore:
    valve_id: int
    window: str
    flow_z_score: float
    max_flow_z_score: float
    stability_z_score: Optional[float]
    composite_score: float


@dataclass
class Point:
    """One record for the output sink (series, value fields, tags, time)."""

    series: str
    fields: dict
    tags: dict = field(default_factory=dict)
    timestamp: Optional[datetime] = None


# ── Parsing ──────────────────────────────────────────────────────


def parse_timestamp(value) -> datetime:
    """
    Convert an epoch number, ISO-8601 string or datetime to an aware UTC datetime.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    elif isinstance(value, str):
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"unsupported timestamp {value!r}")

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def parse_valve_state(row: dict) -> ValveStateSample:
    value = float(row["value"])
    return ValveStateSample(parse_timestamp(row["timestamp"]), int(value))


def parse_flow(row: dict) -> FlowSample:
    value = float(row["value"])
    if value < 0:
        raise ValueError(f"negative flow rate {value}")
    return FlowSample(parse_timestamp(row["timestamp"]), value)


def _parse_rows(rows: Iterable[dict], parser, kind: str) -> list:
    samples = []
    dropped = 0
    for row in rows or []:
        try:
            samples.append(parser(row))
        except (KeyError, TypeError, ValueError) as e:
            dropped += 1
            logger.debug(f"Dropping malformed {kind} row {row!r}: {e}")
    if dropped:
        logger.warning(f"Dropped {dropped} malformed {kind} rows")
    return samples


def parse_valve_states(rows: Iterable[dict]) -> list[ValveStateSample]:
    """Parse raw controller rows, dropping malformed ones."""
    return _parse_rows(rows, parse_valve_state, "valve")


def parse_flows(rows: Iterable[dict]) -> list[FlowSample]:
    """Parse raw flow meter rows, dropping malformed ones."""
    return _parse_rows(rows, parse_flow, "flow")


def valve_tag(valve_id: int) -> str:
    """Render a valve id as the two-digit tag used in the output store."""
    return f"{valve_id:02d}"


# ── Sink points ──────────────────────────────────────────────────

_RUN_METRIC_FIELDS = [
    "baseline_median", "baseline_mean", "baseline_std",
    "valve_median", "valve_mean", "valve_max", "valve_std",
    "net_flow_increase", "flow_stability", "duration_minutes",
]


def _drop_none(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


def flow_point(sample: FlowSample, valve_id: int, series: str) -> Point:
    return Point(series, {"value": sample.value}, {"valve": valve_tag(valve_id)},
                 sample.timestamp)


def run_metrics_point(metrics: RunMetrics, series: str) -> Point:
    fields = _drop_none({name: getattr(metrics, name) for name in _RUN_METRIC_FIELDS})
    return Point(series, fields, {"valve": valve_tag(metrics.valve_id)}, metrics.on_time)


def run_metrics_from_point(point: Point) -> RunMetrics:
    """Rebuild a RunMetrics record from its stored point (missing stability -> None)."""
    values = {name: point.fields.get(name) for name in _RUN_METRIC_FIELDS}
    for name, value in values.items():
        if value is None and name != "flow_stability":
            raise ValueError(f"run_metrics point is missing {name}")
    return RunMetrics(
        valve_id=int(point.tags["valve"]),
        on_time=parse_timestamp(point.timestamp),
        **{k: (float(v) if v is not None else None) for k, v in values.items()},
    )


def anomaly_point(score: AnomalyScore, series: str, timestamp: datetime) -> Point:
    fields = _drop_none({
        "flow_z_score": score.flow_z_score,
        "max_flow_z_score": score.max_flow_z_score,
        "stability_z_score": score.stability_z_score,
        "composite_score": score.composite_score,
    })
    return Point(series, fields,
                 {"valve": valve_tag(score.valve_id), "window": score.window}, timestamp)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_millis(ts: datetime) -> int:
    """Whole milliseconds since the Unix epoch (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - _EPOCH) // timedelta(milliseconds=1)


def point_key(point: Point, written_at: datetime) -> str:
    """
    Identity of a point in its store: "<series>/<epoch ms>_<tag values>".

    Tag values are joined in tag-name order.  Points that share series,
    timestamp and tags get the same key, so writing one again replaces
    the earlier copy.  Points without a timestamp use written_at.
    """
    ts = point.timestamp or written_at
    parts = [str(epoch_millis(ts))] + [str(point.tags[k]) for k in sorted(point.tags)]
    return f"{point.series}/{'_'.join(parts)}"
