"""
pipeline.py — Batch Reconciliation and Scoring
===============================================

Stage 1 (reconcile_runs), once per scheduled invocation:
    valve events (lookback window) -> reconstruct runs
    -> per run: baseline / in-run flow windows -> RunMetrics -> flow gate
    -> write flow points (one batch) and run_metrics records (one batch)

Stage 2 (score_valves), independently:
    stored run_metrics history -> per-valve window stats
    -> population z-scores -> write anomaly_score records (one batch)

The two stages share nothing but the persisted run_metrics series.
Stores are passed in explicitly; nothing here holds a global client.

Failure policy:
    - Event source unavailable or empty: abort cleanly, write nothing.
    - Anything wrong with a single run: skip that run, keep going.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Sequence

from . import config
from .errors import BelowThresholdWarning, InsufficientDataError, SequenceError, SourceUnavailableError
from .events import reconstruct_runs
from .metrics import compute_run_metrics
from .records import (
    AnomalyScore,
    Point,
    RunMetrics,
    TimeRange,
    ValveRun,
    anomaly_point,
    flow_point,
    run_metrics_point,
)
from .run_filter import screen_run
from .scoring import score_windows
from .windowing import FlowWindowExtractor

logger = logging.getLogger("valveflow.pipeline")


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation batch."""

    runs: list[ValveRun] = field(default_factory=list)
    accepted: list[RunMetrics] = field(default_factory=list)
    flow_points: int = 0
    sequence_errors: list[SequenceError] = field(default_factory=list)
    insufficient: int = 0
    below_threshold: int = 0
    aborted: bool = False

    def summary(self) -> dict:
        return {
            "runs": len(self.runs),
            "accepted": len(self.accepted),
            "flow_points": self.flow_points,
            "sequence_errors": len(self.sequence_errors),
            "insufficient": self.insufficient,
            "below_threshold": self.below_threshold,
            "aborted": self.aborted,
        }


def reconcile_runs(event_source, flow_source, sink, *,
                   now: datetime = None,
                   lookback_hours: float = None,
                   baseline_minutes: float = None,
                   ramp_up_minutes: float = None,
                   min_run_minutes: float = None,
                   flow_increase_threshold: float = None) -> ReconcileReport:
    """
    Correlate valve runs in the lookback window with flow telemetry.

    Args:
        event_source: EventSource for controller events.
        flow_source: FlowSource for flow meter samples.
        sink: Sink receiving the flow and run_metrics batches.
        now: End of the lookback window. Defaults to current UTC time.
        lookback_hours / baseline_minutes / ramp_up_minutes /
        min_run_minutes / flow_increase_threshold: Override config defaults.

    Returns:
        ReconcileReport describing what was found, kept and skipped.
    """
    now = now or datetime.now(timezone.utc)
    lookback_hours = lookback_hours if lookback_hours is not None else config.LOOKBACK_HOURS
    report = ReconcileReport()

    window = TimeRange(now - timedelta(hours=lookback_hours), now)
    try:
        samples = event_source.query(window)
    except SourceUnavailableError as e:
        logger.warning(f"Valve event source unavailable, nothing written: {e}")
        report.aborted = True
        return report

    if not samples:
        logger.warning("No valve data to inspect")
        report.aborted = True
        return report

    reconstruction = reconstruct_runs(samples, min_run_minutes=min_run_minutes)
    report.runs = reconstruction.runs
    report.sequence_errors = reconstruction.sequence_errors

    extractor = FlowWindowExtractor(flow_source, baseline_minutes=baseline_minutes,
                                    ramp_up_minutes=ramp_up_minutes)
    flow_points: list[Point] = []

    for run in reconstruction.runs:
        try:
            baseline, in_run = extractor.extract(run)
            metrics = screen_run(compute_run_metrics(baseline, in_run, run),
                                 threshold=flow_increase_threshold)
        except InsufficientDataError as e:
            logger.info(f"Skipping run: {e}")
            report.insufficient += 1
            continue
        except BelowThresholdWarning as e:
            logger.warning(str(e))
            report.below_threshold += 1
            continue

        report.accepted.append(metrics)
        flow_points.extend(flow_point(s, run.valve_id, config.FLOW_SERIES) for s in in_run)
        logger.debug(f"valve {run.valve_id}: accepted, net increase "
                     f"{metrics.net_flow_increase:.3f}")

    if flow_points:
        sink.write(flow_points)
    if report.accepted:
        sink.write([run_metrics_point(m, config.RUN_METRICS_SERIES) for m in report.accepted])
    report.flow_points = len(flow_points)

    logger.info(f"Reconciled {len(report.runs)} runs: {len(report.accepted)} accepted, "
                f"{report.insufficient} insufficient, {report.below_threshold} below threshold, "
                f"{len(report.sequence_errors)} out-of-sequence")
    return report


def score_valves(metrics_store, sink, *, now: datetime = None,
                 windows_days: Sequence[int] = None) -> list[AnomalyScore]:
    """
    Score every valve against its peers and append the snapshot to the sink.

    Returns:
        The AnomalyScores written (empty if there was no history).
    """
    now = now or datetime.now(timezone.utc)
    scores = score_windows(metrics_store, windows_days=windows_days, now=now)
    if scores:
        sink.write([anomaly_point(s, config.ANOMALY_SERIES, now) for s in scores])
    flagged = [s for s in scores if s.composite_score >= config.ANOMALY_WARN_SCORE]
    logger.info(f"Wrote {len(scores)} anomaly scores ({len(flagged)} flagged)")
    return scores
