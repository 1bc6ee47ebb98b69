"""
metrics.py — Per-Run Flow Metrics
=================================

Reduces the baseline and in-run flow windows of one valve run into a
RunMetrics record.

Output fields (per run):
    baseline_median / baseline_mean / baseline_std
                      — background flow before the valve opened
    valve_median / valve_mean / valve_max / valve_std
                      — flow while the valve was open (after ramp-up,
                        spikes removed)
    net_flow_increase — valve_median - baseline_median; the flow the
                        valve itself is responsible for
    flow_stability    — valve_std / valve_mean (coefficient of variation);
                        a drifting or sputtering head shows up here first.
                        None when valve_mean is 0.
    duration_minutes  — off_time - on_time

Pure and deterministic: identical inputs give bit-identical output.
"""

import logging
from typing import Sequence

import numpy as np

from .preprocessing import lower_median
from .records import FlowSample, RunMetrics, ValveRun

logger = logging.getLogger("valveflow.metrics")


def _values(samples: Sequence[FlowSample]) -> np.ndarray:
    return np.array([s.value for s in samples], dtype=np.float64)


def compute_run_metrics(baseline: Sequence[FlowSample],
                        in_run: Sequence[FlowSample],
                        run: ValveRun) -> RunMetrics:
    """
    Compute summary statistics for one valve run.

    Args:
        baseline: Flow samples from the pre-run baseline window.
        in_run: Spike-filtered flow samples from the in-run window.
        run: The ValveRun being summarized.

    Returns:
        RunMetrics for the run.

    Raises:
        ValueError: If either window is empty.
    """
    if not baseline or not in_run:
        raise ValueError("both baseline and in-run samples are required")

    base = _values(baseline)
    flow = _values(in_run)

    baseline_median = lower_median(base)
    valve_median = lower_median(flow)
    valve_mean = float(flow.mean())
    valve_std = float(flow.std(ddof=0))

    # Coefficient of variation is undefined for a zero-flow run
    flow_stability = valve_std / valve_mean if valve_mean != 0 else None

    metrics = RunMetrics(
        valve_id=run.valve_id,
        on_time=run.on_time,
        baseline_median=baseline_median,
        baseline_mean=float(base.mean()),
        baseline_std=float(base.std(ddof=0)),
        valve_median=valve_median,
        valve_mean=valve_mean,
        valve_max=float(flow.max()),
        valve_std=valve_std,
        net_flow_increase=valve_median - baseline_median,
        flow_stability=flow_stability,
        duration_minutes=run.duration_minutes,
    )

    logger.debug(f"valve {run.valve_id}: metrics {metrics}")
    return metrics
