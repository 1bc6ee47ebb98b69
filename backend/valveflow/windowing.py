"""
windowing.py — Baseline and In-Run Flow Windows
================================================

For each valve run, cuts two time windows out of the single flow meter
stream:

    baseline  [on_time - BASELINE_MINUTES, on_time)
    in-run    [on_time + RAMP_UP_MINUTES, off_time)

The baseline estimates background usage (house taps, a leaking toilet)
that is unrelated to the valve.  The in-run window skips the ramp-up,
while the pipe is filling and the meter reads a transient surge, and is
then passed through median-centered spike rejection.

Both windows are time-range queries against the same FlowSource; any
failure or empty result raises InsufficientDataError and the caller
skips the run.
"""

import logging
from datetime import timedelta

from . import config
from .errors import InsufficientDataError, SourceUnavailableError
from .preprocessing import reject_outliers
from .records import FlowSample, TimeRange, ValveRun

logger = logging.getLogger("valveflow.windowing")


class FlowWindowExtractor:
    """
    Extracts (baseline, in-run) flow sample windows for valve runs.

    Attributes:
        flow_source: FlowSource queried for each window.
        baseline (timedelta): Length of the pre-run baseline window.
        ramp_up (timedelta): Start-of-run interval excluded from analysis.
    """

    def __init__(self, flow_source, baseline_minutes: float = None,
                 ramp_up_minutes: float = None, std_multiplier: float = None):
        """
        Args:
            flow_source: Object with query(TimeRange) -> list[FlowSample].
            baseline_minutes: Defaults to config.BASELINE_MINUTES (5).
            ramp_up_minutes: Defaults to config.RAMP_UP_MINUTES (2).
            std_multiplier: Spike fence width. Defaults to config (3).
        """
        self.flow_source = flow_source
        baseline_minutes = (baseline_minutes if baseline_minutes is not None
                            else config.BASELINE_MINUTES)
        ramp_up_minutes = (ramp_up_minutes if ramp_up_minutes is not None
                           else config.RAMP_UP_MINUTES)
        self.baseline = timedelta(minutes=baseline_minutes)
        self.ramp_up = timedelta(minutes=ramp_up_minutes)
        self.std_multiplier = std_multiplier

    def baseline_range(self, run: ValveRun) -> TimeRange:
        return TimeRange(run.on_time - self.baseline, run.on_time)

    def in_run_range(self, run: ValveRun) -> TimeRange:
        """
        Raises:
            InsufficientDataError: If the ramp-up consumes the whole run.
        """
        start = run.on_time + self.ramp_up
        if start >= run.off_time:
            raise InsufficientDataError(
                f"valve {run.valve_id}: run of {run.duration_minutes:.1f} min "
                f"is consumed by {self.ramp_up.total_seconds() / 60:.1f} min ramp-up"
            )
        return TimeRange(start, run.off_time)

    def _query(self, run: ValveRun, time_range: TimeRange, label: str) -> list[FlowSample]:
        try:
            samples = self.flow_source.query(time_range) or []
        except SourceUnavailableError as e:
            raise InsufficientDataError(
                f"valve {run.valve_id}: {label} flow query failed: {e}"
            ) from e

        samples = [s for s in samples if time_range.contains(s.timestamp)]
        if not samples:
            raise InsufficientDataError(
                f"valve {run.valve_id}: no {label} flow samples in "
                f"[{time_range.start.isoformat()}, {time_range.end.isoformat()})"
            )
        return samples

    def extract(self, run: ValveRun) -> tuple[list[FlowSample], list[FlowSample]]:
        """
        Fetch the baseline and spike-filtered in-run windows for one run.

        Returns:
            (baseline_samples, in_run_samples)

        Raises:
            InsufficientDataError: Empty window, ramp-up longer than the run,
                or the flow source failed for this run.
        """
        in_run_range = self.in_run_range(run)
        baseline = self._query(run, self.baseline_range(run), "baseline")
        in_run = self._query(run, in_run_range, "in-run")

        in_run = reject_outliers(in_run, std_multiplier=self.std_multiplier)

        logger.debug(f"valve {run.valve_id}: {len(baseline)} baseline / "
                     f"{len(in_run)} in-run samples")
        return baseline, in_run
