"""
run_filter.py — Genuine-Flow Gate
=================================

A run is kept only if it raised the median flow above baseline by more
than FLOW_INCREASE_THRESHOLD.  A run with no detectable increase (stuck
valve, broken solenoid, or household usage masking the zone) is evidence
of a problem and must not be averaged into the valve's history.
"""

from . import config
from .errors import BelowThresholdWarning
from .records import RunMetrics


def screen_run(metrics: RunMetrics, threshold: float = None) -> RunMetrics:
    """
    Pass a run's metrics through the flow-increase gate.

    Args:
        metrics: RunMetrics of the candidate run.
        threshold: Minimum net flow increase. Defaults to
            config.FLOW_INCREASE_THRESHOLD (0.1).

    Returns:
        The same metrics, if accepted.

    Raises:
        BelowThresholdWarning: If net_flow_increase <= threshold.
    """
    threshold = threshold if threshold is not None else config.FLOW_INCREASE_THRESHOLD
    if metrics.net_flow_increase > threshold:
        return metrics
    raise BelowThresholdWarning(
        f"valve {metrics.valve_id}: flow increase {metrics.net_flow_increase:.3f} "
        f"<= {threshold} at {metrics.on_time.isoformat()}, "
        f"possible malfunction or background usage"
    )
