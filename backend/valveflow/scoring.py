"""
scoring.py — Population-Relative Valve Anomaly Scores
======================================================

Two-stage normalization over the stored RunMetrics history:

1. Per valve, per trailing window (7d / 30d / 90d): mean and std of
   net_flow_increase, valve_max and flow_stability.  This describes how
   the valve behaves over time (summarize_run_metrics).
2. Per window, each valve's window-mean is standardized against the same
   statistic across ALL valves (population mean, population std).  A
   valve is flagged for being unusual among its peers, not only against
   its own past (score_window).

    z = (valve_mean - population_mean) / population_std
    composite = max(|flow_z|, |max_flow_z|, |stability_z|)

A flat population (std == 0) scores 0.0 for every valve.  Valves whose
stability is indeterminate (zero-flow runs only) get stability_z = None,
do not take part in the stability population, and the composite uses
the remaining z-scores.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from . import config
from .records import AnomalyScore, RunMetrics, TimeRange, ValveWindowStats

logger = logging.getLogger("valveflow.scoring")


def _optional(value) -> Optional[float]:
    return None if value is None or pd.isna(value) else float(value)


def summarize_run_metrics(records: Iterable[RunMetrics],
                          time_range: TimeRange = None) -> dict[int, ValveWindowStats]:
    """
    Reduce RunMetrics history to per-valve mean/std of the scored metrics.

    Args:
        records: Stored RunMetrics.
        time_range: Only runs whose on_time falls in [start, end) are used.
            None uses every record.

    Returns:
        Mapping valve_id -> ValveWindowStats. Standard deviations are
        population (ddof=0); indeterminate stability values are skipped.
    """
    rows = [
        {
            "valve_id": m.valve_id,
            "on_time": m.on_time,
            "net_flow_increase": m.net_flow_increase,
            "valve_max": m.valve_max,
            "flow_stability": m.flow_stability,
        }
        for m in records
        if time_range is None or time_range.contains(m.on_time)
    ]
    if not rows:
        return {}

    df = pd.DataFrame(rows)
    for col in config.SCORED_METRICS:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(np.float64)

    grouped = df.groupby("valve_id")
    means = grouped[config.SCORED_METRICS].mean()
    stds = grouped[config.SCORED_METRICS].std(ddof=0)
    counts = grouped.size()

    stats = {}
    for valve_id in means.index:
        stats[int(valve_id)] = ValveWindowStats(
            valve_id=int(valve_id),
            run_count=int(counts[valve_id]),
            net_flow_increase_mean=float(means.at[valve_id, "net_flow_increase"]),
            net_flow_increase_std=float(stds.at[valve_id, "net_flow_increase"]),
            valve_max_mean=float(means.at[valve_id, "valve_max"]),
            valve_max_std=float(stds.at[valve_id, "valve_max"]),
            flow_stability_mean=_optional(means.at[valve_id, "flow_stability"]),
            flow_stability_std=_optional(stds.at[valve_id, "flow_stability"]),
        )
    return stats


def population_z_scores(values: pd.Series) -> pd.Series:
    """
    Standardize one statistic across the valve population.

    Missing values (NaN) are left out of the population and stay NaN.
    A population with no spread yields 0.0 for every member.
    """
    present = values.dropna()
    z = pd.Series(np.nan, index=values.index, dtype=np.float64)
    if present.empty:
        return z

    column = present.to_numpy(dtype=np.float64).reshape(-1, 1)
    if np.all(column == column[0]):
        z.loc[present.index] = 0.0
        return z

    scaler = StandardScaler()
    z.loc[present.index] = scaler.fit_transform(column).ravel()
    return z


def score_window(stats: Mapping[int, ValveWindowStats], window: str) -> list[AnomalyScore]:
    """
    Score every valve in one window against its peers.

    Args:
        stats: Per-valve window summaries (only valves with runs).
        window: Window label, e.g. "7d".

    Returns:
        One AnomalyScore per valve, ordered by valve id.
    """
    if not stats:
        logger.info(f"No run history in {window} window, nothing to score")
        return []

    valve_ids = sorted(stats)
    frame = pd.DataFrame(
        {
            "net_flow_increase": [stats[v].net_flow_increase_mean for v in valve_ids],
            "valve_max": [stats[v].valve_max_mean for v in valve_ids],
            "flow_stability": [stats[v].flow_stability_mean for v in valve_ids],
        },
        index=valve_ids,
        dtype=np.float64,
    )
    z = frame.apply(population_z_scores)

    scores = []
    for valve_id in valve_ids:
        flow_z = _optional(z.at[valve_id, "net_flow_increase"]) or 0.0
        max_flow_z = _optional(z.at[valve_id, "valve_max"]) or 0.0
        stability_z = _optional(z.at[valve_id, "flow_stability"])

        defined = [flow_z, max_flow_z] + ([stability_z] if stability_z is not None else [])
        composite = max(abs(v) for v in defined)

        score = AnomalyScore(
            valve_id=valve_id,
            window=window,
            flow_z_score=flow_z,
            max_flow_z_score=max_flow_z,
            stability_z_score=stability_z,
            composite_score=composite,
        )
        scores.append(score)

        log_msg = (f"valve {valve_id} [{window}]: flow_z={flow_z:.3f} "
                   f"max_z={max_flow_z:.3f} composite={composite:.3f}")
        if composite >= config.ANOMALY_WARN_SCORE:
            logger.warning(log_msg)
        else:
            logger.debug(log_msg)

    return scores


def window_label(days: int) -> str:
    return f"{days}d"


def score_windows(metrics_store, windows_days: Sequence[int] = None,
                  now: datetime = None) -> list[AnomalyScore]:
    """
    Compute anomaly scores for every configured trailing window.

    Args:
        metrics_store: Object with query(TimeRange) -> {valve_id: ValveWindowStats}.
        windows_days: Trailing windows in days. Defaults to config (7, 30, 90).
        now: End of every window. Defaults to the current UTC time.

    Returns:
        All AnomalyScores, window by window.
    """
    windows_days = windows_days if windows_days is not None else config.ANOMALY_WINDOWS_DAYS
    now = now or datetime.now(timezone.utc)

    scores = []
    for days in windows_days:
        time_range = TimeRange(now - timedelta(days=days), now)
        stats = metrics_store.query(time_range)
        window_scores = score_window(stats, window_label(days))
        logger.info(f"Scored {len(window_scores)} valves over {window_label(days)}")
        scores.extend(window_scores)
    return scores
