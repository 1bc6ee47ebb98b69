"""
preprocessing.py — Flow Sample Statistics and Spike Rejection
=============================================================

Responsibilities:
1. Order statistics used everywhere in the pipeline (lower median).
2. Population mean / standard deviation (divide by N).
3. Median-centered outlier rejection for in-run flow samples.

Why median-centered?  Flow meters occasionally report a single absurd
spike (air in the line, a pulse counter glitch).  A mean-centered fence
is dragged toward the spike it is supposed to reject; the median is not.

Median convention: for even-length input the LOWER of the two middle
values is used, never their average, so every median in the system is
an actually observed sample value.
"""

import logging
from typing import Sequence

import numpy as np

from . import config
from .records import FlowSample

logger = logging.getLogger("valveflow.preprocessing")


def lower_median(values: Sequence[float]) -> float:
    """
    Middle element of the sorted values (lower middle for even lengths).

    Sort-and-index is fine for the tens of samples in one run.

    Raises:
        ValueError: On empty input.
    """
    arr = np.sort(np.asarray(values, dtype=np.float64))
    if arr.size == 0:
        raise ValueError("median of empty sequence")
    return float(arr[(arr.size - 1) // 2])


def population_std(values: Sequence[float]) -> float:
    """Standard deviation around the mean, dividing by N (ddof=0)."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        raise ValueError("std of empty sequence")
    return float(arr.std(ddof=0))


def reject_outliers(samples: Sequence[FlowSample],
                    std_multiplier: float = None) -> list[FlowSample]:
    """
    Drop samples further than std_multiplier population standard deviations
    from the lower median.

    Fence:
        keep  |value - median| <= std_multiplier * std

    where std is computed over ALL input samples (spikes included).

    Args:
        samples: In-run flow samples, time ordered.
        std_multiplier: Fence width. Defaults to config.OUTLIER_STD_MULTIPLIER (3).

    Returns:
        Retained samples in their original order.
    """
    if not samples:
        return []
    std_multiplier = (std_multiplier if std_multiplier is not None
                      else config.OUTLIER_STD_MULTIPLIER)

    values = np.array([s.value for s in samples], dtype=np.float64)
    median = lower_median(values)
    fence = std_multiplier * population_std(values)
    mask = np.abs(values - median) <= fence

    kept = [s for s, keep in zip(samples, mask) if keep]
    dropped = len(samples) - len(kept)
    if dropped > 0:
        logger.info(f"Removed {dropped} flow spike samples "
                    f"({dropped / len(samples) * 100:.1f}% of run, "
                    f"median={median:.3f}, fence=±{fence:.3f})")
    return kept
