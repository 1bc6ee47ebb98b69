"""
run.py — Scheduled Batch Entry Point
=====================================

Runs both stages once against the configured store:

    python -m backend.valveflow.run

Exit status is 0 when the batch completed or aborted cleanly (no valve
data), 1 when a store could not be reached or a write failed.
"""

import logging
import sys

from .errors import SourceUnavailableError
from .pipeline import reconcile_runs, score_valves
from .utils import build_store, setup_logging

logger = logging.getLogger("valveflow.run")


def main() -> int:
    setup_logging()

    logger.info("=" * 60)
    logger.info("STARTING VALVE FLOW RECONCILIATION")
    logger.info("=" * 60)

    try:
        store = build_store()
        report = reconcile_runs(store.events, store.flow, store)
        if report.aborted:
            return 0
        scores = score_valves(store.metrics, store)
    except SourceUnavailableError as e:
        logger.error(f"Batch failed: {e}")
        return 1

    logger.info("=" * 60)
    logger.info("BATCH COMPLETE")
    logger.info(f"  Runs accepted:  {len(report.accepted)}/{len(report.runs)}")
    logger.info(f"  Flow points:    {report.flow_points}")
    logger.info(f"  Anomaly scores: {len(scores)}")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
