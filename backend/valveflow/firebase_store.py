"""
firebase_store.py — Firebase Realtime Database Store
====================================================

Concrete EventSource / FlowSource / MetricsStore / Sink over Firebase RTDB.

Layout:
    /irrigation/valves/<push-id>   { timestamp: epoch s, value: signed valve id }
    /irrigation/flow/<push-id>     { timestamp: epoch s, value: flow rate }
    /irrigation/derived/<series>/<epoch ms>_<valve>[_<window>]
                                   { timestamp, tags: {...}, fields: {...} }

Raw nodes must be indexed on "timestamp" (".indexOn" rule) for the range
queries below.  Derived keys are built from timestamp and tags, so a
re-run over an overlapping lookback window overwrites its earlier points
instead of duplicating them.
"""

import logging
import os
from datetime import datetime

import firebase_admin
from firebase_admin import credentials, db, exceptions

from . import config
from .errors import SourceUnavailableError
from .records import (
    Point,
    TimeRange,
    ValveWindowStats,
    parse_flows,
    parse_valve_states,
    point_key,
    run_metrics_from_point,
)
from .scoring import summarize_run_metrics

logger = logging.getLogger("valveflow.firebase_store")


def init_firebase_app(key_path: str = None, database_url: str = None) -> None:
    """
    Initialize the default Firebase app once per process.

    Raises:
        SourceUnavailableError: If the service account key is missing.
    """
    if firebase_admin._apps:
        return
    key_path = key_path or config.FIREBASE_KEY_PATH
    if not os.path.exists(key_path):
        raise SourceUnavailableError(
            f"Firebase service account key not found at {key_path}"
        )
    cred = credentials.Certificate(key_path)
    firebase_admin.initialize_app(cred, {
        "databaseURL": database_url or config.FIREBASE_DATABASE_URL
    })
    logger.info("Firebase app initialized")


def _epoch(ts: datetime) -> float:
    return ts.timestamp()


class _RangeQuery:
    """Ordered time-range reads from one RTDB node."""

    def __init__(self, reference, path: str):
        self._reference = reference
        self.path = path

    def rows(self, time_range: TimeRange) -> list[dict]:
        try:
            result = (
                self._reference(self.path)
                .order_by_child("timestamp")
                .start_at(_epoch(time_range.start))
                .end_at(_epoch(time_range.end))
                .get()
            )
        except (exceptions.FirebaseError, ValueError) as e:
            raise SourceUnavailableError(f"query on {self.path} failed: {e}") from e
        return list((result or {}).values())


class _ValveEvents(_RangeQuery):
    def query(self, time_range: TimeRange):
        samples = parse_valve_states(self.rows(time_range))
        samples = [s for s in samples if time_range.contains(s.timestamp)]
        return sorted(samples, key=lambda s: s.timestamp)


class _FlowTelemetry(_RangeQuery):
    def query(self, time_range: TimeRange):
        samples = parse_flows(self.rows(time_range))
        samples = [s for s in samples if time_range.contains(s.timestamp)]
        return sorted(samples, key=lambda s: s.timestamp)


class _RunMetricsHistory(_RangeQuery):
    def query(self, time_range: TimeRange) -> dict[int, ValveWindowStats]:
        records = []
        for row in self.rows(time_range):
            point = Point(config.RUN_METRICS_SERIES, row.get("fields") or {},
                          row.get("tags") or {}, row.get("timestamp"))
            try:
                records.append(run_metrics_from_point(point))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed run_metrics row {row!r}: {e}")
        return summarize_run_metrics(records, time_range)

class FirebaseStore:
    """
    Firebase RTDB implementation of every store interface.

    Attributes:
        events: EventSource over the raw valve node.
        flow: FlowSource over the raw flow node.
        metrics: MetricsStore over the derived run_metrics series.
    """

    def __init__(self, valves_path: str = None, flow_path: str = None,
                 derived_path: str = None, reference=None):
        """
        Args:
            valves_path / flow_path / derived_path: RTDB node paths.
                Default to the config.FIREBASE_* paths.
            reference: Callable path -> db.Reference. Defaults to
                firebase_admin.db.reference (requires init_firebase_app()).
        """
        self._reference = reference or db.reference
        self.derived_path = derived_path or config.FIREBASE_DERIVED_PATH
        self.events = _ValveEvents(self._reference, valves_path or config.FIREBASE_VALVES_PATH)
        self.flow = _FlowTelemetry(self._reference, flow_path or config.FIREBASE_FLOW_PATH)
        self.metrics = _RunMetricsHistory(
            self._reference, f"{self.derived_path}/{config.RUN_METRICS_SERIES}"
        )

    def write(self, points: list[Point]) -> None:
        """
        Write one batch of points with a single multi-location update.

        Raises:
            SourceUnavailableError: If the update fails.
        """
        if not points:
            return
        written_at = datetime.now().astimezone()
        batch = {}
        for point in points:
            batch[point_key(point, written_at)] = {
                "timestamp": _epoch(point.timestamp or written_at),
                "tags": dict(point.tags),
                "fields": dict(point.fields),
            }
        try:
            self._reference(self.derived_path).update(batch)
        except (exceptions.FirebaseError, ValueError) as e:
            raise SourceUnavailableError(f"write to {self.derived_path} failed: {e}") from e
        logger.info(f"Wrote {len(batch)} points to {self.derived_path}")
