"""
config.py — Valve/Flow Correlation Configuration Constants
==========================================================

Centralizes all windows, thresholds, and store paths used by the valve-run
reconciliation and anomaly scoring pipeline. Every value can be overridden
through an environment variable, and every component also accepts the same
value as a keyword argument (defaulting to the constant below).

Data sources:
- Sprinkler controller valve events (signed valve id: +N on, <=0 off)
- Inline flow meter telemetry (flow rate, one shared stream)
- Derived points (flow, run_metrics, anomaly_score) written back to the store
"""

import os


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


# ═══════════════════════════════════════════════════════════════════
# RECONCILIATION WINDOWS
# ═══════════════════════════════════════════════════════════════════

# Trailing window (hours) of valve events re-examined on every batch.
# 30 h covers a full daily program plus slack for a late scheduler.
LOOKBACK_HOURS = _env_float("VALVEFLOW_LOOKBACK_HOURS", 30)

# Minutes of flow immediately before a run used to estimate background flow.
BASELINE_MINUTES = _env_float("VALVEFLOW_BASELINE_MINUTES", 5)

# Minutes skipped at the start of a run while the pipe fills.
RAMP_UP_MINUTES = _env_float("VALVEFLOW_RAMP_UP_MINUTES", 2)

# Runs shorter than this (minutes) are discarded as incomplete/manual blips.
MIN_RUN_MINUTES = _env_float("VALVEFLOW_MIN_RUN_MINUTES", 6)

# ═══════════════════════════════════════════════════════════════════
# FLOW ACCEPTANCE / OUTLIER REJECTION
# ═══════════════════════════════════════════════════════════════════

# A run must raise the median flow above baseline by more than this
# (flow-rate units) to count as genuine valve flow.
FLOW_INCREASE_THRESHOLD = _env_float("VALVEFLOW_FLOW_INCREASE_THRESHOLD", 0.1)

# In-run samples further than this many population standard deviations
# from the median are dropped as sensor spikes.
OUTLIER_STD_MULTIPLIER = 3.0

# ═══════════════════════════════════════════════════════════════════
# EXPECTED WATERING PROGRAM (soft validation only)
# ═══════════════════════════════════════════════════════════════════

PROGRAM_START_HOUR = 3
PROGRAM_END_HOUR = 18
PROGRAM_MIN_MINUTES = 6
PROGRAM_MAX_MINUTES = 25

# IANA zone the controller schedules its program in.  Start hours are
# compared in this zone; timestamps are stored in UTC.
PROGRAM_TIMEZONE = os.environ.get("VALVEFLOW_PROGRAM_TIMEZONE", "UTC")

# Controller stations are numbered 1..NUM_VALVES.
NUM_VALVES = _env_int("VALVEFLOW_NUM_VALVES", 32)

# ═══════════════════════════════════════════════════════════════════
# ANOMALY SCORING
# ═══════════════════════════════════════════════════════════════════

# Trailing windows (days) over which per-valve history is summarized.
ANOMALY_WINDOWS_DAYS = tuple(
    int(d) for d in os.environ.get("VALVEFLOW_ANOMALY_WINDOWS", "7,30,90").split(",") if d.strip()
)

# Metrics compared across the valve population.
SCORED_METRICS = ["net_flow_increase", "valve_max", "flow_stability"]

# Composite scores at or above this are logged as warnings.
ANOMALY_WARN_SCORE = 3.0

# ═══════════════════════════════════════════════════════════════════
# SERIES NAMES (output store)
# ═══════════════════════════════════════════════════════════════════

FLOW_SERIES = "flow"
RUN_METRICS_SERIES = "run_metrics"
ANOMALY_SERIES = "anomaly_score"

# ═══════════════════════════════════════════════════════════════════
# FIREBASE / DATA STORE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════

FIREBASE_DATABASE_URL = os.environ.get(
    "FIREBASE_DATABASE_URL", "https://valveflow-monitor-default-rtdb.firebaseio.com"
)

_PKG_DIR = os.path.dirname(os.path.abspath(__file__))
FIREBASE_KEY_PATH = os.environ.get(
    "FIREBASE_KEY_PATH", os.path.join(_PKG_DIR, "..", "serviceAccountKey.json")
)

# Raw controller events and flow meter telemetry
FIREBASE_VALVES_PATH = "/irrigation/valves"
FIREBASE_FLOW_PATH = "/irrigation/flow"

# Derived series are written below this node, one child per series name
FIREBASE_DERIVED_PATH = "/irrigation/derived"

# ═══════════════════════════════════════════════════════════════════
# SERVICE / LOGGING
# ═══════════════════════════════════════════════════════════════════

SERVICE_PORT = _env_int("VALVEFLOW_SERVICE_PORT", 5060)

# Log level for the pipeline (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL = os.environ.get("VALVEFLOW_LOG_LEVEL", "INFO")
