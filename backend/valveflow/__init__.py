"""
backend.valveflow — Irrigation Valve / Flow Correlation Pipeline
================================================================

Correlates sprinkler controller valve events with inline flow meter
telemetry to derive per-valve flow and rolling anomaly scores for
spotting stuck valves, leaks, and drift.

Architecture:
    Controller events ─┐                      Flow meter telemetry
                       ↓                               ↓
              Stage 1: reconcile_runs (periodic batch, lookback window)
                1. Run reconstruction (on/off state machine)
                2. Baseline + in-run flow windows
                3. Spike rejection (median ± 3σ)
                4. Per-run metrics
                5. Flow-increase gate
                       ↓
              flow points + run_metrics records → store
                       ↓
              Stage 2: score_valves
                6. Per-valve window stats (7d / 30d / 90d)
                7. Population z-scores + composite severity
                       ↓
              anomaly_score records → store

Modules:
    config         — Windows, thresholds, store paths
    records        — Typed records and boundary parsing
    errors         — Error taxonomy
    events         — Valve run reconstruction
    preprocessing  — Median / std helpers, spike rejection
    windowing      — Baseline and in-run flow windows
    metrics        — Per-run metrics
    run_filter     — Flow-increase gate
    scoring        — Population-relative anomaly scores
    stores         — Store interfaces, in-memory store
    firebase_store — Firebase RTDB store
    pipeline       — Stage orchestration
    service        — Flask trigger service
    run            — Batch entry point
    utils          — Logging setup, store construction
"""

__version__ = "1.0.0"
__author__ = "Water Monitoring IoT Team"
