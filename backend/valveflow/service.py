"""
service.py — HTTP Trigger Service (Flask)
==========================================

Lets the scheduler (cron, Cloud Scheduler, the Node.js backend) trigger
the two batch stages over HTTP.

Endpoints:
    GET  /health      — Service health check
    POST /reconcile   — Run stage 1; optional JSON { "lookback_hours": 26 }
    POST /score       — Run stage 2; optional JSON { "windows_days": [7, 30] }

Run:
    python -m backend.valveflow.service
    # Starts on port 5060 by default (VALVEFLOW_SERVICE_PORT)
"""

import logging

from flask import Flask, jsonify, request

from . import config
from .pipeline import reconcile_runs, score_valves
from .utils import build_store, setup_logging

logger = logging.getLogger("valveflow.service")


def _json_body():
    """Request JSON as a dict ({} when absent), or None if it is not an object."""
    body = request.get_json(force=True, silent=True)
    if body is None:
        return {}
    return body if isinstance(body, dict) else None


def create_app(store) -> Flask:
    """
    Build the Flask app around one store.

    Args:
        store: Object exposing .events, .flow, .metrics and write().
    """
    app = Flask(__name__)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "OK", "service": "valveflow"})

    @app.route("/reconcile", methods=["POST"])
    def reconcile():
        body = _json_body()
        if body is None:
            return jsonify({"error": "request body must be a JSON object"}), 400
        try:
            lookback = body.get("lookback_hours")
            lookback = float(lookback) if lookback is not None else None
        except (TypeError, ValueError):
            return jsonify({"error": "lookback_hours must be a number"}), 400

        try:
            report = reconcile_runs(store.events, store.flow, store,
                                    lookback_hours=lookback)
        except Exception as e:
            logger.error(f"Reconcile error: {e}", exc_info=True)
            return jsonify({"status": "error", "message": str(e)}), 500

        return jsonify({"status": "aborted" if report.aborted else "processed",
                        "report": report.summary()})

    @app.route("/score", methods=["POST"])
    def score():
        body = _json_body()
        if body is None:
            return jsonify({"error": "request body must be a JSON object"}), 400
        windows = body.get("windows_days")
        if windows is not None:
            if not isinstance(windows, list):
                return jsonify({"error": "windows_days must be a list of integers"}), 400
            try:
                windows = [int(d) for d in windows]
            except (TypeError, ValueError):
                return jsonify({"error": "windows_days must be a list of integers"}), 400

        try:
            scores = score_valves(store.metrics, store, windows_days=windows)
        except Exception as e:
            logger.error(f"Scoring error: {e}", exc_info=True)
            return jsonify({"status": "error", "message": str(e)}), 500

        return jsonify({
            "status": "processed",
            "scores": [
                {
                    "valve": s.valve_id,
                    "window": s.window,
                    "flow_z_score": s.flow_z_score,
                    "max_flow_z_score": s.max_flow_z_score,
                    "stability_z_score": s.stability_z_score,
                    "composite_score": s.composite_score,
                }
                for s in scores
            ],
        })

    return app


if __name__ == "__main__":
    setup_logging()
    app = create_app(build_store())
    logger.info(f"Starting valveflow service on port {config.SERVICE_PORT}")
    app.run(host="0.0.0.0", port=config.SERVICE_PORT, debug=False)
