"""Metrics API routes."""

from flask import Blueprint, current_app, jsonify

metrics_bp = Blueprint("metrics", __name__)


@metrics_bp.route("/metrics", methods=["GET"])
def get_metrics():
    """Return telemetry metrics for the running assistant."""
    config = current_app.config["assistant_config"]
    if not config.telemetry.enabled:
        return jsonify({"enabled": False, "metrics": None})

    telemetry = current_app.config["orchestrator"].telemetry
    return jsonify({
        "enabled": True,
        "log_dir": config.telemetry.log_dir,
        "metrics": telemetry.summary_dict(),
    })
