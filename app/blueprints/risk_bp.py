"""
Risk Blueprint — delay-risk snapshots.

Endpoints:
  POST /risk/refresh             body: {"period": "YYYY-WW"} (default: current week)
  GET  /risk/snapshots           ?period=YYYY-WW&classification=HIGH
  GET  /activities/<id>/risk     snapshot history + live score
"""

from datetime import date

from flask import Blueprint, jsonify, request

from app.services import risk_service
from app.utils.calendar import week_label
from app.utils.errors import register_error_handlers

risk_bp = Blueprint("risk", __name__, url_prefix="/api/v1")
register_error_handlers(risk_bp)


@risk_bp.route("/risk/refresh", methods=["POST"])
def refresh_risk():
    data = request.get_json(silent=True) or {}
    period = data.get("period") or week_label(date.today())
    result = risk_service.refresh_risk_snapshots(period)
    return jsonify(result.to_dict()), 200 if result.success else 207


@risk_bp.route("/risk/snapshots", methods=["GET"])
def list_snapshots():
    snapshots = risk_service.list_snapshots(
        period=request.args.get("period"),
        classification=request.args.get("classification"),
    )
    return jsonify({"items": [s.to_dict() for s in snapshots], "total": len(snapshots)})


@risk_bp.route("/activities/<int:activity_id>/risk", methods=["GET"])
def activity_risk(activity_id):
    snapshots = risk_service.get_snapshots(activity_id)
    score = risk_service.score_activity(activity_id)
    return jsonify({
        "activity_id": activity_id,
        "current": score.to_dict() if score else None,
        "snapshots": [s.to_dict() for s in snapshots],
    })
