"""
Activity Blueprint — activities, daily progress, planned distribution.

Endpoints:
  Activity:       GET/POST /activities, GET/PUT/DELETE /activities/<id>
                  GET  /activities/<id>/summary?as_of=YYYY-MM-DD
                  POST /activities/<id>/recompute
                  GET  /activities/<id>/distribution
  ProgressEntry:  GET/POST /activities/<id>/progress, DELETE /progress/<id>
"""

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.services import activity_service, progress_service
from app.services.distribution import calculate_daily_target, calculate_distribution
from app.utils.errors import register_error_handlers
from app.utils.helpers import parse_date_input

activity_bp = Blueprint("activity", __name__, url_prefix="/api/v1")
register_error_handlers(activity_bp)


# ═════════════════════════════════════════════════════════════════════════════
# Activity CRUD
# ═════════════════════════════════════════════════════════════════════════════

@activity_bp.route("/activities", methods=["GET"])
def list_activities():
    """List activities, optionally filtered by discipline (``limit``/``offset`` paginate)."""
    items, total = paginate_query(activity_service.activity_query(request.args.get("discipline")))
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


@activity_bp.route("/activities", methods=["POST"])
def create_activity():
    data = request.get_json(silent=True) or {}
    activity = activity_service.create_activity(data)
    return jsonify(activity.to_dict()), 201


@activity_bp.route("/activities/<int:activity_id>", methods=["GET"])
def get_activity(activity_id):
    return jsonify(activity_service.get_activity(activity_id).to_dict())


@activity_bp.route("/activities/<int:activity_id>", methods=["PUT"])
def update_activity(activity_id):
    data = request.get_json(silent=True) or {}
    activity = activity_service.update_activity(activity_id, data)
    return jsonify(activity.to_dict())


@activity_bp.route("/activities/<int:activity_id>", methods=["DELETE"])
def delete_activity(activity_id):
    activity_service.delete_activity(activity_id)
    return jsonify({"deleted": True}), 200


@activity_bp.route("/activities/<int:activity_id>/summary", methods=["GET"])
def activity_summary(activity_id):
    """Progress, PPC and schedule status at ``as_of`` (default: today)."""
    as_of = parse_date_input(request.args.get("as_of"), field="as_of")
    return jsonify(activity_service.activity_summary(activity_id, as_of))


@activity_bp.route("/activities/<int:activity_id>/recompute", methods=["POST"])
def recompute_activity(activity_id):
    return jsonify(progress_service.recompute_activity_metrics(activity_id))


@activity_bp.route("/activities/<int:activity_id>/distribution", methods=["GET"])
def activity_distribution(activity_id):
    """Planned quantity per day; ``type`` overrides the activity's profile."""
    activity = activity_service.get_activity(activity_id)
    dist_type = request.args.get("type") or activity.distribution_type
    points = calculate_distribution(
        activity.start_date, activity.end_date, activity.total_qty, dist_type,
    )
    return jsonify({
        "activity_id": activity_id,
        "distribution_type": dist_type,
        "daily_target": calculate_daily_target(
            activity.start_date, activity.end_date, activity.total_qty, dist_type,
        ),
        "points": [p.to_dict() for p in points],
    })


# ═════════════════════════════════════════════════════════════════════════════
# Progress entries
# ═════════════════════════════════════════════════════════════════════════════

@activity_bp.route("/activities/<int:activity_id>/progress", methods=["GET"])
def list_progress(activity_id):
    """List entries, optionally within ``start``/``end`` (inclusive)."""
    activity_service.get_activity(activity_id)
    start = parse_date_input(request.args.get("start"), field="start")
    end = parse_date_input(request.args.get("end"), field="end")
    entries = progress_service.list_entries(activity_id, start, end)
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})


@activity_bp.route("/activities/<int:activity_id>/progress", methods=["POST"])
def upsert_progress(activity_id):
    """Record one day's progress; resubmitting a date edits that entry."""
    data = request.get_json(silent=True) or {}
    entry, created = progress_service.upsert_entry(activity_id, data)
    activity = activity_service.get_activity(activity_id)
    return jsonify({
        "entry": entry.to_dict(),
        "activity": activity.to_dict(),
        "created": created,
    }), 201 if created else 200


@activity_bp.route("/progress/<int:entry_id>", methods=["DELETE"])
def delete_progress(entry_id):
    progress_service.delete_entry(entry_id)
    return jsonify({"deleted": True}), 200
