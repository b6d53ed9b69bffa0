"""
Schedule Blueprint — detailed schedule items and dependency propagation.

Endpoints:
  ScheduleItem:   GET/POST /activities/<id>/schedule-items
                  GET/PUT/DELETE /schedule-items/<id>
  Predecessor:    PUT/DELETE /schedule-items/<id>/predecessor
  Propagation:    POST /activities/<id>/schedule/propagate

PUT bodies may carry ``version`` (the value read by the client); a mismatch
is answered with 409 instead of overwriting a concurrent edit.
"""

from flask import Blueprint, jsonify, request

from app.services import schedule_service
from app.services.activity_service import get_activity
from app.utils.errors import E, api_error, register_error_handlers

schedule_bp = Blueprint("schedule", __name__, url_prefix="/api/v1")
register_error_handlers(schedule_bp)


def _item_payload(item):
    activity = get_activity(item.activity_id)
    return {
        "item": item.to_dict(),
        "activity": activity.to_dict(),
    }


@schedule_bp.route("/activities/<int:activity_id>/schedule-items", methods=["GET"])
def list_items(activity_id):
    get_activity(activity_id)
    items = schedule_service.list_items(activity_id)
    return jsonify({"items": [i.to_dict() for i in items], "total": len(items)})


@schedule_bp.route("/activities/<int:activity_id>/schedule-items", methods=["POST"])
def create_item(activity_id):
    data = request.get_json(silent=True) or {}
    item = schedule_service.create_item(activity_id, data)
    return jsonify(_item_payload(item)), 201


@schedule_bp.route("/schedule-items/<int:item_id>", methods=["GET"])
def get_item(item_id):
    return jsonify(schedule_service.get_item(item_id).to_dict())


@schedule_bp.route("/schedule-items/<int:item_id>", methods=["PUT"])
def update_item(item_id):
    data = request.get_json(silent=True) or {}
    expected_version = data.pop("version", None)
    item = schedule_service.update_item(item_id, data, expected_version=expected_version)
    return jsonify(_item_payload(item))


@schedule_bp.route("/schedule-items/<int:item_id>", methods=["DELETE"])
def delete_item(item_id):
    schedule_service.delete_item(item_id)
    return jsonify({"deleted": True}), 200


@schedule_bp.route("/schedule-items/<int:item_id>/predecessor", methods=["PUT"])
def set_predecessor(item_id):
    """Link the item to a predecessor; its dates then follow that item."""
    data = request.get_json(silent=True) or {}
    predecessor_id = data.get("predecessor_id")
    if predecessor_id is None:
        return api_error(E.VALIDATION_REQUIRED, "predecessor_id is required")
    item = schedule_service.set_predecessor(item_id, predecessor_id)
    return jsonify(_item_payload(item))


@schedule_bp.route("/schedule-items/<int:item_id>/predecessor", methods=["DELETE"])
def clear_predecessor(item_id):
    item = schedule_service.clear_predecessor(item_id)
    return jsonify(_item_payload(item))


@schedule_bp.route("/activities/<int:activity_id>/schedule/propagate", methods=["POST"])
def propagate(activity_id):
    """Run the propagation pass on demand (``cascade`` overrides config)."""
    get_activity(activity_id)
    data = request.get_json(silent=True) or {}
    result = schedule_service.propagate_schedule(activity_id, cascade=data.get("cascade"))
    return jsonify(result.to_dict()), 200 if result.success else 207
