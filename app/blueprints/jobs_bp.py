"""
Jobs Blueprint — manual trigger and status of scheduled engine jobs.

Endpoints:
  GET  /jobs                  registered jobs + last run
  POST /jobs/<name>/run       run now (body: {"force": true} runs a paused job)
  POST /jobs/<name>/toggle    body: {"enabled": false}
"""

from flask import Blueprint, jsonify, request

from app.services.scheduler_service import SchedulerService
from app.utils.errors import E, api_error, register_error_handlers

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/v1/jobs")
register_error_handlers(jobs_bp)


@jobs_bp.route("", methods=["GET"])
def list_jobs():
    jobs = SchedulerService.list_jobs()
    return jsonify({"items": jobs, "total": len(jobs)})


@jobs_bp.route("/<job_name>/run", methods=["POST"])
def run_job(job_name):
    data = request.get_json(silent=True) or {}
    return jsonify(SchedulerService.run_job(job_name, force=bool(data.get("force")))), 200


@jobs_bp.route("/<job_name>/toggle", methods=["POST"])
def toggle_job(job_name):
    data = request.get_json(silent=True) or {}
    if "enabled" not in data:
        return api_error(E.VALIDATION_REQUIRED, "enabled is required")
    return jsonify(SchedulerService.toggle_job(job_name, bool(data["enabled"]))), 200
