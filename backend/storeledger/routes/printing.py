# Overview: Flask API routes for the print queue consumed by the local print agent.

from flask import Blueprint, request, jsonify

from ..decorators import require_identity
from ..services import printing_service
from ..validation import optional_int

printing_bp = Blueprint("printing", __name__, url_prefix="/api/print-jobs")


@printing_bp.get("")
@printing_bp.get("/")
@require_identity
def list_jobs_route():
    jobs = printing_service.list_print_jobs(
        status=request.args.get("status") or None,
        job_type=request.args.get("type") or None,
        limit=optional_int(request.args.get("limit"), "limit", minimum=1, maximum=200) or 20,
    )
    return jsonify({"jobs": [j.to_dict() for j in jobs]}), 200


@printing_bp.post("/<int:job_id>/status")
@require_identity
def update_status_route(job_id: int):
    """Body: {"status": "DONE" | "FAILED" | "PRINTING", "error": "..."}"""
    data = request.get_json(silent=True) or {}
    job = printing_service.update_print_job_status(job_id, data.get("status"), data.get("error"))
    return jsonify({"job": job.to_dict()}), 200
