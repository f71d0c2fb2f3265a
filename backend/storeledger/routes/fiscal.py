# Overview: Flask API routes for fiscal document status and retries.

from flask import Blueprint, request, jsonify

from ..decorators import require_identity, require_role
from ..models.auth import SUPERVISOR_ROLES
from ..services import fiscal_service
from ..validation import parse_id_list

fiscal_bp = Blueprint("fiscal", __name__, url_prefix="/api/fiscal")


@fiscal_bp.get("/documents")
@require_identity
def list_documents_route():
    documents = fiscal_service.list_fiscal_documents(request.args.get("status") or None)
    return jsonify({"documents": [d.to_dict() for d in documents]}), 200


@fiscal_bp.post("/retry")
@require_identity
@require_role(*SUPERVISOR_ROLES)
def retry_route():
    """Body: {"sale_ids": [1, 2]}"""
    data = request.get_json(silent=True) or {}
    results = fiscal_service.retry_fiscal_documents(parse_id_list(data.get("sale_ids"), "sale_ids"))
    return jsonify({"results": results}), 200
