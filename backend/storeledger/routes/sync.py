# Overview: Flask API route for uploading offline sales.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_identity
from ..services import sync_service

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.post("/sales")
@require_identity
def sync_sale_route():
    """
    Apply the stock effect of a sale made offline. Safe to resend.

    Request body:
    {
        "sale_ref": "device-7-000123",
        "device_id": "device-7",             (optional)
        "created_at": "2026-01-05T12:00:00Z", (optional)
        "items": [{"product_id": 1, "location_id": 1, "quantity": "2"}]
    }
    """
    data = request.get_json(silent=True) or {}
    result = sync_service.process_offline_sale(
        sale_ref=data.get("sale_ref"),
        items=data.get("items"),
        user_id=g.user_id,
        device_id=data.get("device_id"),
        client_created_at=data.get("created_at"),
    )
    return jsonify(result.to_dict()), 200
