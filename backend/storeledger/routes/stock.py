# Overview: Flask API routes for stock levels, movements and catalog; parses input and returns JSON responses.

"""
Stock API Routes

All quantity changes go through inventory_service so the movement log and the
cached balance stay in step. Quantities travel as decimal strings.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_identity, require_role
from ..models.auth import SUPERVISOR_ROLES
from ..services import inventory_service
from ..validation import optional_int, optional_str, require_cents, require_int, require_str

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _movement_args(data: dict) -> dict:
    return {
        "reason": optional_str(data.get("reason"), "reason"),
        "reference": optional_str(data.get("reference"), "reference", max_length=64),
        "user_id": g.user_id,
    }


@stock_bp.get("/levels")
@require_identity
def levels_route():
    rows = inventory_service.list_stock(
        product_id=optional_int(request.args.get("product_id"), "product_id", minimum=1),
        location_id=optional_int(request.args.get("location_id"), "location_id", minimum=1),
    )
    return jsonify({"levels": [r.to_dict() for r in rows]}), 200


@stock_bp.get("/movements")
@require_identity
def movements_route():
    movements = inventory_service.list_movements(
        product_id=optional_int(request.args.get("product_id"), "product_id", minimum=1),
        location_id=optional_int(request.args.get("location_id"), "location_id", minimum=1),
        reference=request.args.get("reference") or None,
        limit=optional_int(request.args.get("limit"), "limit", minimum=1, maximum=1000) or 100,
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@stock_bp.post("/in")
@require_identity
def credit_route():
    data = request.get_json(silent=True) or {}
    result = inventory_service.credit(
        require_int(data.get("product_id"), "product_id", minimum=1),
        require_int(data.get("location_id"), "location_id", minimum=1),
        data.get("quantity"),
        **_movement_args(data),
    )
    return jsonify(result.to_dict()), 201


@stock_bp.post("/out")
@require_identity
def debit_route():
    data = request.get_json(silent=True) or {}
    result = inventory_service.debit(
        require_int(data.get("product_id"), "product_id", minimum=1),
        require_int(data.get("location_id"), "location_id", minimum=1),
        data.get("quantity"),
        **_movement_args(data),
    )
    return jsonify(result.to_dict()), 201


@stock_bp.post("/adjust")
@require_identity
@require_role(*SUPERVISOR_ROLES)
def adjust_route():
    """Signed correction. Body: {"product_id", "location_id", "delta": "-1.5", "reason"}"""
    data = request.get_json(silent=True) or {}
    result = inventory_service.adjust(
        require_int(data.get("product_id"), "product_id", minimum=1),
        require_int(data.get("location_id"), "location_id", minimum=1),
        data.get("delta"),
        **_movement_args(data),
    )
    return jsonify(result.to_dict()), 201


@stock_bp.post("/transfer")
@require_identity
def transfer_route():
    data = request.get_json(silent=True) or {}
    out_result, in_result = inventory_service.transfer(
        require_int(data.get("product_id"), "product_id", minimum=1),
        require_int(data.get("from_location_id"), "from_location_id", minimum=1),
        require_int(data.get("to_location_id"), "to_location_id", minimum=1),
        data.get("quantity"),
        **_movement_args(data),
    )
    return jsonify({"out": out_result.to_dict(), "in": in_result.to_dict()}), 201


@stock_bp.get("/locations")
@require_identity
def list_locations_route():
    return jsonify({"locations": [loc.to_dict() for loc in inventory_service.list_locations()]}), 200


@stock_bp.post("/locations")
@require_identity
@require_role(*SUPERVISOR_ROLES)
def create_location_route():
    data = request.get_json(silent=True) or {}
    location = inventory_service.create_location(
        require_str(data.get("name"), "name", max_length=128),
        is_sale_source=bool(data.get("is_sale_source", False)),
    )
    return jsonify({"location": location.to_dict()}), 201


@stock_bp.get("/products")
@require_identity
def list_products_route():
    return jsonify({"products": [p.to_dict() for p in inventory_service.list_products()]}), 200


@stock_bp.post("/products")
@require_identity
@require_role(*SUPERVISOR_ROLES)
def create_product_route():
    data = request.get_json(silent=True) or {}
    product = inventory_service.create_product(
        require_str(data.get("sku"), "sku", max_length=64),
        require_str(data.get("name"), "name"),
        require_cents(data.get("price_cents"), "price_cents", allow_zero=True),
    )
    return jsonify({"product": product.to_dict()}), 201
