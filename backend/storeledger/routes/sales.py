# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_identity
from ..services import receipt_service, sales_service
from ..validation import optional_int, optional_str, require_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@sales_bp.post("/")
@require_identity
def create_sale_route():
    """
    Register a finalized sale.

    Request body:
    {
        "cash_session_id": 1,
        "location_id": 1,
        "items": [{"product_id": 1, "quantity": "2", "unit_price_cents": 500,
                   "discount": {"type": "value", "value_cents": 100}}],
        "payments": [{"method": "cash", "amount_cents": 1000}],
        "discount": {"type": "percent", "percent": "10"},   (optional)
        "fiscal_mode": "none",                               (optional)
        "idempotency_key": "...",                            (optional, or Idempotency-Key header)
        "supervisor_credential": "4321"                      (required for discounts by attendants)
    }

    Returns 201 with the sale, or 200 with {"duplicate": true} when the
    idempotency key was already used.
    """
    data = request.get_json(silent=True) or {}
    idempotency_key = data.get("idempotency_key") or request.headers.get("Idempotency-Key")
    result = sales_service.create_sale(
        user_id=g.user_id,
        role=g.role,
        cash_session_id=require_int(data.get("cash_session_id"), "cash_session_id", minimum=1),
        location_id=require_int(data.get("location_id"), "location_id", minimum=1),
        items=data.get("items"),
        payments=data.get("payments"),
        discount=data.get("discount"),
        fiscal_mode=data.get("fiscal_mode") or current_app.config.get("DEFAULT_FISCAL_MODE", "none"),
        idempotency_key=optional_str(idempotency_key, "idempotency_key", max_length=128),
        supervisor_credential=data.get("supervisor_credential"),
        client_sale_id=optional_str(data.get("client_sale_id"), "client_sale_id", max_length=64),
    )
    return jsonify(result.to_dict()), 200 if result.duplicate else 201


@sales_bp.get("")
@sales_bp.get("/")
@require_identity
def list_sales_route():
    sales = sales_service.list_sales(
        cash_session_id=optional_int(request.args.get("cash_session_id"), "cash_session_id", minimum=1),
        status=request.args.get("status"),
        limit=optional_int(request.args.get("limit"), "limit", minimum=1, maximum=500) or 50,
    )
    return jsonify({"sales": [s.to_dict(include_children=False) for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_identity
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200


@sales_bp.get("/<int:sale_id>/receipt")
@require_identity
def receipt_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    return jsonify({"receipt": receipt_service.build_receipt(sale)}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_identity
def cancel_sale_route(sale_id: int):
    """
    Request body:
    {
        "supervisor_credential": "4321",
        "reason": "Customer gave up"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    sale = sales_service.cancel_sale(
        sale_id,
        user_id=g.user_id,
        supervisor_credential=data.get("supervisor_credential"),
        reason=optional_str(data.get("reason"), "reason", max_length=280),
    )
    return jsonify({"sale": sale.to_dict()}), 200
