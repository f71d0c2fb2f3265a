# Overview: Flask API routes for customers and their store-credit ledger.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_identity, require_role
from ..errors import ValidationError
from ..models.auth import SUPERVISOR_ROLES
from ..services import customer_ledger_service
from ..time_utils import parse_iso_datetime
from ..validation import optional_int

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@customers_bp.get("")
@customers_bp.get("/")
@require_identity
def list_customers_route():
    customers = customer_ledger_service.list_customers(
        active_only=request.args.get("include_inactive") != "1",
    )
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@customers_bp.post("/")
@require_identity
@require_role(*SUPERVISOR_ROLES)
def create_customer_route():
    data = request.get_json(silent=True) or {}
    customer = customer_ledger_service.create_customer(
        name=data.get("name"),
        document=data.get("document"),
        email=data.get("email"),
        phone=data.get("phone"),
        allow_credit=bool(data.get("allow_credit", False)),
        credit_limit_cents=data.get("credit_limit_cents"),
        default_due_days=data.get("default_due_days"),
    )
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<int:customer_id>/balance")
@require_identity
def balance_route(customer_id: int):
    customer_ledger_service.require_customer(customer_id)
    return jsonify({
        "customer_id": customer_id,
        "balance_cents": customer_ledger_service.get_balance(customer_id),
    }), 200


@customers_bp.get("/<int:customer_id>/statement")
@require_identity
def statement_route(customer_id: int):
    statement = customer_ledger_service.get_statement(
        customer_id,
        start=_date_arg("from"),
        end=_date_arg("to"),
    )
    return jsonify(statement), 200


@customers_bp.post("/<int:customer_id>/charges")
@require_identity
def charge_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    try:
        due_date = parse_iso_datetime(data.get("due_date"))
    except ValueError:
        raise ValidationError("due_date must be an ISO-8601 datetime")
    entry = customer_ledger_service.charge(
        customer_id,
        amount_cents=data.get("amount_cents"),
        description=data.get("description"),
        sale_id=optional_int(data.get("sale_id"), "sale_id", minimum=1),
        due_date=due_date,
        idempotency_key=data.get("idempotency_key"),
        user_id=g.user_id,
    )
    return jsonify({"entry": entry.to_dict()}), 201


@customers_bp.post("/<int:customer_id>/payments")
@require_identity
def payment_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    entry = customer_ledger_service.record_payment(
        customer_id,
        amount_cents=data.get("amount_cents"),
        method=data.get("method"),
        description=data.get("description"),
        idempotency_key=data.get("idempotency_key"),
        user_id=g.user_id,
    )
    return jsonify({"entry": entry.to_dict()}), 201
