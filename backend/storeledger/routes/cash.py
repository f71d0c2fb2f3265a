# Overview: Flask API routes for cash sessions; parses input and returns JSON responses.

"""
Cash Session API Routes

DESIGN:
- open / withdraw / close operate on the caller's tenant only
- Supervised operations take the credential in the body as supervisor_credential
- The report endpoint serves the frozen closing snapshot verbatim
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_identity
from ..errors import NotFoundError
from ..services import cash_service
from ..validation import optional_str, require_cents, require_int

cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


@cash_bp.post("/sessions")
@require_identity
def open_session_route():
    """
    Open a cash session for the calling operator.

    Request body:
    {
        "opening_cents": 10000,
        "register_label": "Front counter",  (optional)
        "notes": "..."                       (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    session = cash_service.open_cash_session(
        user_id=g.user_id,
        opening_cents=require_int(data.get("opening_cents"), "opening_cents", minimum=0),
        register_label=optional_str(data.get("register_label"), "register_label", max_length=64),
        notes=optional_str(data.get("notes"), "notes", max_length=500),
    )
    current_app.logger.info(
        "Cash session opened",
        extra={"tenant_id": g.tenant_id, "cash_session_id": session.id},
    )
    return jsonify({"session": session.to_dict()}), 201


@cash_bp.get("/sessions/current")
@require_identity
def current_session_route():
    mine = request.args.get("scope", "mine") != "any"
    session = cash_service.get_current_session(g.user_id if mine else None)
    if session is None:
        raise NotFoundError("No open cash session", code="CASH_SESSION_NOT_OPEN")
    return jsonify({"session": session.to_dict()}), 200


@cash_bp.get("/sessions/open")
@require_identity
def list_open_sessions_route():
    sessions = cash_service.list_open_sessions()
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@cash_bp.get("/sessions/<int:session_id>")
@require_identity
def get_session_route(session_id: int):
    session = cash_service.get_session(session_id)
    result = session.to_dict()
    result["withdrawals"] = [w.to_dict() for w in session.withdrawals]
    return jsonify({"session": result}), 200


@cash_bp.post("/sessions/<int:session_id>/withdrawals")
@require_identity
def withdraw_route(session_id: int):
    """
    Request body:
    {
        "amount_cents": 1500,
        "reason": "Supplier payment",
        "supervisor_credential": "4321"
    }
    """
    data = request.get_json(silent=True) or {}
    withdrawal = cash_service.withdraw(
        session_id,
        amount_cents=require_cents(data.get("amount_cents"), "amount_cents"),
        reason=data.get("reason"),
        user_id=g.user_id,
        supervisor_credential=data.get("supervisor_credential"),
    )
    return jsonify({"withdrawal": withdrawal.to_dict()}), 201


@cash_bp.post("/sessions/<int:session_id>/close")
@require_identity
def close_session_route(session_id: int):
    """
    Close the session and return the frozen closing report.

    Request body:
    {
        "closing_cents": 13500,
        "supervisor_credential": "4321",
        "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    snapshot = cash_service.close_cash_session(
        session_id,
        closing_cents=require_int(data.get("closing_cents"), "closing_cents", minimum=0),
        user_id=g.user_id,
        supervisor_credential=data.get("supervisor_credential"),
        notes=optional_str(data.get("notes"), "notes", max_length=500),
    )
    return jsonify({"report": snapshot}), 200


@cash_bp.get("/sessions/<int:session_id>/report")
@require_identity
def report_route(session_id: int):
    return jsonify({"report": cash_service.get_cash_report(session_id)}), 200
