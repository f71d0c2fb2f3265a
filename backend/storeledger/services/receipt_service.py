# Overview: Customer receipt rendering (plain text plus ESC/POS payload).

from __future__ import annotations

import base64

from ..extensions import db
from ..models import CashSession, Sale, Tenant, User
from ..time_utils import to_utc_z

LINE = "-" * 32
ESC_POS_CUT = "\x1dV\x00"


def format_cents(value: int) -> str:
    return f"{value / 100:.2f}"


def _format_qty(qty) -> str:
    return format(qty.normalize(), "f")


def build_receipt(sale: Sale) -> dict:
    """
    Receipt payload for a sale: structured fields, the printable text and
    the same text wrapped in ESC/POS (paper cut at the end), base64-encoded.
    """
    tenant = db.session.query(Tenant).filter_by(id=sale.tenant_id).first()
    operator = db.session.query(User).filter_by(id=sale.user_id).first()
    session = db.session.query(CashSession).filter_by(id=sale.cash_session_id).first()

    tenant_name = tenant.name if tenant else "Store"
    operator_name = operator.name if operator else f"User {sale.user_id}"
    register_label = session.register_label if session else None
    created_at = to_utc_z(sale.created_at)

    lines = [tenant_name.upper()]
    if tenant is not None and tenant.tax_id:
        lines.append(f"Tax ID: {tenant.tax_id}")
    lines.append(f"Operator: {operator_name}")
    if register_label:
        lines.append(f"Register: {register_label}")
    lines.append(f"Date: {created_at}")
    lines.append(LINE)

    for item in sale.items:
        lines.append(f"{_format_qty(item.quantity)}x {item.name}")
        lines.append(f"@ {format_cents(item.unit_price_cents)} = {format_cents(item.total_cents)}")
        if item.discount_cents > 0:
            lines.append(f"  Disc.: {format_cents(item.discount_cents)}")

    lines.append(LINE)
    lines.append(f"Subtotal: {format_cents(sale.subtotal_cents)}")
    lines.append(f"Discount: {format_cents(sale.discount_cents)}")
    lines.append(f"Total:    {format_cents(sale.total_cents)}")
    lines.append(LINE)
    for payment in sale.payments:
        lines.append(f"{payment.method.upper()}: {format_cents(payment.amount_cents)}")
    lines.append(f"Change:   {format_cents(sale.change_cents)}")
    if sale.fiscal_key:
        lines.append(f"Key: {sale.fiscal_key}")
    if sale.status == "CANCELED":
        lines.append("*** CANCELED ***")
    lines.append(LINE)
    lines.append(f"Sale #{sale.number} - {created_at}")

    receipt_text = "\n".join(lines)
    escpos = f"{receipt_text}\n\n{ESC_POS_CUT}".encode("utf-8")

    return {
        "sale_id": sale.id,
        "number": sale.number,
        "tenant": {"name": tenant_name, "tax_id": tenant.tax_id if tenant else None},
        "operator_name": operator_name,
        "register_label": register_label,
        "items": [item.to_dict() for item in sale.items],
        "payments": [payment.to_dict() for payment in sale.payments],
        "subtotal_cents": sale.subtotal_cents,
        "discount_cents": sale.discount_cents,
        "total_cents": sale.total_cents,
        "paid_cents": sale.paid_cents,
        "change_cents": sale.change_cents,
        "fiscal_key": sale.fiscal_key,
        "created_at": created_at,
        "receipt_text": receipt_text,
        "escpos_base64": base64.b64encode(escpos).decode("ascii"),
    }
