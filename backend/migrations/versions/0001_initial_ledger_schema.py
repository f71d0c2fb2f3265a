"""Initial ledger schema: tenants, users, stock, sales, cash sessions

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-01-05
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None

QUANTITY = sa.Numeric(14, 3)


def _tenant_column():
    return sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False)


def _created_at():
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=False,
    )


def _indexes(table, *columns):
    for column in columns:
        op.create_index(f"ix_{table}_{column}", table, [column], unique=False)


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("tax_id", sa.String(32), nullable=True, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("max_open_cash_sessions", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="ATTENDANT"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("supervisor_pin", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        sqlite_autoincrement=True,
    )
    _indexes("users", "tenant_id", "role", "is_active")

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        sqlite_autoincrement=True,
    )
    _indexes("products", "tenant_id")

    op.create_table(
        "stock_locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("is_sale_source", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_stock_locations_tenant_name"),
        sqlite_autoincrement=True,
    )
    _indexes("stock_locations", "tenant_id")

    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("stock_locations.id"), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_key"),
        sqlite_autoincrement=True,
    )
    _indexes("inventory", "tenant_id", "product_id", "location_id")

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("stock_locations.id"), nullable=False),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("reference", sa.String(64), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )
    _indexes("stock_movements", "tenant_id", "type", "reference", "created_at")
    op.create_index("ix_stock_movements_key", "stock_movements", ["tenant_id", "product_id", "location_id"])

    op.create_table(
        "processed_sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("sale_ref", sa.String(64), nullable=False),
        sa.Column("device_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("client_created_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.UniqueConstraint("tenant_id", "sale_ref", name="uq_processed_sales_tenant_ref"),
        sqlite_autoincrement=True,
    )
    _indexes("processed_sales", "tenant_id")

    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("register_label", sa.String(32), nullable=True),
        sa.Column("opening_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("opening_notes", sa.String(255), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closing_cents", sa.Integer(), nullable=True),
        sa.Column("closing_notes", sa.String(255), nullable=True),
        sa.Column("closed_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("closing_supervisor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("closing_supervisor_role", sa.String(16), nullable=True),
        sa.Column("closing_approval_via", sa.String(16), nullable=True),
        sa.Column("closing_snapshot", sa.JSON(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sqlite_autoincrement=True,
    )
    _indexes("cash_sessions", "tenant_id", "user_id", "closed_at")

    op.create_table(
        "cash_withdrawals",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("cash_session_id", sa.Integer(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(280), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approval_via", sa.String(16), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )
    _indexes("cash_withdrawals", "tenant_id", "cash_session_id")

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("cash_session_id", sa.Integer(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("stock_locations.id"), nullable=True),
        sa.Column("client_sale_id", sa.String(64), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_mode", sa.String(8), nullable=False, server_default="NONE"),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="FINALIZED"),
        sa.Column("fiscal_mode", sa.String(8), nullable=False, server_default="none"),
        sa.Column("fiscal_key", sa.String(128), nullable=True),
        sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approval_via", sa.String(16), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancel_approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "number", name="uq_sales_tenant_number"),
        sqlite_autoincrement=True,
    )
    _indexes("sales", "tenant_id", "cash_session_id", "user_id", "client_sale_id", "status", "created_at")

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_mode", sa.String(8), nullable=False, server_default="NONE"),
        sqlite_autoincrement=True,
    )
    _indexes("sale_items", "sale_id", "product_id")

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("provider_ref", sa.String(128), nullable=True),
        sqlite_autoincrement=True,
    )
    _indexes("payments", "sale_id", "method")

    op.create_table(
        "sale_counters",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("tenant_id", name="uq_sale_counters_tenant"),
        sqlite_autoincrement=True,
    )
    _indexes("sale_counters", "tenant_id")

    op.create_table(
        "fiscal_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("mode", sa.String(8), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("fiscal_key", sa.String(128), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("sale_id", name="uq_fiscal_documents_sale"),
        sqlite_autoincrement=True,
    )
    _indexes("fiscal_documents", "tenant_id", "status")

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("entity_type", sa.String(64), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "action", "idempotency_key", name="uq_audit_logs_idempotency"),
        sqlite_autoincrement=True,
    )
    _indexes("audit_logs", "tenant_id", "action")

    op.create_table(
        "print_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("source", sa.String(32), nullable=True),
        sa.Column("last_error", sa.String(500), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("requested_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("cash_session_id", sa.Integer(), sa.ForeignKey("cash_sessions.id"), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )
    _indexes("print_jobs", "tenant_id", "type", "status")

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("document", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("allow_credit", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_limit_cents", sa.Integer(), nullable=True),
        sa.Column("default_due_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "document", name="uq_customers_tenant_document"),
        sqlite_autoincrement=True,
    )
    _indexes("customers", "tenant_id")

    op.create_table(
        "customer_ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("method", sa.String(16), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_customer_ledger_idempotency"),
        sqlite_autoincrement=True,
    )
    _indexes("customer_ledger_entries", "tenant_id", "customer_id", "created_at")
    op.create_index("ix_customer_ledger_customer_type", "customer_ledger_entries", ["customer_id", "type"])


def downgrade():
    for table in (
        "customer_ledger_entries",
        "customers",
        "print_jobs",
        "audit_logs",
        "fiscal_documents",
        "sale_counters",
        "payments",
        "sale_items",
        "sales",
        "cash_withdrawals",
        "cash_sessions",
        "processed_sales",
        "stock_movements",
        "inventory",
        "stock_locations",
        "products",
        "users",
        "tenants",
    ):
        op.drop_table(table)
