"""vouchers and duitku payment transactions

Revision ID: 0002_vouchers_and_payments
Revises: 0001_init
Create Date: 2026-03-09
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_vouchers_and_payments"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def _table_names() -> set[str]:
    from sqlalchemy import inspect as sa_inspect
    return set(sa_inspect(op.get_bind()).get_table_names())


def _index_names(table: str) -> set[str]:
    from sqlalchemy import inspect as sa_inspect
    inspector = sa_inspect(op.get_bind())
    try:
        return {idx["name"] for idx in inspector.get_indexes(table)}
    except Exception:
        return set()


def upgrade() -> None:
    existing_tables = _table_names()

    if "vouchers" not in existing_tables:
        op.create_table(
            "vouchers",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("store_id", sa.String(), nullable=False),
            sa.Column("code", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("quota", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("quota_used", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="active"),
            sa.Column("discount_kind", sa.String(), nullable=False),
            sa.Column("discount_type", sa.String(), nullable=False, server_default="fixed"),
            sa.Column("discount_value", sa.Numeric(15, 2), nullable=False, server_default="0"),
            sa.Column("min_purchase", sa.Numeric(15, 2), nullable=True),
            sa.Column("max_discount", sa.Numeric(15, 2), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("store_id", "code", name="uq_vouchers_store_code"),
        )
    idxs = _index_names("vouchers")
    if "ix_vouchers_id" not in idxs:
        op.create_index("ix_vouchers_id", "vouchers", ["id"])
    if "ix_vouchers_store_id" not in idxs:
        op.create_index("ix_vouchers_store_id", "vouchers", ["store_id"])
    if "ix_vouchers_code" not in idxs:
        op.create_index("ix_vouchers_code", "vouchers", ["code"])
    if "ix_vouchers_status" not in idxs:
        op.create_index("ix_vouchers_status", "vouchers", ["status"])

    if "payment_transactions" not in existing_tables:
        op.create_table(
            "payment_transactions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("merchant_code", sa.String(), nullable=True),
            sa.Column("merchant_order_id", sa.String(), nullable=False),
            sa.Column("reference", sa.String(), nullable=True),
            sa.Column("payment_method", sa.String(), nullable=True),
            sa.Column("coin_amount", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="pending"),
            sa.Column("result_code", sa.String(), nullable=True),
            sa.Column("payment_code", sa.String(), nullable=True),
            sa.Column("payment_url", sa.String(), nullable=True),
            sa.Column("va_number", sa.String(), nullable=True),
            sa.Column("qr_string", sa.String(), nullable=True),
            sa.Column("callback_reference", sa.String(), nullable=True),
            sa.Column("settlement_date", sa.String(), nullable=True),
            sa.Column("publisher_order_id", sa.String(), nullable=True),
            sa.Column("issuer_code", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = _index_names("payment_transactions")
    if "ix_payment_transactions_id" not in idxs:
        op.create_index("ix_payment_transactions_id", "payment_transactions", ["id"])
    if "ix_payment_transactions_user_id" not in idxs:
        op.create_index("ix_payment_transactions_user_id", "payment_transactions", ["user_id"])
    if "ix_payment_transactions_merchant_order_id" not in idxs:
        op.create_index(
            "ix_payment_transactions_merchant_order_id",
            "payment_transactions",
            ["merchant_order_id"],
            unique=True,
        )
    if "ix_payment_transactions_reference" not in idxs:
        op.create_index("ix_payment_transactions_reference", "payment_transactions", ["reference"])
    if "ix_payment_transactions_status" not in idxs:
        op.create_index("ix_payment_transactions_status", "payment_transactions", ["status"])
    if "ix_payment_transactions_created_at" not in idxs:
        op.create_index("ix_payment_transactions_created_at", "payment_transactions", ["created_at"])


def downgrade() -> None:
    idxs = _index_names("payment_transactions")
    for name in (
        "ix_payment_transactions_created_at",
        "ix_payment_transactions_status",
        "ix_payment_transactions_reference",
        "ix_payment_transactions_merchant_order_id",
        "ix_payment_transactions_user_id",
        "ix_payment_transactions_id",
    ):
        if name in idxs:
            op.drop_index(name, table_name="payment_transactions")
    if "payment_transactions" in _table_names():
        op.drop_table("payment_transactions")

    idxs = _index_names("vouchers")
    for name in ("ix_vouchers_status", "ix_vouchers_code", "ix_vouchers_store_id", "ix_vouchers_id"):
        if name in idxs:
            op.drop_index(name, table_name="vouchers")
    if "vouchers" in _table_names():
        op.drop_table("vouchers")
