"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-03-02
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("profiles")
    if "ix_profiles_id" not in idxs:
        op.create_index("ix_profiles_id", "profiles", ["id"])
    if "ix_profiles_email" not in idxs:
        op.create_index("ix_profiles_email", "profiles", ["email"])

    if "stores" not in existing_tables:
        op.create_table(
            "stores",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("owner_id", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("subdomain", sa.String(), nullable=False),
            sa.Column("custom_domain", sa.String(), nullable=True, unique=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("stores")
    if "ix_stores_id" not in idxs:
        op.create_index("ix_stores_id", "stores", ["id"])
    if "ix_stores_owner_id" not in idxs:
        op.create_index("ix_stores_owner_id", "stores", ["owner_id"])
    if "ix_stores_subdomain" not in idxs:
        op.create_index("ix_stores_subdomain", "stores", ["subdomain"], unique=True)

    if "coin_accounts" not in existing_tables:
        op.create_table(
            "coin_accounts",
            sa.Column("user_id", sa.String(), primary_key=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("coin_accounts")
    if "ix_coin_accounts_user_id" not in idxs:
        op.create_index("ix_coin_accounts_user_id", "coin_accounts", ["user_id"])

    if "coin_transactions" not in existing_tables:
        op.create_table(
            "coin_transactions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=False),
            sa.Column("credit_amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("debit_amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(), nullable=False, server_default="success"),
            sa.Column("reference", sa.String(), nullable=True, unique=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.CheckConstraint("credit_amount >= 0", name="ck_coin_transactions_credit_nonneg"),
            sa.CheckConstraint("debit_amount >= 0", name="ck_coin_transactions_debit_nonneg"),
        )
    idxs = existing_indexes("coin_transactions")
    if "ix_coin_transactions_id" not in idxs:
        op.create_index("ix_coin_transactions_id", "coin_transactions", ["id"])
    if "ix_coin_transactions_user_id" not in idxs:
        op.create_index("ix_coin_transactions_user_id", "coin_transactions", ["user_id"])
    if "ix_coin_transactions_status" not in idxs:
        op.create_index("ix_coin_transactions_status", "coin_transactions", ["status"])
    if "ix_coin_transactions_created_at" not in idxs:
        op.create_index("ix_coin_transactions_created_at", "coin_transactions", ["created_at"])

    if "generation_histories" not in existing_tables:
        op.create_table(
            "generation_histories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=False),
            sa.Column("result_url", sa.String(), nullable=True),
            sa.Column("coin_used", sa.Integer(), nullable=False),
            sa.Column("coin_transaction_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("generation_histories")
    if "ix_generation_histories_id" not in idxs:
        op.create_index("ix_generation_histories_id", "generation_histories", ["id"])
    if "ix_generation_histories_user_id" not in idxs:
        op.create_index("ix_generation_histories_user_id", "generation_histories", ["user_id"])
    if "ix_generation_histories_coin_transaction_id" not in idxs:
        op.create_index("ix_generation_histories_coin_transaction_id", "generation_histories", ["coin_transaction_id"])


def downgrade() -> None:
    op.drop_index("ix_generation_histories_coin_transaction_id", table_name="generation_histories")
    op.drop_index("ix_generation_histories_user_id", table_name="generation_histories")
    op.drop_index("ix_generation_histories_id", table_name="generation_histories")
    op.drop_table("generation_histories")

    op.drop_index("ix_coin_transactions_created_at", table_name="coin_transactions")
    op.drop_index("ix_coin_transactions_status", table_name="coin_transactions")
    op.drop_index("ix_coin_transactions_user_id", table_name="coin_transactions")
    op.drop_index("ix_coin_transactions_id", table_name="coin_transactions")
    op.drop_table("coin_transactions")

    op.drop_index("ix_coin_accounts_user_id", table_name="coin_accounts")
    op.drop_table("coin_accounts")

    op.drop_index("ix_stores_subdomain", table_name="stores")
    op.drop_index("ix_stores_owner_id", table_name="stores")
    op.drop_index("ix_stores_id", table_name="stores")
    op.drop_table("stores")

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_index("ix_profiles_id", table_name="profiles")
    op.drop_table("profiles")
