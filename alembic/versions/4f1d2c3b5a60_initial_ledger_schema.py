"""initial ledger schema

Revision ID: 4f1d2c3b5a60
Revises:
Create Date: 2026-10-18 09:12:40.118265

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1d2c3b5a60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid():
    return postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "tenants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("business_name", sa.String(150), nullable=False),
        sa.Column("vendor_code", sa.String(12), nullable=False),
        sa.Column("home_currency", sa.String(3), nullable=False, server_default="NGN"),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.TIMESTAMP(), nullable=True),
        sa.UniqueConstraint("vendor_code", name="uq_tenants_vendor_code"),
    )

    op.create_table(
        "customers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=False),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("whatsapp_name", sa.String(100)),
        sa.Column("opted_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("opted_in_at", sa.TIMESTAMP()),
        sa.Column("loyalty_status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text()),
        sa.Column("conversation_state", sa.JSON(), nullable=True),
        sa.Column("total_purchases", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_spent_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_purchase_at", sa.TIMESTAMP()),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.TIMESTAMP(), nullable=True),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])
    # phone is unique per tenant among live customers
    op.create_index(
        "uq_customers_tenant_phone_live",
        "customers",
        ["tenant_id", "phone_number"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "points_balances",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("current_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_redeemed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_earned_at", sa.TIMESTAMP()),
        sa.Column("last_redeemed_at", sa.TIMESTAMP()),
        sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "customer_id", name="uq_points_balances_tenant_customer"),
        sa.CheckConstraint("current_balance >= 0", name="ck_points_balances_non_negative"),
    )

    op.create_table(
        "points_transactions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255)),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_by_user_id", sa.String(100)),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.UniqueConstraint("customer_id", "sequence", name="uq_points_transactions_customer_sequence"),
    )
    op.create_index("ix_points_transactions_customer_id", "points_transactions", ["customer_id"])

    op.create_table(
        "purchase_claims",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("phone_number", sa.String(32)),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("purchase_date", sa.TIMESTAMP(), nullable=False),
        sa.Column("channel", sa.String(50), nullable=False, server_default="physical_store"),
        sa.Column("receipt_url", sa.String(1000)),
        sa.Column("description", sa.String(500)),
        sa.Column("fraud_flags", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.String(500)),
        sa.Column("reviewed_by_user_id", sa.String(100)),
        sa.Column("reviewed_at", sa.TIMESTAMP()),
        sa.Column("purchase_id", _uuid(), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
    )
    op.create_index("ix_purchase_claims_tenant_id", "purchase_claims", ["tenant_id"])
    op.create_index("ix_purchase_claims_customer_id", "purchase_claims", ["customer_id"])
    op.create_index("ix_purchase_claims_status_expires_at", "purchase_claims", ["status", "expires_at"])

    op.create_table(
        "purchases",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source", sa.String(20), nullable=False, server_default="vendor"),
        sa.Column("channel", sa.String(50)),
        sa.Column("description", sa.String(500)),
        sa.Column("receipt_url", sa.String(1000)),
        sa.Column("claim_id", _uuid(), sa.ForeignKey("purchase_claims.id"), nullable=True),
        sa.Column("logged_by_user_id", sa.String(100)),
        sa.Column("purchase_date", sa.TIMESTAMP(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
    )
    op.create_index("ix_purchases_tenant_id", "purchases", ["tenant_id"])
    op.create_index("ix_purchases_customer_id", "purchases", ["customer_id"])

    op.create_table(
        "rewards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500)),
        sa.Column("category", sa.String(50)),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.Column("monetary_value_minor", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("max_redemptions_per_customer", sa.Integer(), nullable=True),
        sa.Column("total_redemptions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_from", sa.TIMESTAMP(), nullable=True),
        sa.Column("valid_until", sa.TIMESTAMP(), nullable=True),
        sa.Column("terms_and_conditions", sa.Text()),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.TIMESTAMP(), nullable=True),
        sa.CheckConstraint("stock_quantity IS NULL OR stock_quantity >= 0", name="ck_rewards_stock_non_negative"),
    )
    op.create_index("ix_rewards_tenant_id", "rewards", ["tenant_id"])

    op.create_table(
        "redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("reward_id", _uuid(), sa.ForeignKey("rewards.id"), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("redemption_code", sa.String(20), nullable=False),
        sa.Column("points_used", sa.Integer(), nullable=False),
        sa.Column("stock_reserved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("idempotency_key", sa.String(150), nullable=True),
        sa.Column("verified_at", sa.TIMESTAMP()),
        sa.Column("verified_by_user_id", sa.String(100)),
        sa.Column("fulfilled_at", sa.TIMESTAMP()),
        sa.Column("fulfilment_notes", sa.String(500)),
        sa.Column("cancelled_at", sa.TIMESTAMP()),
        sa.Column("cancellation_reason", sa.String(500)),
        sa.Column("expires_at", sa.TIMESTAMP(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.UniqueConstraint("redemption_code", name="uq_redemptions_redemption_code"),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_redemptions_tenant_idempotency_key"),
    )
    op.create_index("ix_redemptions_tenant_id", "redemptions", ["tenant_id"])
    op.create_index("ix_redemptions_customer_id", "redemptions", ["customer_id"])
    op.create_index("ix_redemptions_status_expires_at", "redemptions", ["status", "expires_at"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.String(2000)),
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.Column("sent_at", sa.TIMESTAMP()),
    )
    op.create_index("ix_notification_outbox_status_created_at", "notification_outbox", ["status", "created_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_notification_outbox_status_created_at", table_name="notification_outbox")
    op.drop_table("notification_outbox")

    op.drop_index("ix_redemptions_status_expires_at", table_name="redemptions")
    op.drop_index("ix_redemptions_customer_id", table_name="redemptions")
    op.drop_index("ix_redemptions_tenant_id", table_name="redemptions")
    op.drop_table("redemptions")

    op.drop_index("ix_rewards_tenant_id", table_name="rewards")
    op.drop_table("rewards")

    op.drop_index("ix_purchases_customer_id", table_name="purchases")
    op.drop_index("ix_purchases_tenant_id", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("ix_purchase_claims_status_expires_at", table_name="purchase_claims")
    op.drop_index("ix_purchase_claims_customer_id", table_name="purchase_claims")
    op.drop_index("ix_purchase_claims_tenant_id", table_name="purchase_claims")
    op.drop_table("purchase_claims")

    op.drop_index("ix_points_transactions_customer_id", table_name="points_transactions")
    op.drop_table("points_transactions")

    op.drop_table("points_balances")

    op.drop_index("uq_customers_tenant_phone_live", table_name="customers")
    op.drop_index("ix_customers_tenant_id", table_name="customers")
    op.drop_table("customers")

    op.drop_table("tenants")
