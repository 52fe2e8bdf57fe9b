"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the reconciliation tables:
- purchase_records: one row per Google Play purchase token
- user_devices: FCM registration tokens per user
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_18_0000"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ========================================================================
    # purchase_records
    # ========================================================================
    op.create_table(
        "purchase_records",
        sa.Column("purchase_token", sa.String(length=4096), nullable=False),
        sa.Column("package_name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=255), nullable=False),
        sa.Column("sku_type", sa.String(length=10), nullable=False),
        sa.Column("form_of_payment", sa.String(length=50), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column(
            "replaced_by_another_purchase",
            sa.Boolean(),
            nullable=False,
            server_default="false",
        ),
        sa.Column("is_mutable", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("latest_notification_type", sa.Integer(), nullable=True),
        sa.Column("verified_at", sa.BigInteger(), nullable=False),
        sa.Column("order_id", sa.String(length=255), nullable=True),
        sa.Column("purchase_type", sa.Integer(), nullable=True),
        sa.Column("developer_payload", sa.Text(), nullable=True),
        # Subscriptions
        sa.Column("start_time_millis", sa.BigInteger(), nullable=True),
        sa.Column("expiry_time_millis", sa.BigInteger(), nullable=True),
        sa.Column("auto_renewing", sa.Boolean(), nullable=True),
        sa.Column("price_currency_code", sa.String(length=3), nullable=True),
        sa.Column("price_amount_micros", sa.BigInteger(), nullable=True),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("payment_state", sa.Integer(), nullable=True),
        sa.Column("cancel_reason", sa.Integer(), nullable=True),
        sa.Column("user_cancellation_time_millis", sa.BigInteger(), nullable=True),
        sa.Column("linked_purchase_token", sa.String(length=4096), nullable=True),
        # One-time products
        sa.Column("purchase_time_millis", sa.BigInteger(), nullable=True),
        sa.Column("purchase_state", sa.Integer(), nullable=True),
        sa.Column("consumption_state", sa.Integer(), nullable=True),
        sa.Column("acknowledgement_state", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("purchase_token"),
        sa.CheckConstraint("sku_type IN ('inapp', 'subs')", name="ck_purchase_records_sku_type"),
    )
    op.create_index(
        "idx_purchase_records_user_current",
        "purchase_records",
        ["user_id", "form_of_payment", "sku_type", "is_mutable"],
    )
    op.create_index(
        "idx_purchase_records_linked_token", "purchase_records", ["linked_purchase_token"]
    )

    # ========================================================================
    # user_devices
    # ========================================================================
    op.create_table(
        "user_devices",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("device_token", sa.String(length=4096), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "device_token", name="uq_user_devices_user_token"),
    )
    op.create_index("idx_user_devices_user_id", "user_devices", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_user_devices_user_id", table_name="user_devices")
    op.drop_table("user_devices")

    op.drop_index("idx_purchase_records_linked_token", table_name="purchase_records")
    op.drop_index("idx_purchase_records_user_current", table_name="purchase_records")
    op.drop_table("purchase_records")
