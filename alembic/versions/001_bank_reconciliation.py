"""Bookings and bank transactions

Revision ID: 001_bank_reconciliation
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_bank_reconciliation"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Bookings (owned by sales, read by reconciliation)
    op.create_table(
        "bookings",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("booking_number", sa.String(50), nullable=False),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "booking_number", name="uq_bookings_tenant_number"),
    )
    op.create_index("ix_bookings_tenant_id", "bookings", ["tenant_id"])
    op.create_index("ix_bookings_booking_number", "bookings", ["booking_number"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"])
    op.create_index("ix_bookings_booking_date", "bookings", ["booking_date"])

    # Bank statement transactions
    op.create_table(
        "bank_transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("reference", sa.String(300), nullable=True),
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="unmatched"),
        sa.Column("matched_booking_id", sa.BigInteger(), nullable=True),
        sa.Column("match_score", sa.BigInteger(), nullable=True),
        sa.Column("match_method", sa.String(20), nullable=True),
        sa.Column("matched_by_id", sa.BigInteger(), nullable=True),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("import_batch_id", sa.String(64), nullable=False),
        sa.Column("imported_by_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "imported_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("amount <> 0", name="ck_bank_transactions_amount_nonzero"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bank_transactions_tenant_id", "bank_transactions", ["tenant_id"])
    op.create_index(
        "ix_bank_transactions_matched_booking_id", "bank_transactions", ["matched_booking_id"]
    )
    op.create_index(
        "ix_bank_transactions_tenant_status", "bank_transactions", ["tenant_id", "status"]
    )
    op.create_index(
        "ix_bank_transactions_tenant_batch", "bank_transactions", ["tenant_id", "import_batch_id"]
    )
    op.create_index(
        "ix_bank_transactions_tenant_date", "bank_transactions", ["tenant_id", "transaction_date"]
    )


def downgrade() -> None:
    op.drop_table("bank_transactions")
    op.drop_table("bookings")
