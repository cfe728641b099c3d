"""trip ledger schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "trip_groups",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("created_by", sa.BigInteger(), nullable=False),
        sa.Column("destination", sa.Text()),
        sa.Column("start_date", sa.DateTime(timezone=True)),
        sa.Column("end_date", sa.DateTime(timezone=True)),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("budget_total_cents", sa.BigInteger()),
        sa.Column("budget_categories", postgresql.JSONB()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status in ('active','archived')", name="trip_groups_status_check"),
    )

    op.create_table(
        "trip_members",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("trip_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger()),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("group_id", "user_id", name="trip_members_group_user_key"),
    )

    # Member references below carry no foreign key: a member with settled
    # history may be removed while their old records stay in the ledger.
    op.create_table(
        "trip_expenses",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("trip_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False, server_default="Other"),
        sa.Column("paid_by", sa.BigInteger(), nullable=False),
        sa.Column("spent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("split_policy", sa.Text(), nullable=False, server_default="equal"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("added_by", sa.BigInteger()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents > 0", name="trip_expenses_amount_check"),
        sa.CheckConstraint("split_policy in ('equal','custom','percentage')", name="trip_expenses_policy_check"),
    )

    op.create_table(
        "trip_expense_splits",
        sa.Column(
            "expense_id",
            sa.BigInteger(),
            sa.ForeignKey("trip_expenses.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.BigInteger(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("percentage", sa.Numeric(7, 4)),
        sa.CheckConstraint("amount_cents >= 0", name="trip_expense_splits_amount_check"),
    )

    op.create_table(
        "trip_settlements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("trip_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_member_id", sa.BigInteger(), nullable=False),
        sa.Column("to_member_id", sa.BigInteger(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("method", sa.Text(), nullable=False, server_default="cash"),
        sa.Column("reference", sa.Text()),
        sa.Column("recorded_by", sa.BigInteger()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents > 0", name="trip_settlements_amount_check"),
        sa.CheckConstraint("from_member_id <> to_member_id", name="trip_settlements_parties_check"),
        sa.CheckConstraint("method in ('cash','upi','bank_transfer','other')", name="trip_settlements_method_check"),
    )

    op.create_index("idx_trip_members_group", "trip_members", ["group_id"])
    op.create_index("idx_trip_expenses_group", "trip_expenses", ["group_id"])
    op.create_index("idx_trip_settlements_group", "trip_settlements", ["group_id"])


def downgrade() -> None:
    op.drop_index("idx_trip_settlements_group", table_name="trip_settlements")
    op.drop_index("idx_trip_expenses_group", table_name="trip_expenses")
    op.drop_index("idx_trip_members_group", table_name="trip_members")

    op.drop_table("trip_settlements")
    op.drop_table("trip_expense_splits")
    op.drop_table("trip_expenses")
    op.drop_table("trip_members")
    op.drop_table("trip_groups")
