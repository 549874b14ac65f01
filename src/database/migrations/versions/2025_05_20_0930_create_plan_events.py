"""create_plan_events

Revision ID: 8f2c41d07a1b
Revises:
Create Date: 2025-05-20 09:30:12.418093

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "8f2c41d07a1b"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plan_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("stripe_event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(), nullable=True),
        sa.Column("stripe_invoice_id", sa.String(), nullable=True),
        sa.Column("ms_member_id", sa.String(), nullable=True),
        sa.Column("ms_app_id", sa.String(), nullable=True),
        sa.Column("ms_plan_id", sa.String(), nullable=True),
        sa.Column("ms_price_id", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_event_id"),
    )

    # History lookups by member or by customer, in time order
    op.create_index(
        "ix_plan_events_member_created",
        "plan_events",
        ["ms_member_id", "created_at"],
    )
    op.create_index(
        "ix_plan_events_customer_created",
        "plan_events",
        ["stripe_customer_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_plan_events_customer_created", table_name="plan_events")
    op.drop_index("ix_plan_events_member_created", table_name="plan_events")
    op.drop_table("plan_events")
