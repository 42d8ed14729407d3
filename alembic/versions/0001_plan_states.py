"""plan states

Revision ID: 0001_plan_states
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_plan_states"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plan_states",
        sa.Column("website_id", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("plan_id", sa.String(length=255), nullable=False),
        sa.Column("free_trial_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_billing_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_scheduler_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_notified_5d", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("trial_notified_3d", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("trial_notified_1d", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("trial_ended_action_taken", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("billing_notified_5d", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("billing_notified_3d", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("billing_notified_1d", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )


def downgrade() -> None:
    op.drop_table("plan_states")
