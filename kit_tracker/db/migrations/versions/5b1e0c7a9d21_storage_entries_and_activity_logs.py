"""storage entries and activity logs

Revision ID: 5b1e0c7a9d21
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "5b1e0c7a9d21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "storage_entries",
        sa.Column("key", sa.String(length=100), primary_key=True),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=True),
        sa.Column("level", sa.String(length=20), nullable=False),
        sa.Column("logger", sa.String(length=200), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_activity_logs_ts", "activity_logs", ["ts"], unique=False)
    op.create_index("ix_activity_logs_level", "activity_logs", ["level"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_logs_level", table_name="activity_logs")
    op.drop_index("ix_activity_logs_ts", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_table("storage_entries")
