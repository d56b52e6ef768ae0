"""create visitors table

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

import sqlalchemy as sa

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "visitors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("company", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("arrived_at", sa.DateTime(), nullable=True),
        sa.Column("left_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_visitors_status", "visitors", ["status"])
    op.create_index("ix_visitors_visit_date", "visitors", ["visit_date"])
    op.create_index("ix_visitors_created_at", "visitors", ["created_at"])
    op.create_index(
        "ix_visitors_name_company_created_at", "visitors", ["name", "company", "created_at"]
    )


def downgrade():
    op.drop_index("ix_visitors_name_company_created_at", table_name="visitors")
    op.drop_index("ix_visitors_created_at", table_name="visitors")
    op.drop_index("ix_visitors_visit_date", table_name="visitors")
    op.drop_index("ix_visitors_status", table_name="visitors")
    op.drop_table("visitors")
