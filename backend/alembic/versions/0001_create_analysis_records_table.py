"""Create analysis_records table.

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create analysis_records table."""
    op.create_table(
        "analysis_records",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=False),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("website_url", sa.String(length=2048), nullable=False),
        sa.Column("analysis_type", sa.String(length=50), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'processing'"),
            nullable=False,
        ),
        sa.Column("business_analysis", sa.Text(), nullable=True),
        sa.Column("business_summary", sa.Text(), nullable=True),
        sa.Column(
            "competitors_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
        ),
        sa.Column(
            "competitor_count",
            sa.Integer(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        sa.Column("average_threshold", sa.Float(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('processing', 'completed', 'failed')",
            name="ck_analysis_records_status",
        ),
    )
    op.create_index(
        op.f("ix_analysis_records_user_id"),
        "analysis_records",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_analysis_records_status"),
        "analysis_records",
        ["status"],
        unique=False,
    )
    op.create_index(
        op.f("ix_analysis_records_created_at"),
        "analysis_records",
        ["created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop analysis_records table."""
    op.drop_index(op.f("ix_analysis_records_created_at"), table_name="analysis_records")
    op.drop_index(op.f("ix_analysis_records_status"), table_name="analysis_records")
    op.drop_index(op.f("ix_analysis_records_user_id"), table_name="analysis_records")
    op.drop_table("analysis_records")
