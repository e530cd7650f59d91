"""User agreement acceptances

Revision ID: 002
Revises: 001
Create Date: 2026-02-02 00:00:00.000000+00:00

What:  Adds user_agreements, one row per user per accepted agreement
       version.

Rollback: downgrade() drops the table (acceptances are lost).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user_agreements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.String(255),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("agreement_version", sa.String(20), nullable=False),
        sa.Column(
            "accepted_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "agreement_version", name="uq_user_agreements_user_version"),
    )


def downgrade() -> None:
    op.drop_table("user_agreements")
