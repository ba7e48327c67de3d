"""settlement claim timestamp

Revision ID: 0003_settlement_claims
Revises: 0002_reclamations_settlements
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0003_settlement_claims"
down_revision = "0002_reclamations_settlements"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("settlement_jobs") as batch:
        batch.add_column(sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("settlement_jobs") as batch:
        batch.drop_column("claimed_at")
