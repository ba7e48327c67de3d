"""reclamations, attachments, settlement outbox, audit logs

Revision ID: 0002_reclamations_settlements
Revises: 0001_initial
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_reclamations_settlements"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "reclamations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("complainant_id", sa.String(length=36), nullable=False),
        sa.Column("complainant_role", sa.String(length=10), nullable=False),
        sa.Column("target_user_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="OPEN"),
        sa.Column("severity", sa.String(length=10), nullable=False, server_default="MEDIUM"),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("penalty_points", sa.Integer(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("booking_id", "complainant_id", name="uq_reclamations_booking_complainant"),
    )
    op.create_index("ix_reclamations_booking_id", "reclamations", ["booking_id"])
    op.create_index("ix_reclamations_complainant_id", "reclamations", ["complainant_id"])
    op.create_index("ix_reclamations_target_user_id", "reclamations", ["target_user_id"])
    op.create_index("ix_reclamations_type", "reclamations", ["type"])
    op.create_index("ix_reclamations_status", "reclamations", ["status"])

    op.create_table(
        "reclamation_attachments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("reclamation_id", sa.String(length=36), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("content_type", sa.String(length=100), nullable=False, server_default="application/octet-stream"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_reclamation_attachments_reclamation_id", "reclamation_attachments", ["reclamation_id"])

    op.create_table(
        "settlement_jobs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("transaction_hash", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_settlement_jobs_booking_id", "settlement_jobs", ["booking_id"], unique=True)
    op.create_index("ix_settlement_jobs_status", "settlement_jobs", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("settlement_jobs")
    op.drop_table("reclamation_attachments")
    op.drop_table("reclamations")
