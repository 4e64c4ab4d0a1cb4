"""Initial schema: clients, crews, conversations, knowledge_base_documents.

Also enables the pgvector extension used by the per-crew vector tables.
The per-crew tables themselves are created at runtime and never migrated.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # ─── Tenants ─────────────────────────────────────────────────────────────

    op.create_table(
        "clients",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("client_code", sa.Text, nullable=False),
        sa.Column("company_name", sa.Text, nullable=False),
        sa.Column("contact_email", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="trial"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('active', 'inactive', 'trial')", name="ck_client_status"),
        sa.UniqueConstraint("client_code", name="uq_client_code"),
    )

    # ─── Crews ───────────────────────────────────────────────────────────────

    op.create_table(
        "crews",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("client_id", sa.Text, nullable=False),
        sa.Column("crew_code", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("config", sa.JSON, nullable=False),
        sa.Column("webhook_url", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="inactive"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("type IN ('customer_support', 'lead_generation')", name="ck_crew_type"),
        sa.CheckConstraint("status IN ('active', 'inactive', 'error')", name="ck_crew_status"),
        sa.UniqueConstraint("crew_code", name="uq_crew_code"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.client_code"], name="fk_crew_client"),
    )
    op.create_index("ix_crews_client_type", "crews", ["client_id", "type"])

    # ─── Metadata mirrored by discovery ─────────────────────────────────────

    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", sa.Text, nullable=False),
        sa.Column("client_id", sa.Text, nullable=False),
        sa.Column("crew_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_name", sa.Text, nullable=True),
        sa.Column("customer_email", sa.Text, nullable=True),
        sa.Column("sentiment", sa.Text, nullable=True),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("duration", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "sentiment IS NULL OR sentiment IN ('positive', 'neutral', 'negative')",
            name="ck_conversation_sentiment",
        ),
        sa.UniqueConstraint("session_id", name="uq_conversation_session_id"),
        sa.ForeignKeyConstraint(["crew_id"], ["crews.id"], name="fk_conversation_crew", ondelete="CASCADE"),
    )
    op.create_index("ix_conversations_client_id", "conversations", ["client_id"])
    op.create_index("ix_conversations_crew_created", "conversations", ["crew_id", "created_at"])

    op.create_table(
        "knowledge_base_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("doc_id", sa.Text, nullable=False),
        sa.Column("client_id", sa.Text, nullable=False),
        sa.Column("crew_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("filename", sa.Text, nullable=False),
        sa.Column("file_type", sa.Text, nullable=False),
        sa.Column("file_size", sa.Integer, nullable=True),
        sa.Column("chunk_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.Text, nullable=False, server_default="processing"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('indexed', 'processing', 'error')", name="ck_kb_document_status"),
        sa.UniqueConstraint("doc_id", name="uq_kb_document_doc_id"),
        sa.ForeignKeyConstraint(["crew_id"], ["crews.id"], name="fk_kb_document_crew", ondelete="CASCADE"),
    )
    op.create_index("ix_kb_documents_client_id", "knowledge_base_documents", ["client_id"])
    op.create_index("ix_kb_documents_crew_id", "knowledge_base_documents", ["crew_id"])


def downgrade() -> None:
    op.drop_index("ix_kb_documents_crew_id", table_name="knowledge_base_documents")
    op.drop_index("ix_kb_documents_client_id", table_name="knowledge_base_documents")
    op.drop_index("ix_conversations_crew_created", table_name="conversations")
    op.drop_index("ix_conversations_client_id", table_name="conversations")
    op.drop_index("ix_crews_client_type", table_name="crews")

    op.drop_table("knowledge_base_documents")
    op.drop_table("conversations")
    op.drop_table("crews")
    op.drop_table("clients")
