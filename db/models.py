"""SQLAlchemy 2.0 ORM models for the fixed (non-dynamic) tables.

Covers 4 tables in the public schema:
  - clients: tenants, keyed by the human-readable client_code
  - crews: one row per provisioned crew; config JSON names its dynamic tables
  - conversations: metadata mirrored from crew histories tables
  - knowledge_base_documents: metadata mirrored from crew vector tables

The per-crew vector and histories tables are created at runtime by
crews.tables and are deliberately absent from this metadata.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enumerated values used in CHECK constraints
# ---------------------------------------------------------------------------

CREW_TYPES = ("customer_support", "lead_generation")
CREW_STATUSES = ("active", "inactive", "error")
CLIENT_STATUSES = ("active", "inactive", "trial")
SENTIMENTS = ("positive", "neutral", "negative")
DOCUMENT_STATUSES = ("indexed", "processing", "error")


def _in_check(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# ===========================================================================
# Tenants
# ===========================================================================


class Client(Base):
    """clients: a tenant organisation. client_code is immutable once crews exist."""

    __tablename__ = "clients"
    __table_args__ = (
        CheckConstraint(_in_check("status", CLIENT_STATUSES), name="ck_client_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_code: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="trial")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    crews: Mapped[list["Crew"]] = relationship("Crew", back_populates="client")


# ===========================================================================
# Crews
# ===========================================================================


class Crew(Base):
    """crews: a provisioned bot. client_id holds the owning client's client_code."""

    __tablename__ = "crews"
    __table_args__ = (
        CheckConstraint(_in_check("type", CREW_TYPES), name="ck_crew_type"),
        CheckConstraint(_in_check("status", CREW_STATUSES), name="ck_crew_status"),
        Index("ix_crews_client_type", "client_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    client_id: Mapped[str] = mapped_column(
        Text, ForeignKey("clients.client_code"), nullable=False
    )
    crew_code: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    # {"vectorTableName": ..., "historiesTableName": ..., "metadata": {...}}
    config: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=lambda: {"metadata": {}}
    )
    webhook_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="inactive")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    client: Mapped["Client"] = relationship("Client", back_populates="crews")

    @property
    def vector_table_name(self) -> Optional[str]:
        return _config_value(self.config, "vectorTableName")

    @property
    def histories_table_name(self) -> Optional[str]:
        return _config_value(self.config, "historiesTableName")


def _config_value(config: Any, key: str) -> Optional[str]:
    if not isinstance(config, dict):
        return None
    value = config.get(key)
    return value if isinstance(value, str) and value else None


# ===========================================================================
# Derived metadata (populated by discovery)
# ===========================================================================


class Conversation(Base):
    """conversations: one row per chat session found in a histories table."""

    __tablename__ = "conversations"
    __table_args__ = (
        CheckConstraint(
            "sentiment IS NULL OR " + _in_check("sentiment", SENTIMENTS),
            name="ck_conversation_sentiment",
        ),
        Index("ix_conversations_client_id", "client_id"),
        Index("ix_conversations_crew_created", "crew_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    client_id: Mapped[str] = mapped_column(Text, nullable=False)
    crew_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("crews.id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sentiment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, server_default="false", nullable=False)
    duration: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class KnowledgeBaseDocument(Base):
    """knowledge_base_documents: one row per docId found in a vector table."""

    __tablename__ = "knowledge_base_documents"
    __table_args__ = (
        CheckConstraint(
            _in_check("status", DOCUMENT_STATUSES), name="ck_kb_document_status"
        ),
        Index("ix_kb_documents_client_id", "client_id"),
        Index("ix_kb_documents_crew_id", "crew_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    doc_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    client_id: Mapped[str] = mapped_column(Text, nullable=False)
    crew_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("crews.id", ondelete="CASCADE"),
        nullable=False,
    )
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    chunk_count: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="processing")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
