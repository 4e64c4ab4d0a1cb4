"""Knowledge-base repository: document metadata mirrored from vector tables."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Crew, KnowledgeBaseDocument
from db.repositories import vectors

logger = logging.getLogger(__name__)


async def get_documents(
    session: AsyncSession,
    *,
    client_id: Optional[str] = None,
    crew_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[KnowledgeBaseDocument]:
    """Return document metadata, newest first."""
    stmt = select(KnowledgeBaseDocument)
    if client_id is not None:
        stmt = stmt.where(KnowledgeBaseDocument.client_id == client_id)
    if crew_id is not None:
        stmt = stmt.where(KnowledgeBaseDocument.crew_id == crew_id)
    if status is not None:
        stmt = stmt.where(KnowledgeBaseDocument.status == status)
    result = await session.execute(
        stmt.order_by(KnowledgeBaseDocument.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


async def get_by_doc_id(session: AsyncSession, doc_id: str) -> Optional[KnowledgeBaseDocument]:
    result = await session.execute(
        select(KnowledgeBaseDocument).where(KnowledgeBaseDocument.doc_id == doc_id)
    )
    return result.scalar_one_or_none()


async def get_document_with_chunks(
    session: AsyncSession, doc_id: str
) -> Optional[dict[str, Any]]:
    """Return a document's metadata plus its chunks from the crew's vector table."""
    doc = await get_by_doc_id(session, doc_id)
    if doc is None:
        return None
    crew = await session.get(Crew, doc.crew_id)
    if crew is None:
        return None

    chunks: list[dict[str, Any]] = []
    if crew.vector_table_name:
        try:
            chunks = await vectors.get_document_chunks(session, crew.vector_table_name, doc_id)
        except Exception:
            logger.warning(
                "Failed to read chunks for doc_id=%s table=%s",
                doc_id,
                crew.vector_table_name,
                exc_info=True,
            )
    return {"document": doc, "chunks": chunks}


async def get_known_doc_ids(session: AsyncSession, client_id: str) -> set[str]:
    """Return doc ids already recorded for a client."""
    result = await session.execute(
        select(KnowledgeBaseDocument.doc_id).where(KnowledgeBaseDocument.client_id == client_id)
    )
    return {row[0] for row in result.all()}


async def insert_if_absent(session: AsyncSession, data: dict) -> Optional[UUID]:
    """Insert document metadata unless doc_id is already known. Returns the new id or None.

    data dict keys: doc_id, client_id, crew_id, filename, file_type, file_size,
    chunk_count, status, created_at
    """
    stmt = (
        pg_insert(KnowledgeBaseDocument)
        .values(**data)
        .on_conflict_do_nothing(index_elements=["doc_id"])
        .returning(KnowledgeBaseDocument.id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def delete_document(session: AsyncSession, doc_id: str, vector_table_name: str) -> int:
    """Delete a document's chunks and its metadata row. Returns chunks removed."""
    removed = await vectors.delete_document_chunks(session, vector_table_name, doc_id)
    await session.execute(
        sa_delete(KnowledgeBaseDocument).where(KnowledgeBaseDocument.doc_id == doc_id)
    )
    await session.flush()
    logger.info("Deleted document doc_id=%s chunks=%d table=%s", doc_id, removed, vector_table_name)
    return removed
