"""Vector-table queries.

Vector tables hold document chunks: (id uuid, content text, metadata jsonb,
embedding vector, created_at timestamptz). The metadata carries docId,
filename, fileType, fileSize and chunkIndex; older ingestions only set
title (or Title).
"""
import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from db.identifiers import quote_identifier, validate_identifier

logger = logging.getLogger(__name__)


async def get_document_groups(session: AsyncSession, table_name: str) -> list[dict[str, Any]]:
    """Group chunks by document.

    Rows with a docId are grouped by it; rows without one are grouped by
    their title. Each group reports chunk_count and the earliest created_at.
    """
    table = quote_identifier(validate_identifier(table_name))
    result = await session.execute(
        text(
            f"""
            SELECT metadata->>'docId' AS doc_id,
                   CASE WHEN metadata->>'docId' IS NULL
                        THEN COALESCE(metadata->>'title', metadata->>'Title') END AS title,
                   MAX(metadata->>'filename') AS filename,
                   MAX(metadata->>'fileType') AS file_type,
                   MAX(metadata->>'fileSize') AS file_size,
                   COUNT(*) AS chunk_count,
                   MIN(created_at) AS created_at
            FROM {table}
            WHERE metadata->>'docId' IS NOT NULL
               OR COALESCE(metadata->>'title', metadata->>'Title') IS NOT NULL
            GROUP BY 1, 2
            ORDER BY MIN(created_at)
            """
        )
    )
    return [dict(row) for row in result.mappings().all()]


async def get_document_chunks(
    session: AsyncSession, table_name: str, doc_id: str
) -> list[dict[str, Any]]:
    """Return the chunks of one document ordered by chunkIndex."""
    table = quote_identifier(validate_identifier(table_name))
    result = await session.execute(
        text(
            f"SELECT id, content, metadata, created_at FROM {table} "
            f"WHERE metadata->>'docId' = :doc_id "
            f"ORDER BY (metadata->>'chunkIndex')::int ASC NULLS LAST"
        ),
        {"doc_id": doc_id},
    )
    return [dict(row) for row in result.mappings().all()]


async def delete_document_chunks(session: AsyncSession, table_name: str, doc_id: str) -> int:
    """Delete every chunk of a document. Returns the number of chunks removed."""
    table = quote_identifier(validate_identifier(table_name))
    result = await session.execute(
        text(f"DELETE FROM {table} WHERE metadata->>'docId' = :doc_id RETURNING id"),
        {"doc_id": doc_id},
    )
    return len(result.all())
