"""Knowledge-base document discovery.

Mirrors the documents found in each customer_support crew's vector table
into knowledge_base_documents. Chunks are grouped by metadata docId; chunks
written before docIds existed are grouped by title and given a docId derived
from the crew id and the canonical title, so repeated runs converge on the
same id.
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crews.tables import table_exists
from db.identifiers import validate_identifier
from db.repositories import crews as crews_repo
from db.repositories import knowledge_base as kb_repo
from db.repositories import vectors
from errors import is_unique_violation
from schemas.discovery import DiscoveryResult

logger = logging.getLogger(__name__)

DEFAULT_FILE_TYPE = "application/pdf"
UNKNOWN_FILENAME = "Unknown Document"


def canonical_title(title: str) -> str:
    return " ".join(title.split()).casefold()


def derive_document_id(crew_id: uuid.UUID, title: str) -> str:
    """Stable docId for chunks that carry a title but no docId."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"crew:{crew_id}/doc:{canonical_title(title)}"))


def _parse_file_size(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_document_record(crew_id: uuid.UUID, client_id: str, group: dict) -> Optional[dict]:
    """knowledge_base_documents row for one chunk group, or None if it has no identity."""
    doc_id = group.get("doc_id")
    title = group.get("title")
    if not doc_id:
        if not title or not title.strip():
            return None
        doc_id = derive_document_id(crew_id, title)

    return {
        "doc_id": doc_id,
        "client_id": client_id,
        "crew_id": crew_id,
        "filename": group.get("filename") or title or UNKNOWN_FILENAME,
        "file_type": group.get("file_type") or DEFAULT_FILE_TYPE,
        "file_size": _parse_file_size(group.get("file_size")),
        "chunk_count": int(group.get("chunk_count") or 0),
        "status": "indexed",
        "created_at": group.get("created_at") or datetime.now(timezone.utc),
    }


async def discover_documents(
    session: AsyncSession, client_id: str, *, log: logging.Logger = logger
) -> DiscoveryResult:
    """Record every document in the client's vector tables that has no metadata row yet.

    Idempotent. A crew whose vector table is invalid or unreadable counts as
    one error; a crew whose table does not exist is skipped.
    """
    started = time.monotonic()
    result = DiscoveryResult()

    support_crews = await crews_repo.get_by_client(session, client_id, "customer_support")
    known = await kb_repo.get_known_doc_ids(session, client_id)
    log.info(
        "Document discovery started client=%s crews=%d known_documents=%d",
        client_id,
        len(support_crews),
        len(known),
    )

    for crew in support_crews:
        table_name = crew.vector_table_name
        if not table_name:
            log.info("Crew %s has no vector table configured", crew.crew_code)
            continue

        try:
            validate_identifier(table_name)
            async with session.begin_nested():
                exists = await table_exists(session, table_name)
                groups = await vectors.get_document_groups(session, table_name) if exists else []
        except Exception:
            log.error(
                "Failed to scan vector table %s for crew %s",
                table_name,
                crew.crew_code,
                exc_info=True,
            )
            result.error_count += 1
            continue

        if not exists:
            log.warning("Vector table %s for crew %s does not exist", table_name, crew.crew_code)
            continue
        result.crews_scanned += 1

        for group in groups:
            data = build_document_record(crew.id, client_id, group)
            if data is None:
                continue
            if data["doc_id"] in known:
                result.skipped_count += 1
                continue
            try:
                async with session.begin_nested():
                    created = await kb_repo.insert_if_absent(session, data)
            except Exception as exc:
                if is_unique_violation(exc):
                    known.add(data["doc_id"])
                    result.skipped_count += 1
                    continue
                log.error(
                    "Failed to record document %s from %s", data["doc_id"], table_name, exc_info=True
                )
                result.error_count += 1
                continue

            known.add(data["doc_id"])
            if created is None:
                result.skipped_count += 1
            else:
                result.new_count += 1
                log.info(
                    "Indexed document %r doc_id=%s chunks=%d",
                    data["filename"],
                    data["doc_id"],
                    data["chunk_count"],
                )

    log.info(
        "Document discovery completed client=%s new=%d skipped=%d errors=%d duration_ms=%d",
        client_id,
        result.new_count,
        result.skipped_count,
        result.error_count,
        int((time.monotonic() - started) * 1000),
    )
    return result
