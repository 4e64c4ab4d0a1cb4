"""Incremental (watermark-based) conversation discovery.

For each crew the newest created_at among its recorded conversations is the
watermark; only sessions with messages after it are considered. Because a
conversation's created_at is its first message time, sessions that are still
active show up again and are filtered out against the crew's known session
ids. Work is committed per batch so a late failure keeps earlier progress.

Produces the same conversation rows as discovery.conversations, without
scanning whole histories tables on every run.
"""
import logging
import time
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import discovery_batch_size
from db.identifiers import validate_identifier
from db.repositories import conversations as conversations_repo
from db.repositories import crews as crews_repo
from db.repositories import histories
from discovery.conversations import build_conversation_record
from discovery.transcripts import mask_email
from errors import is_unique_violation
from schemas.discovery import CrewDiscoveryResult, DiscoveryResult

logger = logging.getLogger(__name__)

CREATED = "created"
DUPLICATE = "duplicate"
EMPTY = "empty"


async def _discover_session(
    session: AsyncSession,
    *,
    table_name: str,
    session_id: str,
    client_id: str,
    crew_id: UUID,
    log: logging.Logger,
) -> str:
    meta = await histories.get_session_metadata(session, table_name, session_id)
    if meta is None:
        log.warning("No messages found for session %s in %s", session_id, table_name)
        return EMPTY

    transcript = await histories.query_histories_table(session, table_name, session_id)
    if not transcript:
        log.warning("No transcript for session %s in %s", session_id, table_name)
        return EMPTY

    data = build_conversation_record(
        session_id=session_id,
        client_id=client_id,
        crew_id=crew_id,
        transcript=transcript,
        duration=max(meta.duration, 0),
    )
    created = await conversations_repo.insert_if_absent(session, data)
    if created is None:
        return DUPLICATE
    log.debug(
        "Created conversation for session %s messages=%d email=%s",
        session_id,
        meta.message_count,
        mask_email(data["customer_email"]),
    )
    return CREATED


async def discover_crew_conversations_optimized(
    session: AsyncSession,
    crew_id: UUID,
    histories_table_name: str,
    client_id: str,
    batch_size: Optional[int] = None,
    *,
    log: logging.Logger = logger,
) -> CrewDiscoveryResult:
    """Discover new sessions for one crew since its watermark.

    batch_size defaults to DISCOVERY_BATCH_SIZE (50). A session that fails is
    counted in error_count and does not stop the batch. Failures outside the
    per-session loop (invalid table name, unreadable table) are logged and
    the counts so far are returned.
    """
    if batch_size is None:
        batch_size = discovery_batch_size()
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    started = time.monotonic()
    result = CrewDiscoveryResult()

    try:
        validate_identifier(histories_table_name)

        watermark = await conversations_repo.get_latest_created_at(session, crew_id)
        if watermark is not None:
            log.info("Watermark for crew %s: %s", crew_id, watermark.isoformat())
        else:
            log.info("No watermark for crew %s, scanning entire table", crew_id)

        session_ids = await histories.get_distinct_session_ids(
            session, histories_table_name, since=watermark
        )
        log.info("Found %d candidate sessions in %s", len(session_ids), histories_table_name)
        if not session_ids:
            return result

        known = await conversations_repo.get_known_session_ids(session, crew_id=crew_id)

        for start in range(0, len(session_ids), batch_size):
            batch = session_ids[start:start + batch_size]
            for session_id in batch:
                if session_id in known:
                    result.skipped_count += 1
                    continue
                try:
                    async with session.begin_nested():
                        outcome = await _discover_session(
                            session,
                            table_name=histories_table_name,
                            session_id=session_id,
                            client_id=client_id,
                            crew_id=crew_id,
                            log=log,
                        )
                except Exception as exc:
                    if is_unique_violation(exc):
                        outcome = DUPLICATE
                    else:
                        log.error("Failed to process session %s", session_id, exc_info=True)
                        result.error_count += 1
                        continue

                if outcome == CREATED:
                    result.new_count += 1
                    known.add(session_id)
                elif outcome == DUPLICATE:
                    result.skipped_count += 1
                    known.add(session_id)
                else:
                    result.error_count += 1

            await session.commit()
            log.info(
                "Processed batch %d/%d for %s",
                start // batch_size + 1,
                (len(session_ids) + batch_size - 1) // batch_size,
                histories_table_name,
            )
    except Exception:
        log.error("Error discovering conversations for crew %s", crew_id, exc_info=True)
        try:
            await session.rollback()
        except Exception:
            log.error("Rollback after failed discovery also failed", exc_info=True)

    log.info(
        "Crew discovery completed crew=%s new=%d skipped=%d errors=%d duration_ms=%d",
        crew_id,
        result.new_count,
        result.skipped_count,
        result.error_count,
        int((time.monotonic() - started) * 1000),
    )
    return result


async def discover_conversations_optimized(
    session: AsyncSession,
    client_id: str,
    batch_size: Optional[int] = None,
    *,
    log: logging.Logger = logger,
) -> DiscoveryResult:
    """Run incremental discovery for every customer_support crew of a client."""
    started = time.monotonic()
    result = DiscoveryResult()

    support_crews = await crews_repo.get_by_client(session, client_id, "customer_support")
    log.info(
        "Incremental discovery started client=%s crews=%d", client_id, len(support_crews)
    )

    for crew in support_crews:
        table_name = crew.histories_table_name
        if not table_name:
            log.warning("Crew %s has no histories table configured", crew.crew_code)
            continue
        result.crews_scanned += 1
        result += await discover_crew_conversations_optimized(
            session, crew.id, table_name, client_id, batch_size, log=log
        )

    log.info(
        "Incremental discovery completed client=%s new=%d skipped=%d errors=%d duration_ms=%d",
        client_id,
        result.new_count,
        result.skipped_count,
        result.error_count,
        int((time.monotonic() - started) * 1000),
    )
    return result
