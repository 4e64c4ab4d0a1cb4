"""Full-scan conversation discovery.

Histories tables are filled by the external workflow engine, so the
conversations table can fall behind. discover_conversations compares every
session id in every histories table of a client against the conversations
already recorded (globally, since session ids are unique across clients) and
records the missing ones. It is correctness-first and O(all messages); use
discovery.incremental for frequent runs.
"""
import logging
import time
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.identifiers import validate_identifier
from db.repositories import conversations as conversations_repo
from db.repositories import crews as crews_repo
from db.repositories import histories
from discovery.transcripts import (
    analyze_sentiment,
    calculate_duration,
    extract_customer_email,
    mask_email,
)
from errors import is_unique_violation
from schemas.conversation import ConversationMessage
from schemas.discovery import DiscoveryResult

logger = logging.getLogger(__name__)


def build_conversation_record(
    *,
    session_id: str,
    client_id: str,
    crew_id: UUID,
    transcript: Sequence[ConversationMessage],
    duration: Optional[int] = None,
) -> dict:
    """Conversation row for a session; created_at is the session's first message time."""
    return {
        "session_id": session_id,
        "client_id": client_id,
        "crew_id": crew_id,
        "customer_email": extract_customer_email(transcript),
        "sentiment": analyze_sentiment(transcript),
        "duration": calculate_duration(transcript) if duration is None else duration,
        "resolved": False,
        "created_at": transcript[0].timestamp,
    }


async def _record_session(
    session: AsyncSession,
    *,
    table_name: str,
    session_id: str,
    client_id: str,
    crew_id: UUID,
    log: logging.Logger,
) -> Optional[bool]:
    """Insert one session. True = created, False = already present, None = no messages."""
    transcript = await histories.query_histories_table(session, table_name, session_id)
    if not transcript:
        log.warning("No transcript for session %s in %s, skipping", session_id, table_name)
        return None

    data = build_conversation_record(
        session_id=session_id, client_id=client_id, crew_id=crew_id, transcript=transcript
    )
    created = await conversations_repo.insert_if_absent(session, data)
    if created is None:
        log.info("Session %s already recorded (duplicate detected during insert)", session_id)
        return False
    log.info(
        "Created conversation for session %s messages=%d email=%s",
        session_id,
        len(transcript),
        mask_email(data["customer_email"]),
    )
    return True


async def discover_conversations(
    session: AsyncSession, client_id: str, *, log: logging.Logger = logger
) -> DiscoveryResult:
    """Record every session in the client's histories tables that has no conversation yet.

    Idempotent. A crew whose table is invalid or unreadable is logged, counted
    in error_count and skipped; the sweep continues with the next crew.
    """
    started = time.monotonic()
    result = DiscoveryResult()

    client_crews = await crews_repo.get_by_client(session, client_id)
    known = await conversations_repo.get_known_session_ids(session)
    log.info(
        "Conversation discovery started client=%s crews=%d known_sessions=%d",
        client_id,
        len(client_crews),
        len(known),
    )

    for crew in client_crews:
        table_name = crew.histories_table_name
        if not table_name:
            log.info("Crew %s has no histories table, skipping", crew.crew_code)
            continue
        result.crews_scanned += 1

        try:
            validate_identifier(table_name)
            async with session.begin_nested():
                session_ids = await histories.get_distinct_session_ids(session, table_name)
        except Exception:
            log.error(
                "Failed to scan histories table %s for crew %s",
                table_name,
                crew.crew_code,
                exc_info=True,
            )
            result.error_count += 1
            continue

        created_here = 0
        for session_id in session_ids:
            if session_id in known:
                result.skipped_count += 1
                continue
            try:
                async with session.begin_nested():
                    outcome = await _record_session(
                        session,
                        table_name=table_name,
                        session_id=session_id,
                        client_id=client_id,
                        crew_id=crew.id,
                        log=log,
                    )
            except Exception as exc:
                if is_unique_violation(exc):
                    known.add(session_id)
                    result.skipped_count += 1
                    continue
                log.error(
                    "Failed to record session %s from %s", session_id, table_name, exc_info=True
                )
                result.error_count += 1
                continue

            if outcome:
                created_here += 1
                result.new_count += 1
                known.add(session_id)
            else:
                if outcome is False:
                    known.add(session_id)
                result.skipped_count += 1

        log.info(
            "Completed scan of %s: %d sessions, %d new conversations",
            table_name,
            len(session_ids),
            created_here,
        )

    log.info(
        "Conversation discovery completed client=%s new=%d skipped=%d errors=%d duration_ms=%d",
        client_id,
        result.new_count,
        result.skipped_count,
        result.error_count,
        int((time.monotonic() - started) * 1000),
    )
    return result
