"""Conversation repository: metadata rows mirrored from histories tables."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Conversation, Crew
from db.repositories import histories
from schemas.conversation import ConversationDetail, ConversationMetadata

logger = logging.getLogger(__name__)


async def get_conversations(
    session: AsyncSession,
    *,
    client_id: Optional[str] = None,
    crew_id: Optional[UUID] = None,
    sentiment: Optional[str] = None,
    resolved: Optional[bool] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Conversation]:
    """Return conversation metadata (no transcripts), newest first."""
    stmt = select(Conversation)
    if client_id is not None:
        stmt = stmt.where(Conversation.client_id == client_id)
    if crew_id is not None:
        stmt = stmt.where(Conversation.crew_id == crew_id)
    if sentiment is not None:
        stmt = stmt.where(Conversation.sentiment == sentiment)
    if resolved is not None:
        stmt = stmt.where(Conversation.resolved == resolved)
    if from_date is not None:
        stmt = stmt.where(Conversation.created_at >= from_date)
    if to_date is not None:
        stmt = stmt.where(Conversation.created_at <= to_date)
    result = await session.execute(
        stmt.order_by(Conversation.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


async def get_conversation_by_id(
    session: AsyncSession, conversation_id: UUID
) -> Optional[ConversationDetail]:
    """Return one conversation with its transcript read from the crew's histories table.

    The transcript is empty when the crew has no histories table or the table
    cannot be read.
    """
    result = await session.execute(
        select(Conversation, Crew)
        .join(Crew, Crew.id == Conversation.crew_id)
        .where(Conversation.id == conversation_id)
    )
    row = result.first()
    if row is None:
        return None
    conv, crew = row[0], row[1]

    transcript = []
    table_name = crew.histories_table_name
    if table_name:
        try:
            transcript = await histories.query_histories_table(session, table_name, conv.session_id)
        except Exception:
            logger.warning(
                "Failed to read transcript for conversation_id=%s table=%s",
                conversation_id,
                table_name,
                exc_info=True,
            )

    return ConversationDetail(
        id=conv.id,
        session_id=conv.session_id,
        client_id=conv.client_id,
        crew_id=conv.crew_id,
        metadata=ConversationMetadata(
            customer_name=conv.customer_name,
            customer_email=conv.customer_email,
            sentiment=conv.sentiment,
            resolved=bool(conv.resolved),
            duration=conv.duration,
        ),
        transcript=transcript,
        created_at=conv.created_at,
    )


async def get_known_session_ids(
    session: AsyncSession, crew_id: Optional[UUID] = None
) -> set[str]:
    """Return known session ids, globally or for one crew."""
    stmt = select(Conversation.session_id)
    if crew_id is not None:
        stmt = stmt.where(Conversation.crew_id == crew_id)
    result = await session.execute(stmt)
    return {row[0] for row in result.all()}


async def get_latest_created_at(session: AsyncSession, crew_id: UUID) -> Optional[datetime]:
    """Return the newest created_at among a crew's conversations (discovery watermark)."""
    result = await session.execute(
        select(func.max(Conversation.created_at)).where(Conversation.crew_id == crew_id)
    )
    return result.scalar_one_or_none()


async def insert_if_absent(session: AsyncSession, data: dict) -> Optional[UUID]:
    """Insert a conversation unless its session_id is already known.

    Returns the new row id, or None when another row already holds the
    session_id. Safe to call twice.

    data dict keys: session_id, client_id, crew_id, customer_name,
    customer_email, sentiment, resolved, duration, created_at
    """
    stmt = (
        pg_insert(Conversation)
        .values(**data)
        .on_conflict_do_nothing(index_elements=["session_id"])
        .returning(Conversation.id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
