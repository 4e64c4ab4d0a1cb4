"""Histories-table queries.

Histories tables are written by the external workflow engine, one row per
message: (id serial, session_id text, message jsonb, created_at timestamptz).
This module only reads them. Every function validates the table name before
it is interpolated into SQL.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from dateutil.parser import isoparse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from db.identifiers import quote_identifier, validate_identifier
from schemas.conversation import ConversationMessage, SessionMetadata

logger = logging.getLogger(__name__)


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = isoparse(value)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def transform_message(message: Any, timestamp: Any) -> ConversationMessage:
    """Map one stored message onto a transcript entry ('human' -> 'user', else 'assistant')."""
    if not isinstance(message, Mapping):
        message = {"type": "ai", "content": "" if message is None else str(message)}
    content = message.get("content")
    return ConversationMessage(
        role="user" if message.get("type") == "human" else "assistant",
        content=content if isinstance(content, str) else ("" if content is None else str(content)),
        timestamp=_as_datetime(timestamp),
    )


def rows_to_transcript(rows: Iterable[Mapping[str, Any]]) -> list[ConversationMessage]:
    """Convert histories rows to a transcript sorted by timestamp."""
    transcript = [transform_message(row["message"], row["created_at"]) for row in rows]
    transcript.sort(key=lambda m: m.timestamp)
    return transcript


async def query_histories_table(
    session: AsyncSession, table_name: str, session_id: str
) -> list[ConversationMessage]:
    """Return the full transcript of one session, oldest message first."""
    table = quote_identifier(validate_identifier(table_name))
    result = await session.execute(
        text(
            f"SELECT id, session_id, message, created_at FROM {table} "
            f"WHERE session_id = :session_id ORDER BY created_at ASC, id ASC"
        ),
        {"session_id": session_id},
    )
    return rows_to_transcript(result.mappings().all())


async def get_distinct_session_ids(
    session: AsyncSession, table_name: str, since: Optional[datetime] = None
) -> list[str]:
    """Return session ids present in the table.

    With since=None this is a full scan; otherwise only sessions with at least
    one message created strictly after `since` are returned (index scan on
    created_at).
    """
    table = quote_identifier(validate_identifier(table_name))
    if since is None:
        result = await session.execute(
            text(f"SELECT DISTINCT session_id FROM {table} ORDER BY session_id")
        )
    else:
        result = await session.execute(
            text(
                f"SELECT DISTINCT session_id FROM {table} "
                f"WHERE created_at > :since ORDER BY session_id"
            ),
            {"since": since},
        )
    return [row[0] for row in result.all()]


async def get_session_metadata(
    session: AsyncSession, table_name: str, session_id: str
) -> Optional[SessionMetadata]:
    """Return count/first/last statistics for a session in one round trip."""
    table = quote_identifier(validate_identifier(table_name))
    result = await session.execute(
        text(
            f"""
            WITH message_stats AS (
                SELECT COUNT(*) AS message_count,
                       MIN(created_at) AS first_at,
                       MAX(created_at) AS last_at
                FROM {table}
                WHERE session_id = :session_id
            ),
            first_msg AS (
                SELECT message FROM {table}
                WHERE session_id = :session_id
                ORDER BY created_at ASC, id ASC
                LIMIT 1
            ),
            last_msg AS (
                SELECT message FROM {table}
                WHERE session_id = :session_id
                ORDER BY created_at DESC, id DESC
                LIMIT 1
            )
            SELECT ms.message_count, ms.first_at, ms.last_at,
                   f.message AS first_message, l.message AS last_message
            FROM message_stats ms
            CROSS JOIN first_msg f
            CROSS JOIN last_msg l
            """
        ),
        {"session_id": session_id},
    )
    row = result.mappings().first()
    if row is None or not row["message_count"]:
        return None
    return SessionMetadata(
        message_count=int(row["message_count"]),
        first_message_at=_as_datetime(row["first_at"]),
        last_message_at=_as_datetime(row["last_at"]),
        first_message=row["first_message"],
        last_message=row["last_message"],
    )
