"""DDL for per-crew dynamic tables.

Vector table:   id uuid pk, content text, metadata jsonb, embedding vector(N), created_at
                + HNSW index (cosine) on embedding, GIN index on metadata
Histories table: id serial pk, session_id text, message jsonb, created_at
                + index on session_id, index on created_at DESC

DDL statements are committed as soon as they run, so they are not undone by a
later rollback of the caller's session; provisioning compensates with
drop_table instead.
"""
import logging
import time
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import embedding_dimensions
from db.identifiers import droppable_table_name, quote_identifier, sanitize_table_name

logger = logging.getLogger(__name__)


def vector_table_ddl(table_name: str, dimensions: int) -> list[str]:
    name = sanitize_table_name(table_name)
    return [
        f"""
        CREATE TABLE {quote_identifier(name)} (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            content TEXT NOT NULL,
            metadata JSONB DEFAULT '{{}}'::jsonb,
            embedding VECTOR({int(dimensions)}),
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
        """,
        f"CREATE INDEX {quote_identifier(name + '_embedding_idx')} "
        f"ON {quote_identifier(name)} USING hnsw (embedding vector_cosine_ops)",
        f"CREATE INDEX {quote_identifier(name + '_metadata_idx')} "
        f"ON {quote_identifier(name)} USING gin (metadata)",
    ]


def histories_table_ddl(table_name: str) -> list[str]:
    name = sanitize_table_name(table_name)
    return [
        f"""
        CREATE TABLE {quote_identifier(name)} (
            id SERIAL PRIMARY KEY,
            session_id TEXT NOT NULL,
            message JSONB NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
        """,
        f"CREATE INDEX {quote_identifier(name + '_session_id_idx')} "
        f"ON {quote_identifier(name)} (session_id)",
        f"CREATE INDEX {quote_identifier(name + '_created_at_idx')} "
        f"ON {quote_identifier(name)} (created_at DESC)",
    ]


async def _run_ddl(
    session: AsyncSession, statements: list[str], table_name: str, kind: str, log: logging.Logger
) -> None:
    started = time.monotonic()
    try:
        for statement in statements:
            await session.execute(text(statement))
        await session.commit()
    except Exception:
        await session.rollback()
        log.error("Failed to create %s table %s", kind, table_name, exc_info=True)
        raise
    log.info(
        "Created %s table %s duration_ms=%d",
        kind,
        table_name,
        int((time.monotonic() - started) * 1000),
    )


async def create_vector_table(
    session: AsyncSession,
    table_name: str,
    *,
    dimensions: Optional[int] = None,
    log: logging.Logger = logger,
) -> None:
    """Create a crew vector table and its indexes. Raises TableNameError on a bad name."""
    statements = vector_table_ddl(table_name, dimensions or embedding_dimensions())
    await _run_ddl(session, statements, table_name, "vector", log)


async def create_histories_table(
    session: AsyncSession, table_name: str, *, log: logging.Logger = logger
) -> None:
    """Create a crew histories table and its indexes. Raises TableNameError on a bad name."""
    await _run_ddl(session, histories_table_ddl(table_name), table_name, "histories", log)


async def drop_table(
    session: AsyncSession, table_name: str, *, log: logging.Logger = logger
) -> bool:
    """Drop a crew table. Never raises.

    Refuses anything that is not a string, is longer than 63 characters, has
    characters outside [a-z0-9_], or does not contain "vector"/"histories".
    Returns True when the DROP statement was executed.
    """
    reason = droppable_table_name(table_name)
    if reason is not None:
        log.error("Refusing to drop table: %s", reason)
        return False

    try:
        await session.execute(text(f"DROP TABLE IF EXISTS {quote_identifier(table_name)} CASCADE"))
        await session.commit()
    except Exception:
        log.error("Failed to drop table %s", table_name, exc_info=True)
        try:
            await session.rollback()
        except Exception:
            log.error("Rollback after failed drop of %s also failed", table_name, exc_info=True)
        return False

    log.info("Dropped table %s", table_name)
    return True


async def drop_tables(
    session: AsyncSession, table_names: Iterable[str], *, log: logging.Logger = logger
) -> list[str]:
    """Drop several tables in order. Returns the names whose drop succeeded."""
    dropped = []
    for table_name in table_names:
        if await drop_table(session, table_name, log=log):
            dropped.append(table_name)
    return dropped


async def table_exists(session: AsyncSession, table_name: str) -> bool:
    """Return True if a table with this name exists in the public schema."""
    result = await session.execute(
        text(
            "SELECT EXISTS (SELECT FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = :table_name)"
        ),
        {"table_name": table_name},
    )
    return bool(result.scalar())
