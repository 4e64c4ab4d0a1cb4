"""Orphaned crew-table detection and cleanup.

A crew table is orphaned when it matches the crew table naming pattern but
no crew's config references it. Orphans come from interrupted provisioning,
deprovisioning after config corruption, or manual intervention. Scanning is
read-only and safe to repeat; cleanup defaults to a dry run.
"""
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from crews.tables import drop_table
from db.identifiers import CREW_TABLE_NAME_PATTERN, crew_table_type
from db.repositories import crews as crews_repo
from schemas.discovery import CrewTableStats, OrphanedTable

logger = logging.getLogger(__name__)

ORPHAN_REASON = "Not registered in any crew config"


async def list_crew_tables(session: AsyncSession) -> list[str]:
    """Return every public table whose name matches the crew table pattern."""
    result = await session.execute(
        text(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name ~ :pattern "
            "ORDER BY table_name"
        ),
        {"pattern": CREW_TABLE_NAME_PATTERN},
    )
    return [row[0] for row in result.all()]


async def get_registered_table_names(
    session: AsyncSession, *, log: logging.Logger = logger
) -> set[str]:
    """Return every table name referenced by a crew config.

    Crews whose config is not a JSON object are logged and skipped.
    """
    registered: set[str] = set()
    for crew_id, crew_code, config in await crews_repo.get_all_configs(session):
        if not isinstance(config, dict):
            log.warning("Skipping crew %s (%s): config is not an object", crew_code, crew_id)
            continue
        for key in ("vectorTableName", "historiesTableName"):
            name = config.get(key)
            if isinstance(name, str) and name:
                registered.add(name)
    return registered


async def find_orphaned_tables(
    session: AsyncSession, *, log: logging.Logger = logger
) -> list[OrphanedTable]:
    """Return crew tables present in the catalog but absent from every crew config."""
    crew_tables = await list_crew_tables(session)
    log.info("Found %d tables matching crew pattern", len(crew_tables))
    return await _orphans_among(session, crew_tables, log)


async def _orphans_among(
    session: AsyncSession, crew_tables: list[str], log: logging.Logger
) -> list[OrphanedTable]:
    if not crew_tables:
        return []

    registered = await get_registered_table_names(session, log=log)
    orphans = [
        OrphanedTable(
            table_name=name,
            table_type=crew_table_type(name),
            reason=ORPHAN_REASON,
        )
        for name in crew_tables
        if name not in registered
    ]
    if orphans:
        log.warning(
            "Found %d orphaned tables: %s", len(orphans), ", ".join(o.table_name for o in orphans)
        )
    else:
        log.info("No orphaned tables found (%d registered)", len(registered))
    return orphans


async def cleanup_orphaned_tables(
    session: AsyncSession,
    dry_run: bool = True,
    *,
    log: logging.Logger = logger,
) -> list[str]:
    """Drop orphaned tables.

    With dry_run=True nothing is dropped and the names that would be dropped
    are returned. Otherwise each orphan is dropped independently and only the
    names actually dropped are returned.
    """
    orphans = await find_orphaned_tables(session, log=log)
    if not orphans:
        return []

    if dry_run:
        names = [o.table_name for o in orphans]
        log.info("Dry run: would drop %d orphaned tables: %s", len(names), ", ".join(names))
        return names

    cleaned = []
    for orphan in orphans:
        try:
            if await drop_table(session, orphan.table_name, log=log):
                cleaned.append(orphan.table_name)
        except Exception:
            log.error("Failed to drop orphaned table %s", orphan.table_name, exc_info=True)
    log.info("Cleaned up %d of %d orphaned tables", len(cleaned), len(orphans))
    return cleaned


async def get_crew_table_stats(
    session: AsyncSession, *, log: Optional[logging.Logger] = None
) -> CrewTableStats:
    """Counts of crew tables by registration state and table type."""
    log = log or logger
    crew_tables = await list_crew_tables(session)
    orphans = await _orphans_among(session, crew_tables, log)
    vector = sum(1 for name in crew_tables if crew_table_type(name) == "vector")
    return CrewTableStats(
        total_crew_tables=len(crew_tables),
        registered_tables=len(crew_tables) - len(orphans),
        orphaned_tables=len(orphans),
        vector_tables=vector,
        histories_tables=len(crew_tables) - vector,
    )
