"""Crew repository: lookups used by provisioning, orphan scans and discovery."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Crew

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, crew_id: UUID) -> Optional[Crew]:
    """Return the Crew with this id, or None."""
    result = await session.execute(select(Crew).where(Crew.id == crew_id))
    return result.scalar_one_or_none()


async def get_by_code(session: AsyncSession, crew_code: str) -> Optional[Crew]:
    result = await session.execute(select(Crew).where(Crew.crew_code == crew_code))
    return result.scalar_one_or_none()


async def get_by_client(
    session: AsyncSession, client_id: str, crew_type: Optional[str] = None
) -> list[Crew]:
    """Return all crews of a client, optionally restricted to one crew type."""
    stmt = select(Crew).where(Crew.client_id == client_id)
    if crew_type is not None:
        stmt = stmt.where(Crew.type == crew_type)
    result = await session.execute(stmt.order_by(Crew.created_at))
    return list(result.scalars().all())


async def get_configs_for_client_type(
    session: AsyncSession, client_id: str, crew_type: str
) -> list[Any]:
    """Return the raw config of every crew sharing (client_id, type)."""
    result = await session.execute(
        select(Crew.config)
        .where(Crew.client_id == client_id)
        .where(Crew.type == crew_type)
    )
    return [row[0] for row in result.all()]


async def get_codes_for_client_type(
    session: AsyncSession, client_id: str, crew_type: str
) -> list[str]:
    """Return the crew_code of every crew sharing (client_id, type)."""
    result = await session.execute(
        select(Crew.crew_code)
        .where(Crew.client_id == client_id)
        .where(Crew.type == crew_type)
    )
    return [row[0] for row in result.all()]


async def get_all_configs(session: AsyncSession) -> list[tuple[UUID, str, Any]]:
    """Return (id, crew_code, config) for every crew."""
    result = await session.execute(select(Crew.id, Crew.crew_code, Crew.config))
    return [(row[0], row[1], row[2]) for row in result.all()]


async def insert(session: AsyncSession, data: dict) -> Crew:
    """Persist a new crew row.

    data dict keys: name, client_id, crew_code, type, config, webhook_url, status
    """
    crew = Crew(**data)
    session.add(crew)
    await session.flush()
    await session.refresh(crew)
    return crew


async def delete(session: AsyncSession, crew_id: UUID) -> int:
    """Delete a crew row. Returns the number of rows removed."""
    result = await session.execute(sa_delete(Crew).where(Crew.id == crew_id))
    await session.flush()
    return result.rowcount or 0
