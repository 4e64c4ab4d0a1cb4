"""Client repository: tenant lookups."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Client


async def get_by_code(session: AsyncSession, client_code: str) -> Optional[Client]:
    """Return the Client with this client_code, or None."""
    result = await session.execute(
        select(Client).where(Client.client_code == client_code)
    )
    return result.scalar_one_or_none()


async def get_all_codes(session: AsyncSession) -> list[str]:
    """Return every client_code, oldest client first."""
    result = await session.execute(
        select(Client.client_code).order_by(Client.created_at)
    )
    return [row[0] for row in result.all()]
