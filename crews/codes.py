"""Business codes for crews.

Format: {CLIENT_CODE}-{TYPE}-{NNN}
  "ACME-001-SUP-001"   first support crew of ACME-001
  "ACME-001-SUP-002"   second support crew of ACME-001
  "ACME-001-LEAD-001"  first lead generation crew of ACME-001

Numbering is independent of table-name sequences and shares their
read-then-max race under concurrent provisioning.
"""
import logging
import re

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import crews as crews_repo
from errors import InvalidCrewTypeError

logger = logging.getLogger(__name__)

CREW_TYPE_ABBREVIATIONS = {
    "customer_support": "SUP",
    "lead_generation": "LEAD",
}

_TRAILING_NUMBER_RE = re.compile(r"-(\d+)$")


def get_crew_type_abbreviation(crew_type: str) -> str:
    try:
        return CREW_TYPE_ABBREVIATIONS[crew_type]
    except KeyError:
        raise InvalidCrewTypeError(f"Unknown crew type: {crew_type!r}")


def next_crew_code(prefix: str, existing_codes: list[str]) -> str:
    numbers = []
    for code in existing_codes:
        match = _TRAILING_NUMBER_RE.search(code or "")
        if match:
            numbers.append(int(match.group(1)))
    return f"{prefix}-{max(numbers, default=0) + 1:03d}"


async def generate_crew_code(
    session: AsyncSession,
    client_code: str,
    crew_type: str,
    *,
    log: logging.Logger = logger,
) -> str:
    """Return the next crew code for (client_code, crew_type).

    If the lookup query fails (for example before the crews table exists) the
    first code, {prefix}-001, is returned instead of raising.
    """
    prefix = f"{client_code}-{get_crew_type_abbreviation(crew_type)}"
    try:
        existing = await crews_repo.get_codes_for_client_type(session, client_code, crew_type)
    except Exception:
        log.error(
            "Crew code lookup failed for client=%s type=%s; falling back to %s-001",
            client_code,
            crew_type,
            prefix,
            exc_info=True,
        )
        try:
            await session.rollback()
        except Exception:
            log.error("Rollback after failed crew code lookup also failed", exc_info=True)
        return f"{prefix}-001"

    log.info(
        "Found %d existing crews for client=%s type=%s", len(existing), client_code, crew_type
    )
    return next_crew_code(prefix, existing)


async def is_crew_code_available(session: AsyncSession, crew_code: str) -> bool:
    return await crews_repo.get_by_code(session, crew_code) is None
