"""Dynamic table naming for customer-support crews.

Format: __{client_code}_{crew_type}_{table_type}_{sequence}
  "ACME-001", customer_support, vector     -> __acme_001_support_vector_001
  second support crew of the same client   -> __acme_001_support_vector_002

The sequence is max(existing)+1 over crews with the same (client, type). It is
read-then-compute and not atomic: two concurrent provisioning calls for the
same client and type can pick the same number, which then fails at CREATE
TABLE. Callers that need strict uniqueness must serialise provisioning per
client.
"""
import logging
import re
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.identifiers import sanitize_table_name
from db.repositories import crews as crews_repo
from errors import InvalidCrewTypeError, TableNameError

logger = logging.getLogger(__name__)

CREW_TYPE_SHORT_NAMES = {
    "customer_support": "support",
    "lead_generation": "leadgen",
}
TABLE_TYPE_CONFIG_KEYS = {
    "vector": "vectorTableName",
    "histories": "historiesTableName",
}

_SEQUENCE_RE = re.compile(r"_(\d+)$")


def normalize_client_code(client_code: str) -> str:
    """"ACME-001" -> "acme_001"."""
    return client_code.lower().replace("-", "_")


def get_crew_type_short_name(crew_type: str) -> str:
    try:
        return CREW_TYPE_SHORT_NAMES[crew_type]
    except KeyError:
        raise InvalidCrewTypeError(f"Unknown crew type: {crew_type!r}")


def extract_sequence_number(table_name: Optional[str]) -> int:
    """Trailing sequence of a table name, or 0 when there is none."""
    if not table_name or not isinstance(table_name, str):
        return 0
    match = _SEQUENCE_RE.search(table_name)
    return int(match.group(1)) if match else 0


def next_table_name(prefix: str, existing_configs: list[Any], table_type: str) -> str:
    """Pure step of name generation: compute the next name from existing configs."""
    key = TABLE_TYPE_CONFIG_KEYS[table_type]
    numbers = [
        extract_sequence_number(config.get(key))
        for config in existing_configs
        if isinstance(config, dict)
    ]
    next_number = max([n for n in numbers if n > 0], default=0) + 1
    return sanitize_table_name(f"{prefix}_{next_number:03d}")


async def generate_crew_table_name(
    session: AsyncSession,
    client_code: str,
    crew_type: str,
    table_type: str,
    *,
    log: logging.Logger = logger,
) -> str:
    """Return the next unused, validated table name for a client's crew type.

    Raises InvalidCrewTypeError or TableNameError before anything is created.
    """
    if table_type not in TABLE_TYPE_CONFIG_KEYS:
        raise TableNameError(f"Unknown table type: {table_type!r}")
    type_short = get_crew_type_short_name(crew_type)
    prefix = f"__{normalize_client_code(client_code)}_{type_short}_{table_type}"

    configs = await crews_repo.get_configs_for_client_type(session, client_code, crew_type)
    table_name = next_table_name(prefix, configs, table_type)
    log.info(
        "Generated %s table name %s for client=%s type=%s (%d existing crews)",
        table_type,
        table_name,
        client_code,
        crew_type,
        len(configs),
    )
    return table_name
