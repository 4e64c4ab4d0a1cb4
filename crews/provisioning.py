"""Crew provisioning and deprovisioning.

provision_crew:
  1. validate input and check the client exists
  2. generate the crew code
  3. customer_support only: generate table names, create vector + histories tables
  4. insert and commit the crew row

Table DDL is committed on its own and cannot be rolled back with the crew
row, so every created table pushes a drop onto an undo stack. On failure the
session is rolled back and the stack is unwound in reverse order; the
original error is what the caller sees.

deprovision_crew deletes the crew row first and then drops its tables, so an
interruption can leave orphaned tables (see crews.orphans) but never a crew
pointing at tables that no longer exist.
"""
import logging
import time
from typing import Awaitable, Callable, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from crews.codes import generate_crew_code
from crews.table_names import generate_crew_table_name
from crews.tables import create_histories_table, create_vector_table, drop_table, drop_tables
from db.models import Crew
from db.repositories import clients as clients_repo
from db.repositories import crews as crews_repo
from errors import (
    ClientNotFoundError,
    CrewNotFoundError,
    DeprovisioningError,
    ErrorCode,
    PlatformError,
    ProvisioningError,
    classify_error,
    describe,
)
from schemas.crew import (
    CrewConfig,
    CrewRecord,
    DeprovisionCrewResult,
    ProvisionCrewInput,
    ProvisionCrewResult,
    TablesCreated,
)

logger = logging.getLogger(__name__)

UndoAction = Callable[[], Awaitable[object]]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _safe_rollback(session: AsyncSession, log: logging.Logger) -> None:
    try:
        await session.rollback()
    except Exception:
        log.error("Session rollback failed", exc_info=True)


async def _unwind(undo: list[tuple[str, UndoAction]], log: logging.Logger) -> None:
    """Run undo actions newest first. A failing action does not stop the rest."""
    while undo:
        description, action = undo.pop()
        log.info("Rolling back: %s", description)
        try:
            await action()
        except Exception:
            log.error("Rollback step failed: %s", description, exc_info=True)


async def provision_crew(
    session: AsyncSession,
    data: Union[ProvisionCrewInput, dict],
    *,
    log: logging.Logger = logger,
) -> ProvisionCrewResult:
    """Create a crew and, for customer_support crews, its two dynamic tables.

    Raises ProvisioningError (code classified from the cause) on any failure,
    after dropping whatever tables this call created.
    """
    started = time.monotonic()
    undo: list[tuple[str, UndoAction]] = []
    tables = TablesCreated()

    try:
        if not isinstance(data, ProvisionCrewInput):
            data = ProvisionCrewInput.model_validate(data)

        log.info(
            "Crew provisioning started name=%r client=%s type=%s status=%s",
            data.name,
            data.client_id,
            data.type,
            data.status,
        )

        if await clients_repo.get_by_code(session, data.client_id) is None:
            raise ClientNotFoundError(f"Client not found: {data.client_id}")

        crew_code = await generate_crew_code(session, data.client_id, data.type, log=log)
        log.info("Crew code generated crew_code=%s client=%s", crew_code, data.client_id)

        config = CrewConfig()
        if data.type == "customer_support":
            vector_table = await generate_crew_table_name(
                session, data.client_id, data.type, "vector", log=log
            )
            histories_table = await generate_crew_table_name(
                session, data.client_id, data.type, "histories", log=log
            )

            await create_vector_table(session, vector_table, log=log)
            undo.append(
                (f"drop vector table {vector_table}",
                 lambda: drop_table(session, vector_table, log=log))
            )
            tables.vector_table = vector_table

            await create_histories_table(session, histories_table, log=log)
            undo.append(
                (f"drop histories table {histories_table}",
                 lambda: drop_table(session, histories_table, log=log))
            )
            tables.histories_table = histories_table

            config.vector_table_name = vector_table
            config.histories_table_name = histories_table
        else:
            log.info(
                "Skipping table creation for %s crew client=%s", data.type, data.client_id
            )

        crew = await crews_repo.insert(session, {
            "name": data.name,
            "client_id": data.client_id,
            "crew_code": crew_code,
            "type": data.type,
            "config": config.to_json(),
            "webhook_url": data.webhook_url,
            "status": data.status,
        })
        await session.commit()
    except Exception as exc:
        log.error(
            "Crew provisioning failed tables=%s duration_ms=%d",
            tables.model_dump(exclude_none=True),
            _elapsed_ms(started),
            exc_info=True,
        )
        await _safe_rollback(session, log)
        await _unwind(undo, log)
        raise ProvisioningError(
            f"Failed to provision crew: {describe(exc)}", code=classify_error(exc)
        ) from exc

    log.info(
        "Crew provisioned crew_id=%s crew_code=%s vector_table=%s histories_table=%s duration_ms=%d",
        crew.id,
        crew.crew_code,
        tables.vector_table,
        tables.histories_table,
        _elapsed_ms(started),
    )
    return ProvisionCrewResult(crew=CrewRecord.model_validate(crew), tables_created=tables)


async def deprovision_crew(
    session: AsyncSession,
    crew_id: Union[UUID, str],
    *,
    log: logging.Logger = logger,
) -> DeprovisionCrewResult:
    """Delete a crew row, then drop its vector and histories tables.

    Raises DeprovisioningError (CREW_NOT_FOUND when the crew does not exist).
    Table drops are best-effort and never raise; a table named in the config
    but absent from the catalog is a no-op.
    """
    started = time.monotonic()
    log.info("Crew deprovisioning started crew_id=%s", crew_id)

    try:
        try:
            crew_uuid = crew_id if isinstance(crew_id, UUID) else UUID(str(crew_id))
        except ValueError:
            raise PlatformError(
                f"Invalid crew id: {crew_id!r}", code=ErrorCode.VALIDATION_FAILED
            )

        crew: Optional[Crew] = await crews_repo.get_by_id(session, crew_uuid)
        if crew is None:
            log.warning("Crew not found for deprovisioning crew_id=%s", crew_id)
            raise CrewNotFoundError(f"Crew not found: {crew_id}")

        crew_code = crew.crew_code
        vector_table = crew.vector_table_name
        histories_table = crew.histories_table_name
        if crew.type == "customer_support" and not (vector_table and histories_table):
            log.warning(
                "Crew %s config is missing table names; any existing tables will be left as orphans",
                crew_code,
            )

        await crews_repo.delete(session, crew_uuid)
        await session.commit()
        log.info("Crew record deleted crew_id=%s crew_code=%s", crew_uuid, crew_code)
    except Exception as exc:
        log.error(
            "Crew deprovisioning failed crew_id=%s duration_ms=%d",
            crew_id,
            _elapsed_ms(started),
            exc_info=True,
        )
        await _safe_rollback(session, log)
        raise DeprovisioningError(
            f"Failed to deprovision crew: {describe(exc)}", code=classify_error(exc)
        ) from exc

    dropped = await drop_tables(
        session, [t for t in (vector_table, histories_table) if t], log=log
    )

    log.info(
        "Crew deprovisioned crew_id=%s crew_code=%s dropped=%s duration_ms=%d",
        crew_uuid,
        crew_code,
        dropped,
        _elapsed_ms(started),
    )
    return DeprovisionCrewResult(crew_id=crew_uuid, crew_code=crew_code, dropped_tables=dropped)
