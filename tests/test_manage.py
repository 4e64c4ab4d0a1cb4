"""Unit tests for manage.py: every command run through main() with JSON output."""
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

import manage
from errors import CrewNotFoundError
from schemas.crew import DeprovisionCrewResult
from schemas.discovery import (
    CrewTableStats,
    DiscoveryJobResult,
    DiscoveryResult,
    OrphanedTable,
)


MANAGE = "manage"

ORPHAN = "__acme_001_support_vector_009"


@pytest.fixture
def db(session):
    """Point manage at a FakeSession and a no-op engine disposal."""

    @asynccontextmanager
    async def fake_get_db():
        yield session

    with patch(f"{MANAGE}.get_db", fake_get_db), \
         patch(f"{MANAGE}.dispose_engine", new_callable=AsyncMock) as dispose:
        yield dispose


async def _run(capsys, *argv):
    args = manage._build_arg_parser().parse_args(list(argv))
    code = await manage.main(args)
    return code, json.loads(capsys.readouterr().out)


class TestOrphans:
    @pytest.mark.asyncio
    @patch(f"{MANAGE}.cleanup_orphaned_tables", new_callable=AsyncMock)
    @patch(f"{MANAGE}.find_orphaned_tables", new_callable=AsyncMock)
    async def test_dry_run_lists_orphan_records(self, find, cleanup, db, session, capsys):
        find.return_value = [
            OrphanedTable(table_name=ORPHAN, table_type="vector", reason="no crew config"),
        ]

        code, out = await _run(capsys, "orphans")

        assert code == 0
        assert out == {
            "dry_run": True,
            "orphaned_tables": [
                {"table_name": ORPHAN, "table_type": "vector", "reason": "no crew config"},
            ],
        }
        find.assert_awaited_once_with(session)
        cleanup.assert_not_awaited()
        db.assert_awaited_once()

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.cleanup_orphaned_tables", new_callable=AsyncMock)
    @patch(f"{MANAGE}.find_orphaned_tables", new_callable=AsyncMock)
    async def test_execute_reports_dropped_names(self, find, cleanup, db, session, capsys):
        cleanup.return_value = [ORPHAN]

        code, out = await _run(capsys, "orphans", "--execute")

        assert code == 0
        assert out == {"dry_run": False, "dropped_tables": [ORPHAN]}
        cleanup.assert_awaited_once_with(session, dry_run=False)
        find.assert_not_awaited()

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.find_orphaned_tables", new_callable=AsyncMock, return_value=[])
    async def test_dry_run_without_orphans(self, find, db, capsys):
        code, out = await _run(capsys, "orphans")

        assert code == 0
        assert out == {"dry_run": True, "orphaned_tables": []}


class TestCrewCommands:
    @pytest.mark.asyncio
    @patch(f"{MANAGE}.provision_crew", new_callable=AsyncMock)
    async def test_provision_passes_cli_input(self, provision, db, session, capsys):
        provision.return_value = {"crew_code": "ACME-001-SUP-001"}

        code, out = await _run(
            capsys,
            "provision",
            "--name", "Support Bot",
            "--client", "ACME-001",
            "--type", "customer_support",
            "--webhook-url", "https://hooks.example.com/acme",
        )

        assert code == 0
        assert out == {"crew_code": "ACME-001-SUP-001"}
        provision.assert_awaited_once_with(session, {
            "name": "Support Bot",
            "client_id": "ACME-001",
            "type": "customer_support",
            "webhook_url": "https://hooks.example.com/acme",
            "status": "inactive",
        })

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.deprovision_crew", new_callable=AsyncMock)
    async def test_deprovision_emits_result(self, deprovision, db, session, capsys):
        crew_id = uuid.uuid4()
        deprovision.return_value = DeprovisionCrewResult(
            crew_id=crew_id,
            crew_code="ACME-001-SUP-001",
            dropped_tables=["__acme_001_support_vector_001"],
        )

        code, out = await _run(capsys, "deprovision", "--crew-id", str(crew_id))

        assert code == 0
        assert out == {
            "crew_id": str(crew_id),
            "crew_code": "ACME-001-SUP-001",
            "dropped_tables": ["__acme_001_support_vector_001"],
        }
        deprovision.assert_awaited_once_with(session, str(crew_id))

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.get_crew_table_stats", new_callable=AsyncMock)
    async def test_table_stats(self, stats, db, capsys):
        stats.return_value = CrewTableStats(
            total_crew_tables=3,
            registered_tables=2,
            orphaned_tables=1,
            vector_tables=2,
            histories_tables=1,
        )

        code, out = await _run(capsys, "table-stats")

        assert code == 0
        assert out["orphaned_tables"] == 1
        assert out["total_crew_tables"] == 3


class TestDiscoveryCommands:
    @pytest.mark.asyncio
    @patch(f"{MANAGE}.discover_conversations", new_callable=AsyncMock)
    @patch(f"{MANAGE}.discover_conversations_optimized", new_callable=AsyncMock)
    async def test_incremental_is_the_default(self, optimized, full, db, session, capsys):
        optimized.return_value = DiscoveryResult(new_count=2, crews_scanned=1)

        code, out = await _run(
            capsys, "discover-conversations", "--client", "ACME-001", "--batch-size", "10"
        )

        assert code == 0
        assert out["new_count"] == 2
        optimized.assert_awaited_once_with(session, "ACME-001", 10)
        full.assert_not_awaited()

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.discover_conversations", new_callable=AsyncMock)
    @patch(f"{MANAGE}.discover_conversations_optimized", new_callable=AsyncMock)
    async def test_full_scan(self, optimized, full, db, session, capsys):
        full.return_value = DiscoveryResult(skipped_count=4, crews_scanned=2)

        code, out = await _run(capsys, "discover-conversations", "--client", "ACME-001", "--full")

        assert code == 0
        assert out["skipped_count"] == 4
        full.assert_awaited_once_with(session, "ACME-001")
        optimized.assert_not_awaited()

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.discover_documents", new_callable=AsyncMock)
    async def test_documents(self, documents, db, session, capsys):
        documents.return_value = DiscoveryResult(new_count=1, crews_scanned=1)

        code, out = await _run(capsys, "discover-documents", "--client", "ACME-001")

        assert code == 0
        assert out["new_count"] == 1
        documents.assert_awaited_once_with(session, "ACME-001")

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.run_conversation_discovery_job", new_callable=AsyncMock)
    async def test_discovery_job(self, job, db, session, capsys):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        job.return_value = DiscoveryJobResult(
            started_at=now, completed_at=now, duration_ms=0, clients_processed=2,
        )

        code, out = await _run(capsys, "discovery-job")

        assert code == 0
        assert out["clients_processed"] == 2
        assert out["started_at"].startswith("2024-05-01T00:00:00")
        job.assert_awaited_once_with(session, None)


class TestErrors:
    @pytest.mark.asyncio
    @patch(f"{MANAGE}.deprovision_crew", new_callable=AsyncMock)
    async def test_platform_error_payload(self, deprovision, db, capsys):
        deprovision.side_effect = CrewNotFoundError("Crew not found")

        code, out = await _run(capsys, "deprovision", "--crew-id", str(uuid.uuid4()))

        assert code == 1
        assert out == {"error": "Crew not found", "code": "CREW_NOT_FOUND", "status": 404}
        db.assert_awaited_once()

    @pytest.mark.asyncio
    @patch(f"{MANAGE}.get_crew_table_stats", new_callable=AsyncMock)
    async def test_database_error_is_classified(self, stats, db, capsys):
        stats.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        code, out = await _run(capsys, "table-stats")

        assert code == 1
        assert out["code"] == "DATABASE_ERROR"
        assert out["status"] == 500
        db.assert_awaited_once()
