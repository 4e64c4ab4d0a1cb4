"""Unit tests for crews.tables: dynamic table DDL and guarded drops."""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from crews.tables import (
    create_histories_table,
    create_vector_table,
    drop_table,
    drop_tables,
    histories_table_ddl,
    vector_table_ddl,
)
from errors import TableNameError


def _executed_sql(session):
    return [str(call.args[0]) for call in session.execute.await_args_list]


class TestDDL:
    def test_vector_table_ddl(self):
        statements = vector_table_ddl("__acme_001_support_vector_001", 768)
        create, hnsw, gin = statements
        assert 'CREATE TABLE "__acme_001_support_vector_001"' in create
        assert "VECTOR(768)" in create
        assert "gen_random_uuid()" in create
        assert "USING hnsw (embedding vector_cosine_ops)" in hnsw
        assert "USING gin (metadata)" in gin

    def test_histories_table_ddl(self):
        create, by_session, by_created = histories_table_ddl("__acme_001_support_histories_001")
        assert "SERIAL PRIMARY KEY" in create
        assert "message JSONB NOT NULL" in create
        assert "(session_id)" in by_session
        assert "(created_at DESC)" in by_created

    def test_ddl_validates_name(self):
        with pytest.raises(TableNameError):
            vector_table_ddl("crews; DROP TABLE clients", 1536)


class TestCreateTables:
    @pytest.mark.asyncio
    async def test_create_vector_table_commits(self, session, monkeypatch):
        monkeypatch.setenv("EMBEDDING_DIMENSIONS", "1024")
        await create_vector_table(session, "__acme_001_support_vector_001")
        sql = _executed_sql(session)
        assert len(sql) == 3
        assert "VECTOR(1024)" in sql[0]
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_histories_table_commits(self, session):
        await create_histories_table(session, "__acme_001_support_histories_001")
        assert len(_executed_sql(session)) == 3
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_name_executes_nothing(self, session):
        with pytest.raises(TableNameError):
            await create_histories_table(session, "__acme_001_support_histories_1")
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ddl_failure_rolls_back_and_raises(self, session):
        session.execute.side_effect = OperationalError("CREATE", {}, Exception("type vector does not exist"))
        with pytest.raises(OperationalError):
            await create_vector_table(session, "__acme_001_support_vector_001", dimensions=3)
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()


class TestDropTable:
    @pytest.mark.asyncio
    async def test_drops_crew_table(self, session):
        assert await drop_table(session, "__acme_001_support_vector_001") is True
        assert _executed_sql(session) == [
            'DROP TABLE IF EXISTS "__acme_001_support_vector_001" CASCADE'
        ]
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["clients", "", None, "x_vector; DROP TABLE crews"])
    async def test_refuses_without_executing(self, session, name):
        assert await drop_table(session, name) is False
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_returns_false(self, session):
        session.execute.side_effect = OperationalError("DROP", {}, Exception("lock timeout"))
        log = MagicMock()
        assert await drop_table(session, "__acme_001_support_histories_001", log=log) is False
        session.rollback.assert_awaited_once()
        log.error.assert_called()

    @pytest.mark.asyncio
    async def test_drop_tables_reports_successes(self, session):
        dropped = await drop_tables(
            session, ["__acme_001_support_vector_001", "organizations"]
        )
        assert dropped == ["__acme_001_support_vector_001"]
