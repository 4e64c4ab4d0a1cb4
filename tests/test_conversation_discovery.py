"""Unit tests for discovery.conversations and discovery.incremental.

Repository calls are patched onto a small in-memory store so that repeated
runs can be checked for idempotence.
"""
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from discovery.conversations import build_conversation_record, discover_conversations
from discovery.incremental import (
    discover_conversations_optimized,
    discover_crew_conversations_optimized,
)
from schemas.conversation import SessionMetadata
from tests.factories import T0, make_crew, transcript


HISTORIES = "__acme_001_support_histories_001"


class _PgError(Exception):
    sqlstate = "23505"


class Store:
    """In-memory stand-in for one histories table plus the conversations table."""

    def __init__(self, sessions):
        self.sessions = sessions  # session_id -> transcript
        self.conversations = {}   # session_id -> inserted row

    async def distinct(self, session, table_name, since=None):
        return sorted(
            sid for sid, msgs in self.sessions.items()
            if since is None or any(m.timestamp > since for m in msgs)
        )

    async def query(self, session, table_name, session_id):
        return list(self.sessions.get(session_id, []))

    async def metadata(self, session, table_name, session_id):
        msgs = self.sessions.get(session_id)
        if not msgs:
            return None
        return SessionMetadata(
            message_count=len(msgs),
            first_message_at=msgs[0].timestamp,
            last_message_at=msgs[-1].timestamp,
        )

    async def known(self, session, crew_id=None):
        return {
            sid for sid, row in self.conversations.items()
            if crew_id is None or row["crew_id"] == crew_id
        }

    async def latest(self, session, crew_id):
        dates = [r["created_at"] for r in self.conversations.values() if r["crew_id"] == crew_id]
        return max(dates, default=None)

    async def insert(self, session, data):
        if data["session_id"] in self.conversations:
            return None
        self.conversations[data["session_id"]] = data
        return uuid.uuid4()


@pytest.fixture
def crew():
    return make_crew()


@pytest.fixture
def store(crew):
    s = Store({
        "sess_x": transcript(
            ("user", "Hi, I'm jane@example.com and the app is great"),
            ("assistant", "Thanks! How can I help?"),
            step=timedelta(minutes=5),
        ),
        "sess_y": transcript(("user", "Hello?"), start=T0 + timedelta(hours=1)),
    })
    with patch("db.repositories.crews.get_by_client", new_callable=AsyncMock) as by_client, \
         patch("db.repositories.histories.get_distinct_session_ids", side_effect=s.distinct), \
         patch("db.repositories.histories.query_histories_table", side_effect=s.query), \
         patch("db.repositories.histories.get_session_metadata", side_effect=s.metadata), \
         patch("db.repositories.conversations.get_known_session_ids", side_effect=s.known), \
         patch("db.repositories.conversations.get_latest_created_at", side_effect=s.latest), \
         patch("db.repositories.conversations.insert_if_absent", side_effect=s.insert) as insert:
        by_client.return_value = [crew]
        s.by_client = by_client
        s.insert_mock = insert
        yield s


def test_build_conversation_record(crew):
    t = transcript(("user", "mail me at a@b.io"), ("assistant", "ok"), step=timedelta(seconds=90))
    row = build_conversation_record(
        session_id="s1", client_id="ACME-001", crew_id=crew.id, transcript=t
    )
    assert row["created_at"] == T0
    assert row["duration"] == 90
    assert row["customer_email"] == "a@b.io"
    assert row["resolved"] is False
    assert row["sentiment"] == "neutral"


class TestFullScan:
    @pytest.mark.asyncio
    async def test_records_new_sessions(self, session, store, crew):
        result = await discover_conversations(session, "ACME-001")

        assert result.new_count == 2
        assert result.error_count == 0
        assert result.crews_scanned == 1
        row = store.conversations["sess_x"]
        assert row["crew_id"] == crew.id
        assert row["client_id"] == "ACME-001"
        assert row["duration"] == 300
        assert row["created_at"] == T0
        assert row["customer_email"] == "jane@example.com"
        assert row["sentiment"] == "positive"
        assert session.savepoints >= 2

    @pytest.mark.asyncio
    async def test_second_run_finds_nothing_new(self, session, store):
        await discover_conversations(session, "ACME-001")
        again = await discover_conversations(session, "ACME-001")

        assert again.new_count == 0
        assert again.skipped_count == 2
        assert len(store.conversations) == 2

    @pytest.mark.asyncio
    async def test_empty_transcript_is_skipped(self, session, store):
        store.sessions["sess_empty"] = []

        result = await discover_conversations(session, "ACME-001")

        assert result.new_count == 2
        assert "sess_empty" not in store.conversations

    @pytest.mark.asyncio
    async def test_crew_without_histories_table_is_skipped(self, session, store):
        store.by_client.return_value = [
            make_crew(crew_type="lead_generation", vector_table=None, histories_table=None)
        ]

        result = await discover_conversations(session, "ACME-001")

        assert result.crews_scanned == 0
        assert result.new_count == 0

    @pytest.mark.asyncio
    async def test_invalid_table_name_counts_one_error(self, session, store, crew):
        bad = make_crew(histories_table="histories; DROP TABLE crews", crew_code="ACME-001-SUP-002")
        store.by_client.return_value = [bad, crew]

        result = await discover_conversations(session, "ACME-001")

        assert result.error_count == 1
        assert result.new_count == 2

    @pytest.mark.asyncio
    async def test_unique_violation_is_a_skip(self, session, store):
        store.insert_mock.side_effect = IntegrityError("INSERT", {}, _PgError())

        result = await discover_conversations(session, "ACME-001")

        assert result.new_count == 0
        assert result.skipped_count == 2
        assert result.error_count == 0
        assert session.savepoint_rollbacks == 2

    @pytest.mark.asyncio
    async def test_other_insert_errors_are_counted(self, session, store):
        store.insert_mock.side_effect = [OperationalError("INSERT", {}, Exception("x")), uuid.uuid4()]

        result = await discover_conversations(session, "ACME-001")

        assert result.error_count == 1
        assert result.new_count == 1


class TestIncremental:
    @pytest.mark.asyncio
    async def test_matches_full_scan_rows(self, session, store, crew):
        result = await discover_crew_conversations_optimized(
            session, crew.id, HISTORIES, "ACME-001", batch_size=1
        )

        assert result.new_count == 2
        row = store.conversations["sess_x"]
        assert row["duration"] == 300
        assert row["created_at"] == T0
        assert row["sentiment"] == "positive"
        # one commit per batch of one
        assert session.commit.await_count == 2

    @pytest.mark.asyncio
    async def test_only_sessions_after_watermark_are_considered(self, session, store, crew):
        await discover_crew_conversations_optimized(session, crew.id, HISTORIES, "ACME-001")
        store.sessions["sess_z"] = transcript(("user", "New question"), start=T0 + timedelta(days=1))

        result = await discover_crew_conversations_optimized(session, crew.id, HISTORIES, "ACME-001")

        assert result.new_count == 1
        assert result.skipped_count == 0
        assert "sess_z" in store.conversations

    @pytest.mark.asyncio
    async def test_active_session_is_not_duplicated(self, session, store, crew):
        await discover_crew_conversations_optimized(session, crew.id, HISTORIES, "ACME-001")
        store.sessions["sess_y"].extend(
            transcript(("assistant", "Still there?"), start=T0 + timedelta(days=2))
        )

        result = await discover_crew_conversations_optimized(session, crew.id, HISTORIES, "ACME-001")

        assert result.new_count == 0
        assert result.skipped_count == 1
        assert len(store.conversations) == 2

    @pytest.mark.asyncio
    async def test_invalid_table_name_returns_empty_result(self, session, store, crew):
        result = await discover_crew_conversations_optimized(
            session, crew.id, "bad-name", "ACME-001"
        )

        assert result.new_count == result.skipped_count == result.error_count == 0
        assert store.conversations == {}

    @pytest.mark.asyncio
    async def test_failing_session_does_not_stop_the_batch(self, session, store, crew):
        store.insert_mock.side_effect = [RuntimeError("bad row"), uuid.uuid4()]

        result = await discover_crew_conversations_optimized(session, crew.id, HISTORIES, "ACME-001")

        assert result.error_count == 1
        assert result.new_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("batch_size", [0, -1])
    async def test_rejects_non_positive_batch_size(self, session, crew, batch_size):
        with pytest.raises(ValueError):
            await discover_crew_conversations_optimized(
                session, crew.id, HISTORIES, "ACME-001", batch_size
            )

    @pytest.mark.asyncio
    async def test_client_level_totals(self, session, store, crew):
        result = await discover_conversations_optimized(session, "ACME-001")

        assert result.crews_scanned == 1
        assert result.new_count == 2
        store.by_client.assert_awaited_once_with(session, "ACME-001", "customer_support")

    @pytest.mark.asyncio
    async def test_same_rows_as_full_scan(self, session, store, crew):
        await discover_conversations_optimized(session, "ACME-001")
        incremental_rows = dict(store.conversations)
        store.conversations.clear()

        await discover_conversations(session, "ACME-001")

        assert store.conversations == incremental_rows
