"""Unit tests for ConversationStore with a mocked Supabase client."""
import sys
sys.path.insert(0, 'backend')

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, call, patch

from models.conversation import ConversationDraft, Rating
from services.conversation_store import ConversationStore
from services.errors import NotFoundError


def make_query(data):
    """Supabase query builder whose chained calls all return the builder itself."""
    query = MagicMock()
    for name in ("select", "insert", "update", "delete", "eq", "order", "limit"):
        getattr(query, name).return_value = query
    query.execute.return_value = Mock(data=data)
    return query


def row(id, session_id, question, created_at, title=None, file_id=None, user_id="user-1"):
    return {
        "id": id,
        "user_id": user_id,
        "session_id": session_id,
        "question": question,
        "answer": f"answer to {question}",
        "created_at": created_at,
        "title": title,
        "file_id": file_id,
        "token_usage": 12,
        "rating": 0,
        "question_type": "file" if file_id else "text",
    }


@pytest.fixture
def supabase_client():
    with patch('services.conversation_store.create_client') as mock_create_client:
        client = MagicMock()
        mock_create_client.return_value = client
        yield client


@pytest.fixture
def store(supabase_client):
    return ConversationStore(supabase_url="https://example.supabase.co", supabase_key="key")


class TestConversationStore:
    """Test suite for ConversationStore."""

    def test_requires_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            ConversationStore(supabase_url=None, supabase_key=None)

    def test_insert_writes_row(self, store, supabase_client):
        stored = row(7, "sess_abc", "What is entropy?", "2026-03-01T09:00:00.123+00:00", title="What is entropy?")
        query = make_query([stored])
        supabase_client.table.return_value = query

        draft = ConversationDraft(
            user_id="user-1",
            session_id="sess_abc",
            question="What is entropy?",
            answer="answer to What is entropy?",
            title="What is entropy?",
            token_usage=12
        )
        record = store.insert(draft)

        inserted = query.insert.call_args.args[0]
        assert inserted["session_id"] == "sess_abc"
        assert inserted["rating"] == 0
        assert inserted["question_type"] == "text"
        assert record.id == "7"
        assert record.created_at == datetime(2026, 3, 1, 9, 0, 0, 123000, tzinfo=timezone.utc)

    def test_insert_propagates_database_errors(self, store, supabase_client):
        query = make_query([])
        query.execute.side_effect = ConnectionError("database unavailable")
        supabase_client.table.return_value = query

        with pytest.raises(ConnectionError):
            store.insert(ConversationDraft(user_id="u", session_id="s", question="q", answer="a"))

    def test_list_by_session_orders_oldest_first(self, store, supabase_client):
        query = make_query([
            row(1, "sess_abc", "first", "2026-03-01T09:00:00+00:00"),
            row(2, "sess_abc", "second", "2026-03-01T09:00:05+00:00"),
        ])
        supabase_client.table.return_value = query

        records = store.list_by_session("user-1", "sess_abc")

        assert [record.question for record in records] == ["first", "second"]
        query.eq.assert_has_calls([call("user_id", "user-1"), call("session_id", "sess_abc")])
        query.order.assert_has_calls([call("created_at", desc=False), call("id", desc=False)])

    def test_list_by_user_newest_first(self, store, supabase_client):
        query = make_query([])
        supabase_client.table.return_value = query

        store.list_by_user("user-1", limit=20)

        query.order.assert_called_once_with("created_at", desc=True)
        query.limit.assert_called_once_with(20)

    def test_list_sessions_groups_records(self, store, supabase_client):
        supabase_client.table.return_value = make_query([
            row(1, "sess_a", "Intro to sets", "2026-03-01T09:00:00+00:00", title="Intro to sets"),
            row(2, "sess_b", "Read this file", "2026-03-02T09:00:00+00:00", title="Read this file", file_id=5),
            row(3, "sess_a", "What is a union?", "2026-03-03T09:00:00+00:00", title="Intro to sets"),
        ])

        summaries = store.list_sessions("user-1")

        assert [summary.session_id for summary in summaries] == ["sess_b", "sess_a"]
        session_a = summaries[1]
        assert session_a.title == "Intro to sets"
        assert session_a.preview == "What is a union?"
        assert session_a.message_count == 2
        assert summaries[0].file_id == "5"

    def test_delete_session(self, store, supabase_client):
        supabase_client.table.return_value = make_query([{"id": 1}, {"id": 2}])
        assert store.delete_session("user-1", "sess_abc") == 2

    def test_delete_unknown_session(self, store, supabase_client):
        supabase_client.table.return_value = make_query([])
        with pytest.raises(NotFoundError):
            store.delete_session("user-1", "sess_missing")

    def test_rename_unknown_session(self, store, supabase_client):
        supabase_client.table.return_value = make_query([])
        with pytest.raises(NotFoundError):
            store.rename_session("user-1", "sess_missing", "New title")

    def test_rate_filters_by_owner(self, store, supabase_client):
        rated = row(9, "sess_abc", "q", "2026-03-01T09:00:00+00:00")
        rated["rating"] = 1
        query = make_query([rated])
        supabase_client.table.return_value = query

        record = store.rate("user-1", "9", Rating.POSITIVE)

        assert record.rating == Rating.POSITIVE
        query.update.assert_called_once_with({"rating": 1})
        query.eq.assert_has_calls([call("id", "9"), call("user_id", "user-1")])

    def test_rate_foreign_conversation(self, store, supabase_client):
        supabase_client.table.return_value = make_query([])
        with pytest.raises(NotFoundError):
            store.rate("someone-else", "9", Rating.NEGATIVE)

    def test_parse_timestamp_variants(self, store):
        assert store._parse_timestamp("2026-02-21T02:08:26.18976+00:00").microsecond == 189760
        assert store._parse_timestamp("2026-02-21T02:08:26Z").tzinfo is not None
