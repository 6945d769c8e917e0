"""Shared test doubles."""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from models.conversation import ConversationDraft, ConversationRecord, Rating, SessionSummary
from services.errors import NotFoundError


class InMemoryConversationStore:
    """
    Conversation store keeping records in a list.

    ``fail_times`` makes the next N inserts raise, to exercise retries.
    """

    def __init__(self, fail_times: int = 0):
        self.records: List[ConversationRecord] = []
        self.drafts: List[ConversationDraft] = []
        self.fail_times = fail_times
        self._next_id = 1
        self._base_time = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def insert(self, draft: ConversationDraft) -> ConversationRecord:
        self.drafts.append(draft)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("database unavailable")
        record = ConversationRecord(
            id=str(self._next_id),
            user_id=draft.user_id,
            session_id=draft.session_id,
            question=draft.question,
            answer=draft.answer,
            created_at=self._base_time + timedelta(seconds=self._next_id),
            file_id=draft.file_id,
            title=draft.title,
            token_usage=draft.token_usage,
            question_type=draft.question_type
        )
        self._next_id += 1
        self.records.append(record)
        return record

    def list_by_user(self, user_id: str, limit: int = 50) -> List[ConversationRecord]:
        owned = [r for r in self.records if r.user_id == user_id]
        return sorted(owned, key=lambda r: r.created_at, reverse=True)[:limit]

    def list_by_session(self, user_id: str, session_id: str, limit: Optional[int] = None):
        owned = [r for r in self.records if r.user_id == user_id and r.session_id == session_id]
        owned.sort(key=lambda r: (r.created_at, int(r.id)))
        return owned[:limit] if limit else owned

    def list_recent_in_session(self, user_id: str, session_id: str, limit: int = 50):
        return list(reversed(self.list_by_session(user_id, session_id)))[:limit]

    def list_sessions(self, user_id: str) -> List[SessionSummary]:
        summaries = {}
        for record in sorted(self.records, key=lambda r: r.created_at):
            if record.user_id != user_id:
                continue
            summary = summaries.get(record.session_id)
            if summary is None:
                summaries[record.session_id] = SessionSummary(
                    session_id=record.session_id,
                    title=record.title,
                    preview=record.question,
                    created_at=record.created_at,
                    message_count=1,
                    file_id=record.file_id
                )
            else:
                summary.preview = record.question
                summary.message_count += 1
        return sorted(summaries.values(), key=lambda s: s.created_at, reverse=True)

    def delete_session(self, user_id: str, session_id: str) -> int:
        keep = [r for r in self.records if not (r.user_id == user_id and r.session_id == session_id)]
        deleted = len(self.records) - len(keep)
        if deleted == 0:
            raise NotFoundError(f"Session {session_id} not found")
        self.records = keep
        return deleted

    def rename_session(self, user_id: str, session_id: str, title: str) -> int:
        updated = 0
        for record in self.records:
            if record.user_id == user_id and record.session_id == session_id:
                record.title = title
                updated += 1
        if updated == 0:
            raise NotFoundError(f"Session {session_id} not found")
        return updated

    def rate(self, user_id: str, conversation_id: str, rating: Rating) -> ConversationRecord:
        for record in self.records:
            if record.id == conversation_id and record.user_id == user_id:
                record.rating = rating
                return record
        raise NotFoundError(f"Conversation {conversation_id} not found")


@pytest.fixture
def memory_store():
    return InMemoryConversationStore()
