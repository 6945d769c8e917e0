"""Conversation record storage backed by Supabase PostgreSQL."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY, CONVERSATIONS_TABLE
from models.conversation import ConversationDraft, ConversationRecord, Rating, SessionSummary
from services.errors import NotFoundError

logger = logging.getLogger(__name__)


class ConversationStore:
    """Reads and writes question/answer records in the conversations table."""

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = CONVERSATIONS_TABLE
    ):
        """
        Initialize the store with a Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the conversations table

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.table_name = table_name
        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info(f"ConversationStore initialized with table: {table_name}")

    def insert(self, draft: ConversationDraft) -> ConversationRecord:
        """
        Write one question/answer pair.

        Args:
            draft: Record contents

        Returns:
            The stored record with its id and creation timestamp

        Raises:
            Exception: Any database error, left to the caller's retry policy
        """
        row = {
            "user_id": draft.user_id,
            "session_id": draft.session_id,
            "title": draft.title,
            "question": draft.question,
            "answer": draft.answer,
            "file_id": draft.file_id,
            "question_type": draft.question_type,
            "token_usage": draft.token_usage,
            "rating": int(Rating.UNSET),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        result = self.client.table(self.table_name).insert(row).execute()
        stored = result.data[0] if result.data else row
        logger.info(f"Stored conversation for session {draft.session_id}")
        return self._to_record(stored)

    def list_by_user(self, user_id: str, limit: int = 50) -> List[ConversationRecord]:
        """Most recent records of a user, newest first."""
        result = (
            self.client.table(self.table_name)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [self._to_record(row) for row in result.data or []]

    def list_by_session(
        self,
        user_id: str,
        session_id: str,
        limit: Optional[int] = None
    ) -> List[ConversationRecord]:
        """Records of one session in creation order (oldest first)."""
        query = (
            self.client.table(self.table_name)
            .select("*")
            .eq("user_id", user_id)
            .eq("session_id", session_id)
            .order("created_at", desc=False)
            .order("id", desc=False)
        )
        if limit:
            query = query.limit(limit)
        result = query.execute()
        return [self._to_record(row) for row in result.data or []]

    def list_recent_in_session(self, user_id: str, session_id: str, limit: int = 50) -> List[ConversationRecord]:
        """Most recent records of one session, newest first."""
        result = (
            self.client.table(self.table_name)
            .select("*")
            .eq("user_id", user_id)
            .eq("session_id", session_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [self._to_record(row) for row in result.data or []]

    def list_sessions(self, user_id: str) -> List[SessionSummary]:
        """
        One summary per session of the user, most recently started first.

        Title is the earliest non-empty title in the session, preview is the
        latest question.
        """
        records = self._list_all_ascending(user_id)
        sessions: Dict[str, List[ConversationRecord]] = {}
        for record in records:
            sessions.setdefault(record.session_id, []).append(record)

        summaries = []
        for session_id, entries in sessions.items():
            title = next((entry.title for entry in entries if entry.title), None)
            file_id = next((entry.file_id for entry in reversed(entries) if entry.file_id), None)
            summaries.append(SessionSummary(
                session_id=session_id,
                title=title,
                preview=entries[-1].question,
                created_at=entries[0].created_at,
                message_count=len(entries),
                file_id=file_id
            ))

        summaries.sort(key=lambda summary: summary.created_at, reverse=True)
        return summaries

    def _list_all_ascending(self, user_id: str) -> List[ConversationRecord]:
        result = (
            self.client.table(self.table_name)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=False)
            .order("id", desc=False)
            .execute()
        )
        return [self._to_record(row) for row in result.data or []]

    def delete_session(self, user_id: str, session_id: str) -> int:
        """
        Delete every record of a session owned by the user.

        Returns:
            Number of records deleted

        Raises:
            NotFoundError: If the user has no records in that session
        """
        result = (
            self.client.table(self.table_name)
            .delete()
            .eq("user_id", user_id)
            .eq("session_id", session_id)
            .execute()
        )
        deleted = len(result.data or [])
        if deleted == 0:
            raise NotFoundError(f"Session {session_id} not found")
        logger.info(f"Deleted session {session_id} ({deleted} records)")
        return deleted

    def rename_session(self, user_id: str, session_id: str, title: str) -> int:
        """
        Set the title on every record of a session owned by the user.

        Raises:
            NotFoundError: If the user has no records in that session
        """
        result = (
            self.client.table(self.table_name)
            .update({"title": title})
            .eq("user_id", user_id)
            .eq("session_id", session_id)
            .execute()
        )
        updated = len(result.data or [])
        if updated == 0:
            raise NotFoundError(f"Session {session_id} not found")
        logger.info(f"Renamed session {session_id}")
        return updated

    def rate(self, user_id: str, conversation_id: str, rating: Rating) -> ConversationRecord:
        """
        Record feedback on one answer.

        Raises:
            NotFoundError: If the record does not exist or belongs to another user
        """
        result = (
            self.client.table(self.table_name)
            .update({"rating": int(rating)})
            .eq("id", conversation_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not result.data:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return self._to_record(result.data[0])

    def _to_record(self, row: Dict[str, Any]) -> ConversationRecord:
        return ConversationRecord(
            id=str(row.get("id", "")),
            user_id=str(row["user_id"]),
            session_id=row["session_id"],
            question=row["question"],
            answer=row.get("answer") or "",
            created_at=self._parse_timestamp(row["created_at"]),
            file_id=str(row["file_id"]) if row.get("file_id") is not None else None,
            title=row.get("title"),
            token_usage=row.get("token_usage") or 0,
            rating=Rating(row.get("rating") or 0),
            question_type=row.get("question_type") or "text"
        )

    def _parse_timestamp(self, timestamp_str: str) -> datetime:
        """
        Parse timestamp string from Supabase, handling various formats.

        Supabase can return timestamps with varying microsecond precision,
        which Python's fromisoformat() can't always handle. This method
        normalizes the timestamp format.
        """
        timestamp_str = timestamp_str.replace("Z", "+00:00")

        # Format: 2026-02-21T02:08:26.18976+00:00
        if "." in timestamp_str:
            date_part, fraction = timestamp_str.split(".", 1)
            for sign in ("+", "-"):
                if sign in fraction:
                    microseconds, tz = fraction.split(sign, 1)
                    microseconds = microseconds[:6].ljust(6, '0')
                    timestamp_str = f"{date_part}.{microseconds}{sign}{tz}"
                    break
            else:
                timestamp_str = f"{date_part}.{fraction[:6].ljust(6, '0')}"

        return datetime.fromisoformat(timestamp_str)
