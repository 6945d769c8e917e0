"""Conversation data models."""
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Optional


class Rating(IntEnum):
    """Tri-state feedback on an answer."""
    NEGATIVE = -1
    UNSET = 0
    POSITIVE = 1


@dataclass(frozen=True)
class ConversationDraft:
    """A question/answer pair waiting to be written."""
    user_id: str
    session_id: str
    question: str
    answer: str
    file_id: Optional[str] = None
    title: Optional[str] = None
    token_usage: int = 0
    question_type: str = "text"


@dataclass
class ConversationRecord:
    """A stored question/answer exchange."""
    id: str
    user_id: str
    session_id: str
    question: str
    answer: str
    created_at: datetime
    file_id: Optional[str] = None
    title: Optional[str] = None
    token_usage: int = 0
    rating: Rating = Rating.UNSET
    question_type: str = "text"


@dataclass
class SessionSummary:
    """One row per session in the session list."""
    session_id: str
    title: Optional[str]
    preview: str
    created_at: datetime
    message_count: int
    file_id: Optional[str] = None
