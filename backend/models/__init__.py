"""Data models for the Campus Study Assistant chat service."""
from .conversation import ConversationDraft, ConversationRecord, Rating, SessionSummary
from .task import Task, TaskStatus
from .stream import RelayEvent, RelayState, StreamChunk, StreamEvent
from .upload import UploadedFile

__all__ = [
    "ConversationDraft",
    "ConversationRecord",
    "Rating",
    "SessionSummary",
    "Task",
    "TaskStatus",
    "RelayEvent",
    "RelayState",
    "StreamChunk",
    "StreamEvent",
    "UploadedFile",
]
