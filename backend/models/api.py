"""API request/response models."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.conversation import ConversationRecord, SessionSummary
from models.task import Task, TaskStatus


class CamelModel(BaseModel):
    """Base model that serialises field names in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(CamelModel):
    """Uniform response wrapper: {code, message, data}."""
    code: int
    message: str
    data: Any = None


class ChatAnswer(CamelModel):
    answer: str
    session_id: str


class TaskAccepted(CamelModel):
    task_id: str
    session_id: str
    status: TaskStatus = TaskStatus.PROCESSING


class TaskStatusView(CamelModel):
    task_id: str
    status: TaskStatus
    answer: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskStatusView":
        return cls(task_id=task.task_id, status=task.status, answer=task.answer, error=task.error)


class ConversationView(CamelModel):
    id: str
    session_id: str
    title: Optional[str] = None
    question: str
    answer: str
    file_id: Optional[str] = None
    question_type: str = "text"
    token_usage: int = 0
    rating: int = 0
    created_at: datetime

    @classmethod
    def from_record(cls, record: ConversationRecord) -> "ConversationView":
        return cls(
            id=record.id,
            session_id=record.session_id,
            title=record.title,
            question=record.question,
            answer=record.answer,
            file_id=record.file_id,
            question_type=record.question_type,
            token_usage=record.token_usage,
            rating=int(record.rating),
            created_at=record.created_at,
        )


class SessionView(CamelModel):
    session_id: str
    title: Optional[str] = None
    preview: str
    created_at: datetime
    message_count: int
    file_id: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "SessionView":
        return cls(
            session_id=summary.session_id,
            title=summary.title,
            preview=summary.preview,
            created_at=summary.created_at,
            message_count=summary.message_count,
            file_id=summary.file_id,
        )


class RenameSessionRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)


class RateRequest(CamelModel):
    rating: int = Field(..., ge=-1, le=1)


class PoolStatus(CamelModel):
    pool_size: int
    active_threads: int
    queue_size: int
    completed_tasks: int
    caller_runs: int
    task_status_count: int
    timestamp: datetime


def envelope(data: Any = None, code: int = 200, message: str = "success") -> dict:
    """Build a JSON-ready envelope, serialising models and lists of models by alias."""
    return Envelope(code=code, message=message, data=_dump(data)).model_dump(by_alias=True, mode="json")


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, mode="json")
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return data
