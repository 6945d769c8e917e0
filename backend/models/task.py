"""Background task data models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TaskStatus(str, Enum):
    """Lifecycle of an asynchronously processed request."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PROCESSING


@dataclass
class Task:
    """
    Snapshot of one tracked task.

    Attributes:
        task_id: Opaque identifier handed to the caller
        status: Current lifecycle state
        owner: Id of the user who started the task, if known
        answer: Answer text once completed
        error: Error message once failed
        created_at: Monotonic clock reading at creation
        finished_at: Monotonic clock reading at the terminal transition
        read_at: Monotonic clock reading of the first read after finishing
    """
    task_id: str
    status: TaskStatus
    created_at: float
    answer: Optional[str] = None
    error: Optional[str] = None
    finished_at: Optional[float] = None
    read_at: Optional[float] = None
    owner: Optional[str] = None
