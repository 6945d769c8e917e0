"""In-process store tracking the status of background chat tasks."""
import logging
import threading
import time
import uuid
from dataclasses import replace
from typing import Callable, Dict, Optional

from config import TASK_READ_GRACE_SECONDS, TASK_TTL_SECONDS
from models.task import Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Thread-safe map from task id to task status.

    Each task has a single writer (the worker unit that owns it), so plain
    overwrites are race-free; the lock only protects the map itself. Terminal
    states are final: a second terminal write is ignored. State lives in
    process memory only and is lost on restart.
    """

    def __init__(
        self,
        ttl_seconds: float = TASK_TTL_SECONDS,
        read_grace_seconds: float = TASK_READ_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            ttl_seconds: How long a finished task is kept when nobody reads it
            read_grace_seconds: How long a finished task is kept after its first read
            clock: Monotonic time source
        """
        self.ttl_seconds = ttl_seconds
        self.read_grace_seconds = read_grace_seconds
        self._clock = clock
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def create(self, owner: Optional[str] = None) -> str:
        """Register a new task in the processing state and return its id."""
        self.purge_expired()
        with self._lock:
            task_id = self._generate_task_id()
            while task_id in self._tasks:
                task_id = self._generate_task_id()
            self._tasks[task_id] = Task(
                task_id=task_id,
                status=TaskStatus.PROCESSING,
                created_at=self._clock(),
                owner=owner
            )
        logger.debug(f"Created task {task_id}")
        return task_id

    def complete(self, task_id: str, answer: str) -> bool:
        """Mark a task completed with its answer. Returns False if the transition was refused."""
        return self._finish(task_id, TaskStatus.COMPLETED, answer=answer)

    def fail(self, task_id: str, error: str) -> bool:
        """Mark a task failed with an error message. Returns False if the transition was refused."""
        return self._finish(task_id, TaskStatus.FAILED, error=error)

    def get(self, task_id: str, owner: Optional[str] = None) -> Optional[Task]:
        """
        Return a snapshot of the task, or None if unknown or evicted.

        With an owner given, a task started by a different user is reported
        as unknown and its state is left untouched. The first read of a
        finished task starts its eviction grace window.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            if owner is not None and task.owner is not None and task.owner != owner:
                return None
            if task.status.is_terminal and task.read_at is None:
                task.read_at = self._clock()
            return replace(task)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Drop finished tasks whose retention window has passed. Returns the number removed."""
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [
                task_id for task_id, task in self._tasks.items()
                if self._is_expired(task, now)
            ]
            for task_id in expired:
                del self._tasks[task_id]
        if expired:
            logger.info(f"Evicted {len(expired)} finished tasks")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def _finish(self, task_id: str, status: TaskStatus, answer: Optional[str] = None,
                error: Optional[str] = None) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.warning(f"Ignoring {status.value} for unknown task {task_id}")
                return False
            if task.status.is_terminal:
                logger.warning(
                    f"Ignoring {status.value} for task {task_id}: already {task.status.value}"
                )
                return False
            task.status = status
            task.answer = answer
            task.error = error
            task.finished_at = self._clock()
        logger.info(f"Task {task_id} {status.value}")
        return True

    def _is_expired(self, task: Task, now: float) -> bool:
        if not task.status.is_terminal:
            return False
        if task.read_at is not None and now - task.read_at >= self.read_grace_seconds:
            return True
        return now - task.finished_at >= self.ttl_seconds

    @staticmethod
    def _generate_task_id() -> str:
        return f"task_{uuid.uuid4().hex[:12]}"
