"""Unit tests for TaskStore."""
import sys
sys.path.insert(0, 'backend')

import re
import threading

from models.task import TaskStatus
from services.task_store import TaskStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestTaskLifecycle:
    """Tests for task creation and terminal transitions."""

    def test_create_returns_processing_task(self):
        store = TaskStore()
        task_id = store.create()

        assert re.fullmatch(r"task_[0-9a-f]{12}", task_id)
        task = store.get(task_id)
        assert task.status == TaskStatus.PROCESSING
        assert task.answer is None
        assert task.error is None

    def test_task_ids_are_unique(self):
        store = TaskStore()
        ids = {store.create() for _ in range(200)}
        assert len(ids) == 200

    def test_complete_records_answer(self):
        store = TaskStore()
        task_id = store.create()

        assert store.complete(task_id, "The answer") is True

        task = store.get(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.answer == "The answer"

    def test_fail_records_error(self):
        store = TaskStore()
        task_id = store.create()

        assert store.fail(task_id, "Unsupported file format: exe") is True

        task = store.get(task_id)
        assert task.status == TaskStatus.FAILED
        assert task.error == "Unsupported file format: exe"

    def test_terminal_state_is_final(self):
        """Test a second terminal write is refused and the first one kept."""
        store = TaskStore()
        task_id = store.create()
        store.complete(task_id, "first")

        assert store.fail(task_id, "late failure") is False
        assert store.complete(task_id, "second") is False

        task = store.get(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.answer == "first"

    def test_unknown_task(self):
        store = TaskStore()

        assert store.get("task_000000000000") is None
        assert store.complete("task_000000000000", "answer") is False

    def test_owner_is_kept(self):
        store = TaskStore()
        task_id = store.create(owner="user-1")

        assert store.get(task_id).owner == "user-1"
        assert store.get(task_id, owner="user-1").task_id == task_id

    def test_other_owner_sees_unknown_task(self):
        """Test a different user's read reports nothing and does not start the grace window."""
        clock = FakeClock()
        store = TaskStore(ttl_seconds=3600, read_grace_seconds=300, clock=clock)
        task_id = store.create(owner="user-1")
        store.complete(task_id, "private answer")

        assert store.get(task_id, owner="user-2") is None

        clock.advance(301)
        store.purge_expired()
        assert store.get(task_id, owner="user-1").answer == "private answer"

    def test_get_returns_snapshot(self):
        """Test mutating a returned task does not change the stored one."""
        store = TaskStore()
        task_id = store.create()

        snapshot = store.get(task_id)
        snapshot.status = TaskStatus.FAILED

        assert store.get(task_id).status == TaskStatus.PROCESSING

    def test_clear_and_len(self):
        store = TaskStore()
        store.create()
        store.create()
        assert len(store) == 2

        store.clear()
        assert len(store) == 0

    def test_concurrent_creates(self):
        store = TaskStore()
        created = []
        lock = threading.Lock()

        def create_many():
            for _ in range(50):
                task_id = store.create()
                with lock:
                    created.append(task_id)

        threads = [threading.Thread(target=create_many) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(created)) == 400
        assert len(store) == 400


class TestTaskEviction:
    """Tests for retention of finished tasks."""

    def test_processing_tasks_are_never_evicted(self):
        clock = FakeClock()
        store = TaskStore(ttl_seconds=60, read_grace_seconds=10, clock=clock)
        task_id = store.create()

        clock.advance(10_000)

        assert store.purge_expired() == 0
        assert store.get(task_id).status == TaskStatus.PROCESSING

    def test_unread_task_kept_until_ttl(self):
        clock = FakeClock()
        store = TaskStore(ttl_seconds=60, read_grace_seconds=10, clock=clock)
        task_id = store.create()
        store.complete(task_id, "answer")

        clock.advance(59)
        assert store.purge_expired() == 0

        clock.advance(1)
        assert store.purge_expired() == 1
        assert store.get(task_id) is None

    def test_read_task_kept_for_grace_window(self):
        """Test a finished task stays readable for the grace window after its first read."""
        clock = FakeClock()
        store = TaskStore(ttl_seconds=3600, read_grace_seconds=10, clock=clock)
        task_id = store.create()
        store.complete(task_id, "answer")

        assert store.get(task_id).answer == "answer"

        clock.advance(9)
        assert store.get(task_id).answer == "answer"

        clock.advance(1)
        store.purge_expired()
        assert store.get(task_id) is None

    def test_create_purges_expired_tasks(self):
        clock = FakeClock()
        store = TaskStore(ttl_seconds=60, read_grace_seconds=10, clock=clock)
        old_id = store.create()
        store.fail(old_id, "boom")

        clock.advance(61)
        store.create()

        assert store.get(old_id) is None
        assert len(store) == 1
