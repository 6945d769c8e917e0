"""Request gateway for the chat service: validation, routing and background work."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from config import (
    ALLOWED_EXTENSIONS,
    FILE_ANSWER_TIMEOUT,
    FILE_CONTEXT_LENGTH,
    MAX_ANSWER_LENGTH,
    STREAM_EXPECTED_LENGTH,
    STREAM_TIMEOUT,
    STREAM_UPSTREAM_TIMEOUT,
    SUMMARY_LENGTH,
    SYNC_ANSWER_TIMEOUT,
)
from models.api import PoolStatus
from models.conversation import ConversationRecord, Rating, SessionSummary
from models.task import Task
from models.upload import UploadedFile
from services.auth_validator import AuthValidator
from services.conversation_persistence import ConversationPersistence
from services.conversation_store import ConversationStore
from services.errors import NotFoundError, PoolShutdownError, ValidationError
from services.learning_file_store import LearningFileStore
from services.llm_client import LLMClient
from services.stream_relay import StreamRelay, relay_model_stream
from services.task_store import TaskStore
from services.text_extractor import TextExtractor
from services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "...\n\n(The answer was too long and has been truncated.)"
BEARER_PREFIX = "Bearer "


@dataclass
class ChatRequest:
    """One incoming chat request after the caller has been authenticated."""
    user_id: str
    question: str
    file: Optional[UploadedFile] = None
    session_id: Optional[str] = None
    stream: bool = False


@dataclass
class ChatOutcome:
    """
    Result of routing a chat request.

    kind is "answer" (synchronous text), "task" (file accepted for background
    processing) or "stream" (relay opened, events follow).
    """
    kind: str
    session_id: str
    answer: Optional[str] = None
    task_id: Optional[str] = None
    relay: Optional[StreamRelay] = None


def generate_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:12]}"


def cap_answer(answer: str) -> str:
    """Cut an over-long answer at MAX_ANSWER_LENGTH and append the truncation marker."""
    if len(answer) <= MAX_ANSWER_LENGTH:
        return answer
    logger.warning(f"Answer too long, truncating: original length {len(answer)}")
    return answer[:MAX_ANSWER_LENGTH] + TRUNCATION_MARKER


class ChatGateway:
    """
    Validates chat requests and routes them to one of three paths.

    - Plain question: answered on the request thread, persisted in the background.
    - Question with a file: a task id is returned at once; a worker saves the
      file, extracts its text, answers and persists.
    - Streaming question: a relay is opened and a worker feeds it model output.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        worker_pool: WorkerPool,
        task_store: TaskStore,
        persistence: ConversationPersistence,
        conversation_store: ConversationStore,
        file_store: LearningFileStore,
        auth_validator: AuthValidator,
        text_extractor: Optional[TextExtractor] = None,
        stream_timeout: float = STREAM_TIMEOUT,
        stream_chunk_size: Optional[int] = None
    ):
        self.llm_client = llm_client
        self.worker_pool = worker_pool
        self.task_store = task_store
        self.persistence = persistence
        self.conversation_store = conversation_store
        self.file_store = file_store
        self.auth_validator = auth_validator
        self.text_extractor = text_extractor or TextExtractor()
        self.stream_timeout = stream_timeout
        self.stream_chunk_size = stream_chunk_size

    def authenticate(self, authorization: Optional[str]) -> str:
        """
        Resolve the caller from an ``Authorization: Bearer <token>`` header.

        Raises:
            AuthError: If the header is missing, malformed or the token is rejected
        """
        token = ""
        if authorization and authorization.startswith(BEARER_PREFIX):
            token = authorization[len(BEARER_PREFIX):].strip()
        return self.auth_validator.resolve_user_id(token)

    def chat(self, request: ChatRequest) -> ChatOutcome:
        """
        Validate and dispatch a chat request.

        Validation happens before any work is queued, so a rejected request
        never touches the worker pool.

        Raises:
            ValidationError: Blank question, disallowed file type, or a file
                combined with streaming
        """
        question = (request.question or "").strip()
        if not question:
            raise ValidationError("Question cannot be empty")

        if request.file is not None:
            extension = request.file.extension
            if extension not in ALLOWED_EXTENSIONS:
                raise ValidationError(
                    f"Unsupported file type: {extension or 'unknown'}. "
                    f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                )
            if request.stream:
                raise ValidationError("Streaming answers are not available for questions with a file")

        session_id = request.session_id or generate_session_id()

        if request.file is not None:
            task_id = self.submit_file_task(request.user_id, session_id, question, request.file)
            return ChatOutcome(kind="task", session_id=session_id, task_id=task_id)

        if request.stream:
            task_id, relay = self.open_stream(request.user_id, session_id, question)
            return ChatOutcome(kind="stream", session_id=session_id, task_id=task_id, relay=relay)

        answer = self.answer_text(request.user_id, session_id, question)
        return ChatOutcome(kind="answer", session_id=session_id, answer=answer)

    def answer_text(self, user_id: str, session_id: str, question: str) -> str:
        """Answer synchronously; persistence is scheduled and never delays the reply."""
        logger.info(f"Answering text question: session={session_id}, length={len(question)}")
        answer = self.llm_client.compute_answer(question, timeout=SYNC_ANSWER_TIMEOUT)

        answer = cap_answer(answer)
        self.persistence.save_in_background(user_id, session_id, question, answer)
        return answer

    def submit_file_task(self, user_id: str, session_id: str, question: str, upload: UploadedFile) -> str:
        """Create a processing task and queue the file pipeline. Returns the task id."""
        task_id = self.task_store.create(owner=user_id)
        try:
            self.worker_pool.submit(self._process_file, task_id, user_id, session_id, question, upload)
        except PoolShutdownError as e:
            self.task_store.fail(task_id, e.message)
            raise
        logger.info(f"Queued file task {task_id}: file={upload.filename}, session={session_id}")
        return task_id

    def _process_file(
        self,
        task_id: str,
        user_id: str,
        session_id: str,
        question: str,
        upload: UploadedFile
    ) -> None:
        try:
            file_id = self.file_store.save(upload, user_id)
            text = self.text_extractor.extract(upload)
            context = text[:FILE_CONTEXT_LENGTH]

            answer = self.llm_client.compute_answer(
                question,
                contexts=[context] if context.strip() else None,
                timeout=FILE_ANSWER_TIMEOUT
            )

            self.persistence.save(user_id, session_id, question, answer, file_id=file_id)

            summary = answer[:SUMMARY_LENGTH] + "..." if len(answer) > SUMMARY_LENGTH else answer
            self.file_store.update_summary(file_id, summary)

            self.task_store.complete(task_id, answer)
            logger.info(f"File task {task_id} completed")
        except Exception as e:
            logger.error(f"File task {task_id} failed: {str(e)}", exc_info=True)
            self.task_store.fail(task_id, str(e))

    def open_stream(self, user_id: str, session_id: str, question: str):
        """
        Open a relay and queue the producer that feeds it.

        Returns:
            Tuple of (task_id, relay)
        """
        task_id = self.task_store.create(owner=user_id)

        def on_complete(answer: str) -> None:
            answer = cap_answer(answer)
            self.persistence.save_in_background(user_id, session_id, question, answer)
            self.task_store.complete(task_id, answer)

        relay = StreamRelay(
            session_id=session_id,
            chunk_size=self.stream_chunk_size,
            timeout_seconds=self.stream_timeout,
            expected_length=STREAM_EXPECTED_LENGTH,
            on_complete=on_complete
        )
        relay.open()
        try:
            self.worker_pool.submit(self._produce_stream, task_id, relay, question)
        except PoolShutdownError as e:
            relay.disconnect()
            self.task_store.fail(task_id, e.message)
            raise
        logger.info(f"Opened stream task {task_id}: session={session_id}")
        return task_id, relay

    def _produce_stream(self, task_id: str, relay: StreamRelay, question: str) -> None:
        events = self.llm_client.stream_answer(question, timeout=STREAM_UPSTREAM_TIMEOUT)
        answer = relay_model_stream(relay, events)
        if answer is None:
            self.task_store.fail(task_id, f"Stream ended in state {relay.state.value}")

    def task_status(self, task_id: str, user_id: Optional[str] = None) -> Task:
        """Status of a task; tasks owned by another user look the same as unknown ones."""
        task = self.task_store.get(task_id, owner=user_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def pool_status(self) -> PoolStatus:
        """Worker pool and task store gauges for monitoring."""
        stats = self.worker_pool.stats()
        return PoolStatus(
            pool_size=stats["pool_size"],
            active_threads=stats["active_threads"],
            queue_size=stats["queue_size"],
            completed_tasks=stats["completed_tasks"],
            caller_runs=stats["caller_runs"],
            task_status_count=len(self.task_store),
            timestamp=datetime.now(timezone.utc)
        )

    # Conversation history

    def history(self, user_id: str, session_id: Optional[str] = None, limit: int = 50) -> List[ConversationRecord]:
        if session_id:
            return self.conversation_store.list_recent_in_session(user_id, session_id, limit)
        return self.conversation_store.list_by_user(user_id, limit)

    def session_history(self, user_id: str, session_id: str) -> List[ConversationRecord]:
        records = self.conversation_store.list_by_session(user_id, session_id)
        if not records:
            raise NotFoundError(f"Session not found: {session_id}")
        return records

    def sessions(self, user_id: str) -> List[SessionSummary]:
        return self.conversation_store.list_sessions(user_id)

    def delete_session(self, user_id: str, session_id: str) -> int:
        return self.conversation_store.delete_session(user_id, session_id)

    def rename_session(self, user_id: str, session_id: str, title: str) -> int:
        return self.conversation_store.rename_session(user_id, session_id, title.strip())

    def rate(self, user_id: str, conversation_id: str, rating: int) -> ConversationRecord:
        return self.conversation_store.rate(user_id, conversation_id, Rating(rating))
