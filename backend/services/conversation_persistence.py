"""Durable, failure-tolerant write path for question/answer pairs."""
import logging
import time
from concurrent.futures import Future
from dataclasses import replace
from typing import Callable, Optional

from config import (
    PERSIST_BACKOFF_STEP,
    PERSIST_MAX_ATTEMPTS,
    PERSIST_TRUNCATE_LENGTH,
    TITLE_LENGTH,
)
from models.conversation import ConversationDraft
from services.conversation_store import ConversationStore
from services.errors import PersistenceError, PoolShutdownError
from services.retry_policy import RetryPolicy, linear_backoff
from services.token_counter import estimate_tokens
from services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


def truncate_answer(draft: ConversationDraft, limit: int = PERSIST_TRUNCATE_LENGTH) -> Optional[ConversationDraft]:
    """Degraded payload for a last write attempt, or None when the answer is already short."""
    if len(draft.answer) <= limit:
        return None
    return replace(draft, answer=draft.answer[:limit] + "...")


def make_title(question: str, limit: int = TITLE_LENGTH) -> str:
    question = question.strip()
    return question[:limit] + "..." if len(question) > limit else question


class ConversationPersistence:
    """
    Saves conversation records off the request path.

    Failed writes are retried with linear backoff (1s, 2s, 3s by default);
    when the answer is long, one final attempt is made with the answer
    truncated. If that fails too the record is dropped and logged. Nothing
    here ever raises back to the request that produced the answer.
    """

    def __init__(
        self,
        store: ConversationStore,
        worker_pool: Optional[WorkerPool] = None,
        retry_policy: Optional[RetryPolicy] = None,
        token_counter: Callable[..., int] = estimate_tokens,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            store: Conversation store that performs the actual write
            worker_pool: Pool used by save_in_background
            retry_policy: Overrides the default retry-with-degrade policy
            token_counter: Estimates token usage of question and answer
            sleep: Sleep function used for backoff when no policy is given
        """
        self.store = store
        self.worker_pool = worker_pool
        self.token_counter = token_counter
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=PERSIST_MAX_ATTEMPTS,
            backoff=linear_backoff(PERSIST_BACKOFF_STEP),
            degrade=truncate_answer,
            sleep=sleep,
            name="Conversation save"
        )

    def save(
        self,
        user_id: str,
        session_id: str,
        question: str,
        answer: str,
        file_id: Optional[str] = None
    ) -> bool:
        """
        Write one record, retrying and degrading on failure.

        Returns:
            True if some attempt succeeded, False if the record was dropped
        """
        try:
            draft = ConversationDraft(
                user_id=user_id,
                session_id=session_id,
                question=question,
                answer=answer,
                file_id=file_id,
                title=make_title(question),
                token_usage=self._estimate_tokens(question, answer),
                question_type="file" if file_id else "text"
            )
            self.retry_policy.run(self.store.insert, draft)
        except PersistenceError as e:
            logger.error(
                f"Dropping conversation record for session {session_id}: {e}",
                exc_info=True,
                extra={"session_id": session_id, "answer_length": len(answer)}
            )
            return False

        logger.info(f"Conversation saved: session={session_id}, answer_length={len(answer)}")
        return True

    def save_in_background(
        self,
        user_id: str,
        session_id: str,
        question: str,
        answer: str,
        file_id: Optional[str] = None
    ) -> Optional[Future]:
        """Schedule save() on the worker pool. Returns None if the pool no longer accepts work."""
        if self.worker_pool is None:
            raise RuntimeError("ConversationPersistence has no worker pool for background saves")
        try:
            return self.worker_pool.submit(self.save, user_id, session_id, question, answer, file_id)
        except PoolShutdownError:
            logger.error(f"Worker pool shut down, dropping conversation record for session {session_id}")
            return None

    def _estimate_tokens(self, question: str, answer: str) -> int:
        try:
            return self.token_counter(question, answer)
        except Exception as e:
            logger.warning(f"Token estimate unavailable: {e}")
            return 0
