"""Services for the Campus Study Assistant chat service."""
from .errors import (
    ChatServiceError, AuthError, ValidationError, NotFoundError,
    ExtractionError, PersistenceError, RetryExhaustedError, PoolShutdownError
)
from .llm_client import LLMClient, LLMResponse, LLMError, UpstreamError, UpstreamTimeout
from .worker_pool import WorkerPool
from .task_store import TaskStore
from .retry_policy import RetryPolicy, linear_backoff
from .stream_relay import StreamRelay, heuristic_chunk_size, relay_model_stream
from .conversation_store import ConversationStore
from .conversation_persistence import ConversationPersistence
from .learning_file_store import LearningFileStore
from .text_extractor import TextExtractor
from .auth_validator import AuthValidator
from .chat_gateway import ChatGateway, ChatRequest, ChatOutcome

__all__ = ['ChatServiceError', 'AuthError', 'ValidationError', 'NotFoundError', 'ExtractionError', 'PersistenceError', 'RetryExhaustedError', 'PoolShutdownError', 'LLMClient', 'LLMResponse', 'LLMError', 'UpstreamError', 'UpstreamTimeout', 'WorkerPool', 'TaskStore', 'RetryPolicy', 'linear_backoff', 'StreamRelay', 'heuristic_chunk_size', 'relay_model_stream', 'ConversationStore', 'ConversationPersistence', 'LearningFileStore', 'TextExtractor', 'AuthValidator', 'ChatGateway', 'ChatRequest', 'ChatOutcome']
