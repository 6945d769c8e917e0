"""Domain errors for the chat service."""


class ChatServiceError(Exception):
    """Base class for errors raised by the chat orchestrator."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthError(ChatServiceError):
    """The caller's identity token is missing or was rejected."""

    status_code = 401


class ValidationError(ChatServiceError):
    """The request is malformed; raised before any work is queued."""

    status_code = 400


class NotFoundError(ChatServiceError):
    """Unknown task, session or conversation, or one the caller does not own."""

    status_code = 404


class ExtractionError(ChatServiceError):
    """An uploaded document could not be turned into text."""


class PersistenceError(ChatServiceError):
    """A conversation write failed."""


class RetryExhaustedError(PersistenceError):
    """Every attempt of a retry policy, including the degraded one, failed."""

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message)


class PoolShutdownError(ChatServiceError):
    """Work was submitted to a worker pool that no longer accepts it."""

    status_code = 503
