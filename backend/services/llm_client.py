"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from config import (
    EMPTY_FALLBACK,
    GROQ_API_KEY,
    LLM_DEFAULT_TIMEOUT,
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TOP_P,
    STREAM_UPSTREAM_TIMEOUT,
    SYSTEM_PROMPT,
    TIMEOUT_FALLBACK,
    UNAVAILABLE_FALLBACK,
)
from models.stream import StreamEvent

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class UpstreamError(Exception):
    """Raised when the remote model call fails, with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


class UpstreamTimeout(UpstreamError):
    """Raised when the remote model call exceeds its timeout."""


class LLMClient:
    """Client for the remote text-generation endpoint (Groq chat completions)."""

    def __init__(self, api_key: Optional[str] = None, model: str = LLM_MODEL):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Model name used for every call
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        # Each call runs once within its own timeout; callers own retries
        self.client = Groq(api_key=self.api_key, max_retries=0)
        logger.info(f"LLMClient initialized with model {model}")

    def compute_answer(
        self,
        question: str,
        contexts: Optional[List[str]] = None,
        timeout: Optional[float] = None
    ) -> str:
        """
        Compute a full answer, blocking until it arrives or the timeout passes.

        Never raises: timeouts and transport failures are replaced with
        user-facing fallback text.

        Args:
            question: User question
            contexts: Optional reference material included in the prompt
            timeout: Per-call timeout in seconds (defaults to LLM_DEFAULT_TIMEOUT)

        Returns:
            The answer text, or a fallback string
        """
        try:
            response = self.generate(
                self.build_messages(question, contexts),
                timeout=timeout or LLM_DEFAULT_TIMEOUT
            )
        except UpstreamTimeout:
            return TIMEOUT_FALLBACK
        except UpstreamError:
            return UNAVAILABLE_FALLBACK

        if not response.text or not response.text.strip():
            logger.warning("Model returned an empty answer")
            return EMPTY_FALLBACK
        return response.text

    def stream_answer(
        self,
        question: str,
        contexts: Optional[List[str]] = None,
        timeout: Optional[float] = None
    ) -> Iterator[StreamEvent]:
        """
        Stream an answer as incremental text fragments.

        Yields "token" events followed by exactly one terminal event:
        "done" when the upstream reports a finish reason, or "error" when the
        transport fails or the stream ends without one.

        Args:
            question: User question
            contexts: Optional reference material included in the prompt
            timeout: Upstream timeout in seconds (defaults to STREAM_UPSTREAM_TIMEOUT)
        """
        start_time = time.time()
        finish_reason = None
        fragments = 0

        try:
            stream = self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(question, contexts),
                max_tokens=LLM_MAX_TOKENS,
                temperature=LLM_TEMPERATURE,
                top_p=LLM_TOP_P,
                stream=True,
                timeout=timeout or STREAM_UPSTREAM_TIMEOUT
            )
            try:
                for chunk in stream:
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    content = choice.delta.content if choice.delta else None
                    if content:
                        fragments += 1
                        yield StreamEvent(type="token", content=content)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason
                        break
            finally:
                stream.close()
        except APITimeoutError as e:
            logger.error(f"Stream timed out: model={self.model}, error={e}")
            yield StreamEvent(type="error", content=TIMEOUT_FALLBACK)
            return
        except Exception as e:
            logger.error(f"Stream failed: model={self.model}, error={e}", exc_info=True)
            yield StreamEvent(type="error", content=UNAVAILABLE_FALLBACK)
            return

        latency_ms = int((time.time() - start_time) * 1000)
        if finish_reason is None:
            logger.error(f"Stream ended without a finish reason after {fragments} fragments")
            yield StreamEvent(type="error", content=UNAVAILABLE_FALLBACK)
            return

        logger.info(
            f"Stream finished: model={self.model}, fragments={fragments}, "
            f"finish_reason={finish_reason}, latency={latency_ms}ms"
        )
        yield StreamEvent(type="done")

    def generate(
        self,
        messages: List[Dict[str, str]],
        timeout: float = LLM_DEFAULT_TIMEOUT,
        max_tokens: int = LLM_MAX_TOKENS
    ) -> LLMResponse:
        """
        Generate a response using Groq API.

        Args:
            messages: Chat messages (system + user)
            timeout: Per-call timeout in seconds
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            UpstreamTimeout: If the call exceeded the timeout
            UpstreamError: Structured error with code, message, and details
        """
        start_time = time.time()

        try:
            logger.debug(f"Generating response with model: {self.model}")

            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=LLM_TEMPERATURE,
                top_p=LLM_TOP_P,
                timeout=timeout
            )

            latency_ms = int((time.time() - start_time) * 1000)
            text = response.choices[0].message.content
            tokens_input = response.usage.prompt_tokens
            tokens_output = response.usage.completion_tokens

            logger.info(
                f"Generated response: model={self.model}, "
                f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
                f"latency={latency_ms}ms"
            )

            return LLMResponse(
                text=text,
                tokens_input=tokens_input,
                tokens_output=tokens_output,
                latency_ms=latency_ms,
                model_used=self.model
            )

        except RateLimitError as e:
            raise self._upstream_error(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                start_time, e, retry_after=60
            )
        except AuthenticationError as e:
            raise self._upstream_error(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                start_time, e
            )
        except APITimeoutError as e:
            raise self._upstream_error(
                "TIMEOUT_ERROR",
                "Request timed out. Please try again.",
                start_time, e, error_class=UpstreamTimeout
            )
        except APIError as e:
            raise self._upstream_error(
                "API_ERROR",
                f"Groq API error: {str(e)}",
                start_time, e
            )
        except Exception as e:
            raise self._upstream_error(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                start_time, e, error_type=type(e).__name__
            )

    def _upstream_error(
        self,
        code: str,
        message: str,
        start_time: float,
        cause: Exception,
        error_class: type = UpstreamError,
        **details: Any
    ) -> UpstreamError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "latency_ms": latency_ms,
                "original_error": str(cause),
                **details
            }
        )
        logger.error(
            f"{code}: model={self.model}, latency={latency_ms}ms, error={cause}",
            exc_info=True,
            extra={"error_code": error.code, "error_details": error.details}
        )
        return error_class(error)

    @staticmethod
    def build_messages(
        question: str,
        contexts: Optional[List[str]] = None
    ) -> List[Dict[str, str]]:
        """
        Build the chat messages: fixed system instruction plus user prompt.

        Args:
            question: User question
            contexts: Reference material; omitted entirely when empty

        Returns:
            List of role/content messages
        """
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": LLMClient.build_user_prompt(question, contexts)},
        ]

    @staticmethod
    def build_user_prompt(question: str, contexts: Optional[List[str]] = None) -> str:
        """Build the user prompt, wrapping the question with numbered references when given."""
        if not contexts:
            return question

        sections = [
            f"[Reference {index}]\n{context}"
            for index, context in enumerate(contexts, start=1)
        ]
        return (
            "Please answer the question using the following reference material:\n\n"
            + "\n\n".join(sections)
            + f"\n\nQuestion: {question}\n\n"
            + "Give a detailed answer based on the material above."
        )
