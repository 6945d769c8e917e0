"""Generic retry-with-degrade policy."""
import logging
import time
from typing import Callable, Generic, Optional, TypeVar

from services.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R")


def linear_backoff(step: float = 1.0) -> Callable[[int], float]:
    """Delay of ``step * n`` seconds after the n-th failed attempt (1s, 2s, 3s, ...)."""
    return lambda attempt: step * attempt


class RetryPolicy(Generic[P, R]):
    """
    Run an operation with bounded retries and an optional degraded last attempt.

    After each failed attempt the policy sleeps ``backoff(n)`` seconds, but only
    when another attempt follows. Once the regular attempts are used up,
    ``degrade(payload)`` may return a reduced payload for one final attempt;
    returning None skips it.
    """

    def __init__(
        self,
        max_attempts: int,
        backoff: Callable[[int], float],
        degrade: Optional[Callable[[P], Optional[P]]] = None,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "operation"
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.degrade = degrade
        self.sleep = sleep
        self.name = name

    def run(self, operation: Callable[[P], R], payload: P) -> R:
        """
        Apply ``operation`` to ``payload`` until it succeeds.

        Raises:
            RetryExhaustedError: If every attempt, including the degraded one, failed
        """
        degraded = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation(payload)
            except Exception as e:
                logger.warning(
                    f"{self.name} failed, attempt {attempt}/{self.max_attempts}: {e}"
                )
                if attempt == self.max_attempts:
                    degraded = self.degrade(payload) if self.degrade else None
                    if degraded is None:
                        raise RetryExhaustedError(
                            f"{self.name} failed after {attempt} attempts: {e}",
                            attempts=attempt
                        ) from e
                self.sleep(self.backoff(attempt))

        try:
            result = operation(degraded)
        except Exception as e:
            raise RetryExhaustedError(
                f"{self.name} failed after {self.max_attempts} attempts and a degraded attempt: {e}",
                attempts=self.max_attempts + 1
            ) from e
        logger.info(f"{self.name} succeeded with degraded payload")
        return result
