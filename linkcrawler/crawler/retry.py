"""
Exponential backoff with jitter for fallible async operations.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..exceptions import FetchFailure

T = TypeVar('T')


def is_client_error(error: BaseException) -> bool:
    """Client-class (4xx) failures are never retried."""
    return isinstance(error, FetchFailure) and error.is_client_error


class RetryExecutor:
    """
    Runs an operation until it succeeds or its attempts are used up.

    The delay after failed attempt ``k`` (0-indexed) is
    ``base_delay * 2 ** k`` plus a uniform jitter in ``[0, max_jitter)``, so
    concurrent jobs do not retry in lockstep.
    """

    def __init__(self, max_jitter: float = 1.0,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None,
                 rng: Optional[random.Random] = None):
        self.max_jitter = max_jitter
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self.logger = logging.getLogger(__name__)

    def compute_delay(self, attempt: int, base_delay: float) -> float:
        return base_delay * (2 ** attempt) + self._rng.random() * self.max_jitter

    async def execute(self, operation: Callable[[], Awaitable[T]],
                      max_attempts: int = 3, base_delay: float = 1.0) -> T:
        """
        Run ``operation`` with retries.

        Args:
            operation: Zero-argument callable returning an awaitable
            max_attempts: Upper bound on the number of calls
            base_delay: Base delay in seconds before the first retry

        Returns:
            The operation's result

        Raises:
            The last failure, unchanged, once attempts are exhausted, or a
            client-class failure immediately.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        last_error: Optional[BaseException] = None
        for attempt in range(max_attempts):
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                if is_client_error(e):
                    raise

                if attempt + 1 >= max_attempts:
                    break

                delay = self.compute_delay(attempt, base_delay)
                self.logger.debug(
                    f"Attempt {attempt + 1}/{max_attempts} failed ({e}); retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        raise last_error
