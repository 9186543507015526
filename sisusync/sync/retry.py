"""Linear-backoff retry for transient store and registry failures."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sisusync.integrations.sisu import TransientRegistryError
from sisusync.store.base import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (TransientRegistryError, TransientStoreError)


class RetriesExhausted(Exception):
    """A transient failure persisted through every attempt."""

    def __init__(self, label: str, attempts: int, last_error: Exception) -> None:
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget with linear backoff: sleep ``attempt * delay`` between tries."""

    attempts: int = 3
    delay: float = 1.0

    def backoff(self, attempt: int) -> float:
        return attempt * self.delay


async def call_with_retry(
    policy: RetryPolicy,
    label: str,
    fn: Callable[..., Awaitable[T]],
    *args,
    **kwargs,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying only on transient errors.

    Non-transient exceptions (including definitive not-found answers)
    propagate on the first attempt.

    Raises:
        RetriesExhausted: If every attempt raised a transient error.
    """
    for attempt in range(1, policy.attempts + 1):
        try:
            return await fn(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            if attempt == policy.attempts:
                raise RetriesExhausted(label, attempt, exc) from exc
            wait = policy.backoff(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                label,
                attempt,
                policy.attempts,
                exc,
                wait,
            )
            await asyncio.sleep(wait)
    raise ValueError("RetryPolicy.attempts must be at least 1")
