"""Bounded retry for async operations."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """Outcome of `retry_async`.

    `errors` holds every retryable failure seen, in order. A successful result
    may still carry errors from earlier attempts.
    """

    value: T | None
    succeeded: bool
    attempts: int
    errors: tuple[BaseException, ...] = ()

    @property
    def exhausted(self) -> bool:
        return not self.succeeded

    @property
    def last_error(self) -> BaseException | None:
        return self.errors[-1] if self.errors else None


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> RetryResult[T]:
    """Run `operation` up to `attempts` times back to back.

    Only exceptions matching `retry_on` count as a failed attempt; anything
    else propagates immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    errors: list[BaseException] = []
    for attempt in range(1, attempts + 1):
        try:
            value = await operation()
        except retry_on as exc:
            errors.append(exc)
            LOGGER.warning("%s failed (attempt %d/%d): %s", description, attempt, attempts, exc)
            continue
        return RetryResult(value=value, succeeded=True, attempts=attempt, errors=tuple(errors))

    return RetryResult(value=None, succeeded=False, attempts=attempts, errors=tuple(errors))
