"""Bounded retry with exponential backoff for upstream requests."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from buyback_tracker.config import Settings
from buyback_tracker.errors import UpstreamUnavailable


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry policy shared by every upstream fetcher.

    Delay before attempt n+1 is ``base_delay * multiplier ** (n - 1)``.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    total_timeout: float | None = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackoffPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            total_timeout=settings.fetch_timeout,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given 1-based failed attempt."""
        return self.base_delay * self.multiplier ** (attempt - 1)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        source: str,
        label: str = "request",
    ) -> T:
        """
        Run an operation under this policy.

        Only UpstreamUnavailable is retried; anything else propagates at once.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            source: Feed name used in errors
            label: Description for logging

        Raises:
            UpstreamUnavailable: when attempts are exhausted or the overall
                deadline passes
        """
        try:
            return await asyncio.wait_for(
                self._attempts(operation, source, label), timeout=self.total_timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"{label}: gave up after {self.total_timeout}s")
            raise UpstreamUnavailable(
                source, f"timed out after {self.total_timeout}s"
            ) from e

    async def _attempts(
        self,
        operation: Callable[[], Awaitable[T]],
        source: str,
        label: str,
    ) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except UpstreamUnavailable as e:
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"{label}: failed after {self.max_attempts} attempts ({e.reason})"
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    f"{label}: attempt {attempt}/{self.max_attempts} failed ({e.reason}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise UpstreamUnavailable(source, "no attempts configured")
