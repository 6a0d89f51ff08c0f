"""Bounded retry loop with exponential backoff around a single resource."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .errors import UnsupportedKindError
from .models import ResourceDescriptor


@dataclass
class AttemptOutcome:
    """Terminal result of fetching one resource."""

    resource_id: str
    success: bool
    attempts: int
    error: Optional[BaseException] = None
    duration_ms: float = 0.0


class RetryController:
    """Turns a sequence of fetch attempts into one terminal outcome.

    The delay before attempt ``k + 1`` is ``base_delay * factor ** (k - 1)``
    seconds. With the defaults that is 0.5s, 1s, 2s, ...
    """

    def __init__(
        self,
        fetch: Callable[[ResourceDescriptor], Awaitable[object]],
        base_delay: float = 0.5,
        factor: float = 2.0,
        on_retry: Optional[Callable[[ResourceDescriptor, int, BaseException], None]] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._fetch = fetch
        self._sleep = sleep
        self.base_delay = base_delay
        self.factor = factor
        self._on_retry = on_retry
        self.logger = logger or logging.getLogger(__name__)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * self.factor ** (attempt - 1)

    async def run(self, descriptor: ResourceDescriptor) -> AttemptOutcome:
        """Attempt the fetch up to ``retries + 1`` times.

        Per-attempt failures are not propagated. Cancellation is.
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, descriptor.max_attempts + 1):
            started = time.monotonic()
            try:
                await self._fetch(descriptor)
            except UnsupportedKindError as e:
                # No attempt can ever succeed.
                return AttemptOutcome(descriptor.id, False, attempt, e)
            except Exception as e:
                last_error = e
                if attempt > descriptor.retries:
                    break
                self.logger.debug(
                    f"Attempt {attempt}/{descriptor.max_attempts} for {descriptor.id} failed: {e}"
                )
                if self._on_retry:
                    self._on_retry(descriptor, attempt, e)
                await self._sleep(self.backoff_delay(attempt))
            else:
                duration_ms = (time.monotonic() - started) * 1000
                return AttemptOutcome(descriptor.id, True, attempt, None, duration_ms)

        return AttemptOutcome(descriptor.id, False, descriptor.max_attempts, last_error)
