"""Retry policy shared by all connectors.

Rate limiting (429) and upstream unavailability (5xx, timeouts) are retried
a small fixed number of times with a multi-second pause; anything else is
raised immediately.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from funding_arb.config import ConnectorSettings
from funding_arb.exceptions import UpstreamError
from funding_arb.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Per-exchange retry tuning.

    max_attempts counts the first try: 2 means one retry.
    """

    exchange: str
    max_attempts: int = 2
    rate_limit_delay: float = 15.0
    unavailable_delay: float = 30.0

    @classmethod
    def from_settings(cls, exchange: str, settings: ConnectorSettings) -> "RetryPolicy":
        return cls(
            exchange=exchange,
            max_attempts=max(1, settings.max_attempts),
            rate_limit_delay=settings.rate_limit_delay,
            unavailable_delay=settings.unavailable_delay,
        )

    def delay_for(self, error: UpstreamError) -> float:
        return self.rate_limit_delay if error.is_rate_limited else self.unavailable_delay

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        label: str = "",
        **kwargs: Any,
    ) -> T:
        """Await fn(*args, **kwargs), retrying transient UpstreamErrors.

        Re-raises the last error when attempts are exhausted or the error
        is permanent.
        """
        attempt = 1
        while True:
            try:
                return await fn(*args, **kwargs)
            except UpstreamError as exc:
                if not exc.is_transient or attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(exc)
                logger.warning(
                    "upstream_retry",
                    exchange=self.exchange,
                    label=label,
                    status=exc.status,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
