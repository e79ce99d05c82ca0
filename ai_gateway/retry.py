"""Per-attempt timeout and exponential backoff for provider calls"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from .errors import GatewayError, ProviderError, ProviderTimeout
from .validation import InputValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How hard to try one provider before giving up on it"""

    attempts: int = 3
    timeout: float = 120.0  # seconds, per attempt
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after the given (1-based) failed attempt"""
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms) / 1000


class RetryHandler:
    """Exponential backoff retry handler"""

    @classmethod
    async def execute_with_retry(
        cls,
        func: Callable[[], Coroutine[Any, Any, T]],
        policy: RetryPolicy,
        provider: str,
    ) -> T:
        """Run func up to policy.attempts times.

        Each attempt is bounded by policy.timeout; a timed-out attempt is
        cancelled and counts as a failure. The last error is re-raised as a
        GatewayError.
        """
        last_error: GatewayError | None = None

        for attempt in range(1, policy.attempts + 1):
            try:
                return await asyncio.wait_for(func(), timeout=policy.timeout)
            except asyncio.TimeoutError:
                last_error = ProviderTimeout(provider, policy.timeout)
            except GatewayError as e:
                last_error = e
            except Exception as e:
                last_error = ProviderError(provider, str(e), cause=e)

            if attempt == policy.attempts:
                break

            delay = policy.delay_for(attempt)
            logger.warning(
                f"Retrying {provider} after error (attempt {attempt}/{policy.attempts}, "
                f"waiting {delay:.1f}s): "
                f"{InputValidator.sanitize_for_logging(last_error.message)}"
            )
            await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error
