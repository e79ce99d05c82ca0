"""
Fallback Chain Executor
=======================
Walks a ranked list of providers until one answers. Each provider is tried
with its own registered retry policy; providers that are unregistered or whose
breaker refuses the call are skipped and logged as failed steps.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .circuit_breaker import CircuitBreakerRegistry
from .errors import AllProvidersExhausted, GatewayError, ProviderUnavailable
from .models import ProviderID
from .providers.base import BaseProvider, ProviderRegistry
from .retry import RetryHandler, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ChainStep:
    """One provider's turn in the chain"""

    provider: str
    success: bool
    duration_ms: float = 0.0
    error: str | None = None
    error_kind: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "success": self.success,
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
            "error_kind": self.error_kind,
            "skipped": self.skipped,
        }


@dataclass
class ChainResult(Generic[T]):
    provider: ProviderID
    value: T
    attempts: int
    steps: list[ChainStep] = field(default_factory=list)


class FallbackChainExecutor:
    """Tries providers in order, recording breaker outcomes"""

    def __init__(
        self,
        providers: ProviderRegistry,
        breakers: CircuitBreakerRegistry | None = None,
    ) -> None:
        self.providers = providers
        self.breakers = breakers

    async def execute_chain(
        self,
        ranking: Iterable[ProviderID | str],
        call: Callable[[BaseProvider], Awaitable[T]],
        *,
        use_breakers: bool = True,
        timeout: float | None = None,
    ) -> ChainResult[T]:
        """Return the first successful result.

        attempts is 1 + the position of the winning provider in ranking.
        Raises AllProvidersExhausted carrying the last error and every step.
        """
        steps: list[ChainStep] = []
        last_error: GatewayError | None = None
        breakers = self.breakers if use_breakers else None

        for position, raw_id in enumerate(ranking):
            provider_id = ProviderID.parse(raw_id)
            name = provider_id.value
            provider = self.providers.get(provider_id)

            try:
                if provider is None:
                    raise ProviderUnavailable(name, f"Provider '{name}' is not registered")
                if breakers is not None:
                    breakers.check(name)
            except ProviderUnavailable as e:
                logger.info(f"Fallback skipping {name}: {e.message}")
                steps.append(
                    ChainStep(name, False, error=e.message, error_kind=e.kind.value, skipped=True)
                )
                last_error = e
                continue

            policy = self.providers.retry_policy(provider_id)
            if timeout is not None:
                policy = RetryPolicy(
                    attempts=policy.attempts,
                    timeout=timeout,
                    base_delay_ms=policy.base_delay_ms,
                    max_delay_ms=policy.max_delay_ms,
                )

            start_time = time.time()
            try:
                value = await RetryHandler.execute_with_retry(
                    lambda: call(provider), policy, name
                )
            except GatewayError as e:
                duration = (time.time() - start_time) * 1000
                if breakers is not None:
                    breakers.record_failure(name)
                logger.warning(f"Fallback provider {name} failed: {e.message}")
                steps.append(ChainStep(name, False, duration, e.message, e.kind.value))
                last_error = e
                continue

            if breakers is not None:
                breakers.record_success(name)
            steps.append(ChainStep(name, True, (time.time() - start_time) * 1000))
            logger.info(f"Fallback succeeded with {name} (position {position + 1})")
            return ChainResult(
                provider=provider_id, value=value, attempts=position + 1, steps=steps
            )

        summary = "; ".join(f"{s.provider}: {s.error}" for s in steps) or "no candidates"
        raise AllProvidersExhausted(
            f"All providers failed ({summary})", cause=last_error, attempts=steps
        )
