"""
Circuit Breaker Registry
========================
Per-provider health gate. A provider that keeps failing is taken out of
rotation for a cooldown period, then given a single trial call before
being trusted again.

    closed --(failure_threshold consecutive failures)--> open
    open --(cooldown elapsed, next check)--> half_open (one trial admitted)
    half_open --success--> closed
    half_open --failure--> open

Only this registry writes breaker state. Each provider has its own lock, so
updates for different providers never contend.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import CircuitOpen, ProviderUnavailable

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Mutable breaker state for one provider"""

    provider: str
    failure_count: int = 0
    last_failure_at: float | None = None
    opened_at: float | None = None
    state: BreakerState = BreakerState.CLOSED
    trial_in_flight: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_at": self.last_failure_at,
        }


class CircuitBreakerRegistry:
    """Tracks consecutive failures and gates calls per provider"""

    def __init__(
        self,
        providers: Iterable[str] = (),
        failure_threshold: int = 5,
        cooldown: float = 60.0,
        window: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.window = window
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._registry_lock = threading.Lock()
        for provider in providers:
            self.register(provider)

    def register(self, provider: str) -> None:
        key = str(getattr(provider, "value", provider))
        with self._registry_lock:
            self._breakers.setdefault(key, CircuitBreaker(provider=key))

    def _get(self, provider: str) -> CircuitBreaker:
        key = str(getattr(provider, "value", provider))
        breaker = self._breakers.get(key)
        if breaker is None:
            raise ProviderUnavailable(key, f"Provider '{key}' has no circuit breaker")
        return breaker

    def _cooldown_remaining(self, breaker: CircuitBreaker) -> float:
        if breaker.opened_at is None:
            return 0.0
        return max(0.0, self.cooldown - (self._clock() - breaker.opened_at))

    def check(self, provider: str) -> None:
        """Admit a call or raise CircuitOpen.

        An open breaker whose cooldown has elapsed moves to half-open and
        admits exactly one trial; other callers are refused until that trial
        reports back.
        """
        breaker = self._get(provider)
        with breaker.lock:
            if breaker.state == BreakerState.CLOSED:
                return

            if breaker.state == BreakerState.OPEN:
                remaining = self._cooldown_remaining(breaker)
                if remaining > 0:
                    raise CircuitOpen(breaker.provider, retry_after=remaining)
                breaker.state = BreakerState.HALF_OPEN
                breaker.trial_in_flight = True
                logger.info(f"Circuit breaker for {breaker.provider} is half-open, admitting trial")
                return

            if breaker.trial_in_flight:
                raise CircuitOpen(breaker.provider)
            breaker.trial_in_flight = True

    def allows_routing(self, provider: str) -> bool:
        """Read-only: may this provider appear in a routing decision?"""
        breaker = self._breakers.get(str(getattr(provider, "value", provider)))
        if breaker is None:
            return False
        with breaker.lock:
            if breaker.state == BreakerState.OPEN:
                return self._cooldown_remaining(breaker) <= 0
            return True

    def record_failure(self, provider: str) -> None:
        breaker = self._get(provider)
        with breaker.lock:
            now = self._clock()
            if (
                breaker.last_failure_at is not None
                and now - breaker.last_failure_at > self.window
            ):
                breaker.failure_count = 0
            breaker.failure_count += 1
            breaker.last_failure_at = now
            breaker.trial_in_flight = False

            if breaker.state == BreakerState.HALF_OPEN:
                breaker.state = BreakerState.OPEN
                breaker.opened_at = now
                logger.warning(f"Circuit breaker for {breaker.provider} re-opened after failed trial")
            elif (
                breaker.state == BreakerState.CLOSED
                and breaker.failure_count >= self.failure_threshold
            ):
                breaker.state = BreakerState.OPEN
                breaker.opened_at = now
                logger.warning(
                    f"Circuit breaker OPEN for {breaker.provider} "
                    f"after {breaker.failure_count} consecutive failures"
                )

    def record_success(self, provider: str) -> None:
        breaker = self._get(provider)
        with breaker.lock:
            if breaker.state != BreakerState.CLOSED:
                logger.info(f"Circuit breaker for {breaker.provider} closed")
            breaker.state = BreakerState.CLOSED
            breaker.failure_count = 0
            breaker.opened_at = None
            breaker.trial_in_flight = False

    def state(self, provider: str) -> BreakerState:
        return self._get(provider).state

    def failure_count(self, provider: str) -> int:
        return self._get(provider).failure_count

    def snapshot(self) -> dict[str, dict[str, Any]]:
        snapshot = {}
        for key, breaker in list(self._breakers.items()):
            with breaker.lock:
                snapshot[key] = breaker.to_dict()
        return snapshot

    def reset(self, provider: str | None = None) -> None:
        """Close one breaker, or all of them"""
        targets = [self._get(provider)] if provider is not None else list(self._breakers.values())
        for breaker in targets:
            with breaker.lock:
                breaker.state = BreakerState.CLOSED
                breaker.failure_count = 0
                breaker.last_failure_at = None
                breaker.opened_at = None
                breaker.trial_in_flight = False
        logger.info(f"Circuit breakers reset: {provider or 'all'}")
