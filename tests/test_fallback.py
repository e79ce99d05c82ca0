"""Tests for the fallback chain executor"""

import pytest

from ai_gateway.circuit_breaker import BreakerState, CircuitBreakerRegistry
from ai_gateway.errors import AllProvidersExhausted, ProviderError
from ai_gateway.fallback import FallbackChainExecutor
from ai_gateway.models import ProviderID
from ai_gateway.providers.base import ProviderRegistry
from ai_gateway.retry import RetryPolicy

from tests.helpers import FakeProvider


def failure(name="boom"):
    return ProviderError("fake", name)


def build(outcomes_by_provider, attempts=1, threshold=5):
    registry = ProviderRegistry()
    providers = {}
    for name, outcomes in outcomes_by_provider.items():
        provider = FakeProvider(name, outcomes)
        registry.register(provider, RetryPolicy(attempts=attempts))
        providers[name] = provider
    breakers = CircuitBreakerRegistry(outcomes_by_provider, failure_threshold=threshold)
    return FallbackChainExecutor(registry, breakers), providers, breakers


async def chat(provider):
    return await provider.chat([{"role": "user", "content": "hi"}])


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        chain, providers, _ = build({"openai": [], "gemini": []})
        result = await chain.execute_chain(["openai", "gemini"], chat)

        assert result.provider == ProviderID.OPENAI
        assert result.value.content == "openai answer"
        assert result.attempts == 1
        assert len(providers["gemini"].calls) == 0

    @pytest.mark.asyncio
    async def test_falls_through_to_next(self):
        chain, providers, _ = build({"openai": [failure()], "gemini": []})
        result = await chain.execute_chain(["openai", "gemini"], chat)

        assert result.provider == ProviderID.GEMINI
        assert result.attempts == 2
        assert [s.success for s in result.steps] == [False, True]
        assert result.steps[0].error_kind == "provider_error"

    @pytest.mark.asyncio
    async def test_uses_registered_retry_policy(self, no_backoff):
        chain, providers, _ = build(
            {"openai": [failure(), failure()], "gemini": []}, attempts=3
        )
        result = await chain.execute_chain(["openai", "gemini"], chat)

        assert result.provider == ProviderID.OPENAI
        assert len(providers["openai"].calls) == 3
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_unregistered_provider_is_skipped(self):
        chain, providers, _ = build({"gemini": []})
        result = await chain.execute_chain(["claude", "gemini"], chat)

        assert result.provider == ProviderID.GEMINI
        assert result.attempts == 2
        assert result.steps[0].skipped is True
        assert result.steps[0].error_kind == "provider_unavailable"

    @pytest.mark.asyncio
    async def test_open_breaker_is_skipped(self):
        chain, providers, breakers = build({"openai": [], "gemini": []}, threshold=1)
        breakers.record_failure("openai")

        result = await chain.execute_chain(["openai", "gemini"], chat)
        assert result.provider == ProviderID.GEMINI
        assert len(providers["openai"].calls) == 0
        assert result.steps[0].skipped is True

    @pytest.mark.asyncio
    async def test_breakers_can_be_bypassed(self):
        chain, providers, breakers = build({"openai": [], "gemini": []}, threshold=1)
        breakers.record_failure("openai")

        result = await chain.execute_chain(["openai", "gemini"], chat, use_breakers=False)
        assert result.provider == ProviderID.OPENAI
        assert breakers.state("openai") == BreakerState.OPEN

    @pytest.mark.asyncio
    async def test_all_fail(self):
        chain, _, _ = build({"openai": [failure("first")], "gemini": [failure("second")]})
        with pytest.raises(AllProvidersExhausted) as exc_info:
            await chain.execute_chain(["openai", "gemini"], chat)

        error = exc_info.value
        assert len(error.attempts) == 2
        assert isinstance(error.cause, ProviderError)
        assert "second" in error.cause.message
        assert "openai" in error.message and "gemini" in error.message

    @pytest.mark.asyncio
    async def test_empty_ranking(self):
        chain, _, _ = build({"openai": []})
        with pytest.raises(AllProvidersExhausted):
            await chain.execute_chain([], chat)


class TestBreakerBookkeeping:
    @pytest.mark.asyncio
    async def test_failure_and_success_recorded(self):
        chain, _, breakers = build({"openai": [failure()], "gemini": []})
        await chain.execute_chain(["openai", "gemini"], chat)

        assert breakers.failure_count("openai") == 1
        assert breakers.failure_count("gemini") == 0

    @pytest.mark.asyncio
    async def test_repeated_failures_open_breaker(self):
        chain, _, breakers = build(
            {"openai": [failure(), failure()], "gemini": []}, threshold=2
        )
        await chain.execute_chain(["openai", "gemini"], chat)
        await chain.execute_chain(["openai", "gemini"], chat)
        assert breakers.state("openai") == BreakerState.OPEN

    @pytest.mark.asyncio
    async def test_timeout_override(self):
        registry = ProviderRegistry()
        registry.register(FakeProvider("openai", delay=1.0), RetryPolicy(attempts=1))
        registry.register(FakeProvider("gemini"), RetryPolicy(attempts=1))
        chain = FallbackChainExecutor(registry)

        result = await chain.execute_chain(["openai", "gemini"], chat, timeout=0.05)
        assert result.provider == ProviderID.GEMINI
        assert result.steps[0].error_kind == "timeout"
